"""Tests for BackoffExecutor."""

import pytest

from mail_dispatcher.errors import RetryExhausted
from mail_dispatcher.retry import BackoffExecutor


class Flaky:
    """Fails ``failures`` times, then returns ``value``."""

    def __init__(self, failures: int, value="ok"):
        self.failures = failures
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"failure {self.calls}")
        return self.value


class TestDelaySchedule:
    def test_delay_doubles(self):
        assert BackoffExecutor.delay_for(1, 0.1) == pytest.approx(0.1)
        assert BackoffExecutor.delay_for(2, 0.1) == pytest.approx(0.2)
        assert BackoffExecutor.delay_for(3, 0.1) == pytest.approx(0.4)

    def test_attempt_is_one_based(self):
        with pytest.raises(ValueError):
            BackoffExecutor.delay_for(0, 0.1)


class TestExecute:
    @pytest.mark.asyncio
    async def test_first_attempt_success_does_not_wait(self, logger, recording_sleep):
        executor = BackoffExecutor(logger=logger, sleep=recording_sleep)
        op = Flaky(0)
        assert await executor.execute(op, 3, 0.1) == "ok"
        assert op.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_success_after_retry(self, logger, recording_sleep):
        executor = BackoffExecutor(logger=logger, sleep=recording_sleep)
        op = Flaky(1, value="second time")
        assert await executor.execute(op, 2, 0.01) == "second time"
        assert op.calls == 2
        assert recording_sleep.delays == [pytest.approx(0.01)]

    @pytest.mark.asyncio
    async def test_exhaustion_after_max_retries_plus_one(self, logger, recording_sleep):
        executor = BackoffExecutor(logger=logger, sleep=recording_sleep)
        op = Flaky(100)
        with pytest.raises(RetryExhausted) as excinfo:
            await executor.execute(op, 3, 0.1, label="task t1 via primary")

        assert op.calls == 4
        assert recording_sleep.delays == [pytest.approx(0.1), pytest.approx(0.2), pytest.approx(0.4)]
        exc = excinfo.value
        assert exc.attempts == 4
        assert str(exc.last_error) == "failure 4"
        assert exc.__cause__ is exc.last_error
        assert "Failed after 4 attempts for task t1 via primary" in str(exc)
        assert "Last error: failure 4" in str(exc)

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self, logger, recording_sleep):
        executor = BackoffExecutor(logger=logger, sleep=recording_sleep)
        op = Flaky(1)
        with pytest.raises(RetryExhausted):
            await executor.execute(op, 0, 0.1)
        assert op.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_sync_operation(self, logger, recording_sleep):
        executor = BackoffExecutor(logger=logger, sleep=recording_sleep)
        assert await executor.execute(lambda: 42, 1, 0.1) == 42

    @pytest.mark.asyncio
    async def test_negative_retries_rejected(self, logger):
        executor = BackoffExecutor(logger=logger)
        with pytest.raises(ValueError):
            await executor.execute(lambda: 1, -1, 0.1)

    @pytest.mark.asyncio
    async def test_every_attempt_and_failure_is_logged(self, logger, recording_sleep):
        executor = BackoffExecutor(logger=logger, sleep=recording_sleep)
        with pytest.raises(RetryExhausted):
            await executor.execute(Flaky(10), 1, 0.05, label="op")

        assert logger.contains("Attempt 1/2 for op", level="info")
        assert logger.contains("Attempt 1/2 for op failed: failure 1", level="error")
        assert logger.contains("Retrying op, attempt 2/2 after 0.050s", level="info")
        assert logger.contains("Attempt 2/2 for op failed: failure 2", level="error")
        exhaustion = [line for line in logger.lines if line.startswith("Failed after")]
        assert exhaustion == ["Failed after 2 attempts for op. Last error: failure 2"]

    @pytest.mark.asyncio
    async def test_real_sleep_is_used_by_default(self, logger):
        executor = BackoffExecutor(logger=logger)
        assert await executor.execute(Flaky(1), 1, 0.001) == "ok"
