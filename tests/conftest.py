import asyncio

import pytest


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DummyLogger:
    """Collects formatted log lines per level."""

    def __init__(self):
        self.records: list[tuple[str, str]] = []

    def _add(self, level, msg, *args, **_kwargs):
        self.records.append((level, msg % args if args else str(msg)))

    def debug(self, msg, *args, **kwargs):
        self._add("debug", msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self._add("info", msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._add("warning", msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self._add("error", msg, *args, **kwargs)

    @property
    def lines(self) -> list[str]:
        return [text for _level, text in self.records]

    def contains(self, fragment: str, level: str | None = None) -> bool:
        return any(fragment in text and (level is None or lvl == level) for lvl, text in self.records)


class RecordingSleep:
    """Replacement for asyncio.sleep that records delays and only yields."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def logger():
    return DummyLogger()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
