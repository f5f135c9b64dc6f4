"""Tests for CircuitBreakerRegistry."""

import pytest

from mail_dispatcher.circuit_breaker import CircuitBreakerRegistry


def make_registry(clock, logger, **kwargs):
    kwargs.setdefault("threshold", 2)
    kwargs.setdefault("timeout", 5.0)
    return CircuitBreakerRegistry(["p1", "p2"], logger=logger, clock=clock, **kwargs)


class TestClosedAndOpen:
    def test_starts_closed(self, clock, logger):
        registry = make_registry(clock, logger)
        assert registry.is_blocking("p1") is False
        assert registry.state_of("p1") == "closed"

    def test_opens_at_threshold(self, clock, logger):
        registry = make_registry(clock, logger)
        registry.record_failure("p1")
        assert registry.state_of("p1") == "closed"
        registry.record_failure("p1")
        assert registry.state_of("p1") == "open"
        assert registry.is_blocking("p1") is True
        assert logger.contains("Circuit for provider p1 opened due to 2 consecutive failures.")
        assert logger.contains("Circuit for provider p1 is open. Blocking request.")

    def test_providers_are_isolated(self, clock, logger):
        registry = make_registry(clock, logger)
        registry.record_failure("p1")
        registry.record_failure("p1")
        assert registry.is_blocking("p1") is True
        assert registry.is_blocking("p2") is False
        assert registry.snapshot("p2").consecutive_failures == 0

    def test_failure_when_open_is_idempotent(self, clock, logger):
        registry = make_registry(clock, logger)
        for _ in range(4):
            registry.record_failure("p1")
        state = registry.snapshot("p1")
        assert state.is_open is True
        assert state.consecutive_failures == 4
        opened = [line for line in logger.lines if "opened due to" in line]
        assert len(opened) == 1

    def test_success_resets_count(self, clock, logger):
        registry = make_registry(clock, logger, threshold=3)
        registry.record_failure("p1")
        registry.record_failure("p1")
        registry.record_success("p1")
        assert registry.snapshot("p1").consecutive_failures == 0
        registry.record_failure("p1")
        assert registry.state_of("p1") == "closed"

    def test_unknown_provider(self, clock, logger):
        registry = make_registry(clock, logger)
        with pytest.raises(KeyError):
            registry.is_blocking("p3")


class TestHalfOpen:
    def open_circuit(self, registry):
        registry.record_failure("p1")
        registry.record_failure("p1")

    def test_blocks_until_timeout_elapsed(self, clock, logger):
        registry = make_registry(clock, logger)
        self.open_circuit(registry)
        clock.advance(5.0)
        assert registry.is_blocking("p1") is True
        clock.advance(0.001)
        assert registry.is_blocking("p1") is False
        assert registry.state_of("p1") == "half-open"
        assert logger.contains("Circuit for provider p1 is half-open.")

    def test_half_open_keeps_failure_count(self, clock, logger):
        registry = make_registry(clock, logger)
        self.open_circuit(registry)
        clock.advance(6)
        registry.is_blocking("p1")
        state = registry.snapshot("p1")
        assert state.is_open is False
        assert state.half_open is True
        assert state.consecutive_failures == 2
        assert state.half_open_probes_used == 1

    def test_only_one_probe_admitted(self, clock, logger):
        registry = make_registry(clock, logger)
        self.open_circuit(registry)
        clock.advance(6)
        assert registry.is_blocking("p1") is False
        assert registry.is_blocking("p1") is True
        assert registry.is_blocking("p1") is True

    def test_probe_budget_is_configurable(self, clock, logger):
        registry = make_registry(clock, logger, half_open_attempts=2)
        self.open_circuit(registry)
        clock.advance(6)
        assert registry.is_blocking("p1") is False
        assert registry.is_blocking("p1") is False
        assert registry.is_blocking("p1") is True

    def test_probe_success_closes(self, clock, logger):
        registry = make_registry(clock, logger)
        self.open_circuit(registry)
        clock.advance(6)
        registry.is_blocking("p1")
        registry.record_success("p1")
        state = registry.snapshot("p1")
        assert state.is_open is False
        assert state.half_open is False
        assert state.consecutive_failures == 0
        assert registry.is_blocking("p1") is False
        assert logger.contains("Circuit for provider p1 closed after successful half-open attempt.")

    def test_probe_failure_reopens_and_restarts_timer(self, clock, logger):
        registry = make_registry(clock, logger)
        self.open_circuit(registry)
        clock.advance(6)
        registry.is_blocking("p1")
        registry.record_failure("p1")
        assert registry.state_of("p1") == "open"
        assert registry.snapshot("p1").last_failure_at == clock.now

        clock.advance(4)
        assert registry.is_blocking("p1") is True
        clock.advance(1.5)
        assert registry.is_blocking("p1") is False

    def test_release_probe_readmits_next_caller(self, clock, logger):
        registry = make_registry(clock, logger)
        self.open_circuit(registry)
        clock.advance(6)
        assert registry.is_blocking("p1") is False
        assert registry.is_blocking("p1") is True

        registry.release_probe("p1")

        assert registry.state_of("p1") == "half-open"
        assert registry.snapshot("p1").half_open_probes_used == 0
        assert registry.is_blocking("p1") is False
        assert logger.contains("Circuit for provider p1 released an abandoned half-open probe.")

    def test_release_probe_outside_half_open_is_noop(self, clock, logger):
        registry = make_registry(clock, logger)
        registry.release_probe("p1")
        assert registry.snapshot("p1") == registry.snapshot("p2")
        self.open_circuit(registry)
        registry.release_probe("p1")
        assert registry.state_of("p1") == "open"


class TestHousekeeping:
    def test_snapshot_is_a_copy(self, clock, logger):
        registry = make_registry(clock, logger)
        snap = registry.snapshot("p1")
        snap.is_open = True
        assert registry.is_blocking("p1") is False

    def test_reset_one_provider(self, clock, logger):
        registry = make_registry(clock, logger)
        for name in ("p1", "p2"):
            registry.record_failure(name)
            registry.record_failure(name)
        registry.reset("p1")
        assert registry.state_of("p1") == "closed"
        assert registry.state_of("p2") == "open"

    def test_reset_all(self, clock, logger):
        registry = make_registry(clock, logger)
        registry.record_failure("p1")
        registry.record_failure("p2")
        registry.reset()
        assert registry.snapshot("p1").consecutive_failures == 0
        assert registry.snapshot("p2").consecutive_failures == 0
