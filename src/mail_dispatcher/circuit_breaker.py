# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Per-provider circuit breakers.

Each provider gets its own state machine, so one broken provider never
blocks traffic meant for a healthy one::

    closed --threshold consecutive failures--> open
    open --timeout elapsed--> half-open (probe admitted)
    half-open --probe succeeds--> closed
    half-open --probe fails--> open (timer restarts)

Half-open keeps the failure count; only a success resets it. Any success,
in any state, fully closes the circuit.

All operations are synchronous and never await, so under asyncio each
transition is a single uninterruptible step.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass

from .logger import get_logger

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"


@dataclass
class CircuitState:
    """Breaker state for a single provider.

    Attributes:
        is_open: True while requests are blocked.
        half_open: True between the timeout and the probe outcome.
        consecutive_failures: Failures since the last success.
        last_failure_at: Clock value of the most recent failure.
        half_open_probes_used: Probes admitted in the current half-open window.
    """

    is_open: bool = False
    half_open: bool = False
    consecutive_failures: int = 0
    last_failure_at: float = 0.0
    half_open_probes_used: int = 0


def _name(provider: Hashable) -> str:
    return getattr(provider, "name", None) or str(provider)


class CircuitBreakerRegistry:
    """Owns one :class:`CircuitState` per provider.

    Attributes:
        threshold: Consecutive failures that open a circuit.
        timeout: Seconds an open circuit blocks before admitting a probe.
        half_open_attempts: Probes admitted per half-open window.
        logger: Receives every state transition.
    """

    def __init__(
        self,
        providers: Iterable[Hashable],
        *,
        threshold: int = 3,
        timeout: float = 5.0,
        half_open_attempts: int = 1,
        logger=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold = threshold
        self.timeout = timeout
        self.half_open_attempts = half_open_attempts
        self.logger = logger or get_logger("CircuitBreaker")
        self._clock = clock
        self._states: dict[Hashable, CircuitState] = {p: CircuitState() for p in providers}

    def _state(self, provider: Hashable) -> CircuitState:
        try:
            return self._states[provider]
        except KeyError:
            raise KeyError(f"Unknown provider: {_name(provider)}") from None

    def is_blocking(self, provider: Hashable) -> bool:
        """Tell whether a request to ``provider`` must be skipped.

        When an open circuit's timeout has elapsed, the circuit moves to
        half-open and the caller is admitted as the probe.

        Raises:
            KeyError: If the provider was not registered.
        """
        state = self._state(provider)
        if state.is_open:
            if self._clock() - state.last_failure_at > self.timeout:
                state.is_open = False
                state.half_open = True
                state.half_open_probes_used = 0
                self.logger.info("Circuit for provider %s is half-open.", _name(provider))
            else:
                self.logger.info("Circuit for provider %s is open. Blocking request.", _name(provider))
                return True

        if state.half_open:
            if state.half_open_probes_used >= self.half_open_attempts:
                self.logger.info(
                    "Circuit for provider %s is half-open with a probe in flight. Blocking request.",
                    _name(provider),
                )
                return True
            state.half_open_probes_used += 1
        return False

    def record_failure(self, provider: Hashable) -> None:
        """Count a failure and open the circuit when the threshold is reached."""
        state = self._state(provider)
        state.consecutive_failures += 1
        state.last_failure_at = self._clock()

        if state.half_open:
            state.half_open = False
            state.half_open_probes_used = 0
            state.is_open = True
            self.logger.warning(
                "Circuit for provider %s reopened after failed half-open attempt.", _name(provider)
            )
        elif not state.is_open and state.consecutive_failures >= self.threshold:
            state.is_open = True
            self.logger.warning(
                "Circuit for provider %s opened due to %d consecutive failures.",
                _name(provider),
                state.consecutive_failures,
            )

    def record_success(self, provider: Hashable) -> None:
        """Reset the failure count and close the circuit unconditionally."""
        state = self._state(provider)
        if state.is_open or state.half_open:
            self.logger.info(
                "Circuit for provider %s closed after successful half-open attempt.", _name(provider)
            )
        state.is_open = False
        state.half_open = False
        state.consecutive_failures = 0
        state.half_open_probes_used = 0

    def release_probe(self, provider: Hashable) -> None:
        """Return a half-open probe slot whose attempt ended without an outcome.

        Used when the probing caller is cancelled, so neither
        :meth:`record_success` nor :meth:`record_failure` will run. The
        circuit stays half-open and the next caller is admitted as the probe.
        """
        state = self._state(provider)
        if state.half_open and state.half_open_probes_used > 0:
            state.half_open_probes_used -= 1
            self.logger.info("Circuit for provider %s released an abandoned half-open probe.", _name(provider))

    def state_of(self, provider: Hashable) -> str:
        """Return ``"closed"``, ``"open"`` or ``"half-open"`` without side effects."""
        state = self._state(provider)
        if state.is_open:
            return OPEN
        if state.half_open:
            return HALF_OPEN
        return CLOSED

    def snapshot(self, provider: Hashable) -> CircuitState:
        """Return a copy of the provider's state for observation."""
        return dataclasses.replace(self._state(provider))

    def reset(self, provider: Hashable | None = None) -> None:
        """Forget breaker history for one provider, or for all of them."""
        targets = [provider] if provider is not None else list(self._states)
        for target in targets:
            self._state(target)
            self._states[target] = CircuitState()
