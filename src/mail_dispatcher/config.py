# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration for the mail dispatcher.

All durations are in seconds.

Example:
    Configuration file format (dispatcher.ini)::

        [dispatcher]
        max_retries = 2
        initial_retry_delay = 0.05
        rate_limit_window = 1.0
        max_requests_per_window = 20
        circuit_breaker_threshold = 3
        circuit_breaker_timeout = 5.0
        circuit_breaker_half_open_attempts = 1

    Loading it::

        config = load_dispatcher_config("/etc/mail-dispatcher/dispatcher.ini")
        dispatcher = MailDispatcher(providers, config)
"""

from __future__ import annotations

import configparser
import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ConfigurationError
from .logger import get_logger

logger = get_logger("DispatcherConfig")

QUEUE_RETRY_MARGIN = 0.01


@dataclass(frozen=True)
class DispatcherConfig:
    """Tunable knobs of the dispatcher, all optional."""

    max_retries: int = 3
    """Retries per provider after the first attempt."""

    initial_retry_delay: float = 0.1
    """Wait after the first failed attempt; doubles after each further failure."""

    idempotency_window: float = 60.0
    """Retention for idempotency entries. Not used for eviction yet."""

    rate_limit_window: float = 1.0
    """Length of the admission window."""

    max_requests_per_window: int = 10
    """Attempt sequences admitted per window."""

    circuit_breaker_threshold: int = 3
    """Consecutive failures that open a provider's circuit."""

    circuit_breaker_timeout: float = 5.0
    """Time a circuit stays open before admitting a probe."""

    circuit_breaker_half_open_attempts: int = 1
    """Probes admitted while a circuit is half-open."""

    def __post_init__(self) -> None:
        self._check(self.max_retries >= 0, "max_retries must be >= 0")
        self._check(self.initial_retry_delay >= 0, "initial_retry_delay must be >= 0")
        self._check(self.idempotency_window > 0, "idempotency_window must be > 0")
        self._check(self.rate_limit_window > 0, "rate_limit_window must be > 0")
        self._check(self.max_requests_per_window >= 1, "max_requests_per_window must be >= 1")
        self._check(self.circuit_breaker_threshold >= 1, "circuit_breaker_threshold must be >= 1")
        self._check(self.circuit_breaker_timeout >= 0, "circuit_breaker_timeout must be >= 0")
        self._check(
            self.circuit_breaker_half_open_attempts >= 1,
            "circuit_breaker_half_open_attempts must be >= 1",
        )

    @staticmethod
    def _check(condition: bool, message: str) -> None:
        if not condition:
            raise ConfigurationError(message)

    @property
    def queue_retry_delay(self) -> float:
        """Delay before the pending queue retries after admission was denied."""
        return self.rate_limit_window + QUEUE_RETRY_MARGIN

    def replace(self, **overrides: Any) -> DispatcherConfig:
        """Return a validated copy with some fields overridden.

        Raises:
            ConfigurationError: On unknown field names or invalid values.
        """
        unknown = set(overrides) - set(self.field_names())
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **overrides)

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls))

    def as_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def _convert(name: str, raw: str) -> Any:
    """Convert an INI string to the type declared on the dataclass field."""
    field_type = {f.name: f.type for f in dataclasses.fields(DispatcherConfig)}[name]
    try:
        if field_type in (int, "int"):
            return int(raw)
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from exc


def load_dispatcher_config(config_path: str | Path, section: str = "dispatcher") -> DispatcherConfig:
    """Load a :class:`DispatcherConfig` from an INI file.

    Unknown keys in the section are logged and ignored. A file without the
    section yields the defaults.

    Args:
        config_path: Path to the INI file.
        section: Section holding the dispatcher options.

    Returns:
        The validated configuration.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigurationError: If a value cannot be converted or fails validation.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    parser = configparser.ConfigParser()
    parser.read(path)
    if not parser.has_section(section):
        logger.info("No [%s] section found in %s, using defaults", section, path)
        return DispatcherConfig()

    known = set(DispatcherConfig.field_names())
    values: dict[str, Any] = {}
    for key, raw in parser.items(section):
        if key not in known:
            logger.warning("Ignoring unknown key in [%s] section: %s", section, key)
            continue
        values[key] = _convert(key, raw.strip())
    return DispatcherConfig(**values)
