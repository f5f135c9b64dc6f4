# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception taxonomy for the mail dispatcher.

All errors raised by the dispatcher derive from :class:`DispatchError` and
carry a machine-readable ``code`` attribute, so API layers can map them to
responses without matching on message text.

Only :class:`InvalidTask`, :class:`ConfigurationError` and
:class:`AllProvidersFailed` ever reach callers of ``MailDispatcher``.
:class:`ProviderFailure`, :class:`RetryExhausted` and :class:`CircuitOpen`
are absorbed by the fallback loop and only surface as the ``last_error`` of
an :class:`AllProvidersFailed`.
"""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Base class for every dispatcher error."""

    code = "dispatch_error"


class ConfigurationError(DispatchError, ValueError):
    """Raised when the dispatcher is constructed with invalid settings."""

    code = "configuration_error"


class InvalidTask(DispatchError, ValueError):
    """Raised when a submitted task lacks one of its required fields.

    Attributes:
        fields: Names of the missing or empty fields.
    """

    code = "invalid_task"

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = list(fields or [])


class ProviderFailure(DispatchError):
    """A single provider attempt failed.

    Providers may raise this or any other exception; both are retried.

    Attributes:
        provider: Name of the provider that failed, when known.
    """

    code = "provider_failure"

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class RetryExhausted(DispatchError):
    """Every attempt of a retried operation failed.

    Attributes:
        last_error: The exception raised by the final attempt.
        attempts: Total number of attempts made.
    """

    code = "retry_exhausted"

    def __init__(self, message: str, last_error: BaseException | None = None, attempts: int = 0):
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


class CircuitOpen(DispatchError):
    """A provider was skipped because its circuit is open."""

    code = "circuit_open"

    def __init__(self, provider: Any):
        self.provider = provider
        super().__init__(f"Circuit open for provider {getattr(provider, 'name', provider)}")


class AllProvidersFailed(DispatchError):
    """Every provider was skipped or exhausted for a task.

    The message embeds the last underlying cause so callers see why the
    final provider gave up.

    Attributes:
        task_id: Identifier of the failed task.
        last_error: The last provider error or :class:`CircuitOpen`.
    """

    code = "all_providers_failed"

    def __init__(self, task_id: str, last_error: BaseException | None = None):
        self.task_id = task_id
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "Unknown error."
        super().__init__(f"All providers failed for task {task_id}. Last error: {detail}")
