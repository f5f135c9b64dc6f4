"""Resilient email dispatcher with provider fallback and rate-limited admission.

This package dispatches email sends to one of several interchangeable
providers, with features including:

- Automatic retry with exponential backoff per provider
- Per-provider circuit breaking (closed, open, half-open)
- Ordered provider fallback with sticky preference for the last healthy one
- Idempotent submission keyed by task id
- Rate-limited admission with an in-process pending queue
- Prometheus metrics for monitoring

Example:
    Basic usage with two providers::

        from mail_dispatcher import MailDispatcher, MailTask
        from mail_dispatcher.providers import MockProvider

        dispatcher = MailDispatcher(
            [MockProvider("primary", success_rate=0.7), MockProvider("backup")],
            max_retries=1,
        )
        delivery = await dispatcher.send(
            MailTask(id="welcome-1", recipient="a@example.com", subject="Hi", body="Hello")
        )
        dispatcher.status_of("welcome-1")  # TaskStatus.SENT

Authors:
    Softwell S.r.l.
"""

from .config import DispatcherConfig, load_dispatcher_config
from .dispatcher import MailDispatcher
from .errors import (
    AllProvidersFailed,
    CircuitOpen,
    ConfigurationError,
    DispatchError,
    InvalidTask,
    ProviderFailure,
    RetryExhausted,
)
from .models import AlreadySubmitted, Delivery, MailTask, TaskStatus

__all__ = [
    "AllProvidersFailed",
    "AlreadySubmitted",
    "CircuitOpen",
    "ConfigurationError",
    "Delivery",
    "DispatchError",
    "DispatcherConfig",
    "InvalidTask",
    "MailDispatcher",
    "MailTask",
    "ProviderFailure",
    "RetryExhausted",
    "TaskStatus",
    "load_dispatcher_config",
]
