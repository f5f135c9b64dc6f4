# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the mail dispatcher.

Every component of the dispatcher accepts an optional ``logger`` argument.
When none is given, the component falls back to the named logger returned by
:func:`get_logger`. Handlers, levels and formats are left to the application
entry point (``logging.basicConfig()`` or equivalent) to avoid duplicate
output.

Any object exposing ``debug``, ``info``, ``warning`` and ``error`` methods
with ``logging``-style ``(msg, *args)`` signatures can be passed in place of
a standard logger.

Example:
    Typical usage in a module::

        from mail_dispatcher.logger import get_logger

        logger = get_logger("CircuitBreaker")
        logger.info("Circuit for provider %s is open", "primary")
"""

import logging

DEFAULT_LOGGER_NAME = "MailDispatcher"


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Retrieve the logger for a dispatcher component.

    Names without a dot are placed under the ``MailDispatcher`` hierarchy so a
    single ``logging.getLogger("MailDispatcher")`` configuration controls all
    components.

    Args:
        name: The logger name. Defaults to "MailDispatcher".

    Returns:
        A ``logging.Logger`` instance bound to the resolved name.

    Example:
        >>> get_logger("RateLimiter").name
        'MailDispatcher.RateLimiter'
    """
    if name != DEFAULT_LOGGER_NAME and "." not in name:
        name = f"{DEFAULT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
