# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Provider handles and ready-made provider implementations.

A provider is anything that can be called as ``send(recipient, subject,
body)``: a plain function, a coroutine function, or an object exposing a
``send`` method. It returns a result (or an awaitable of one) on success and
raises on failure.

The dispatcher wraps every provider in a :class:`ProviderHandle` at
construction. Handles are compared and hashed by their position in the
fallback order, so breaker state and sticky preference never depend on
function identity.

Implementations shipped here:

- :class:`MockProvider`: simulated provider with a configurable success rate
  and latency, used by the demo command and tests.
- :class:`SmtpProvider`: sends through an SMTP server with ``aiosmtplib``.
"""

from __future__ import annotations

import asyncio
import inspect
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any

import aiosmtplib

from .errors import ConfigurationError, ProviderFailure


@dataclass(frozen=True)
class ProviderHandle:
    """Stable reference to one provider in the fallback order.

    Attributes:
        index: Position in the fallback order; the handle's identity.
        name: Human-readable name used in logs and metrics.
        target: The callable invoked for each attempt.
    """

    index: int
    name: str = field(compare=False)
    target: Callable[..., Any] = field(compare=False, repr=False)

    async def send(self, recipient: str, subject: str, body: str) -> Any:
        result = self.target(recipient, subject, body)
        if inspect.isawaitable(result):
            result = await result
        return result


def _provider_name(provider: Any, index: int) -> str:
    name = getattr(provider, "name", None)
    if isinstance(name, str) and name:
        return name
    name = getattr(provider, "__name__", None)
    if isinstance(name, str) and name and name != "<lambda>":
        return name
    return f"provider-{index}"


def build_handles(providers: Iterable[Any] | None) -> tuple[ProviderHandle, ...]:
    """Issue one handle per provider, preserving order.

    Raises:
        ConfigurationError: If the list is empty or an entry is neither
            callable nor exposes a callable ``send``.
    """
    items = list(providers or [])
    if not items:
        raise ConfigurationError("At least one email provider is required.")

    handles = []
    for index, provider in enumerate(items):
        send = getattr(provider, "send", None)
        if not callable(send):
            send = provider if callable(provider) else None
        if send is None:
            raise ConfigurationError(
                f"Provider at position {index} is not callable and has no send() method"
            )
        handles.append(ProviderHandle(index=index, name=_provider_name(provider, index), target=send))
    return tuple(handles)


class MockProvider:
    """Simulated provider that succeeds with a fixed probability.

    Attributes:
        name: Provider name reported in results and errors.
        success_rate: Probability of success, from 0.0 to 1.0.
        latency: Simulated network latency in seconds.
        calls: Number of send attempts received.
    """

    def __init__(
        self,
        name: str,
        success_rate: float = 1.0,
        latency: float = 0.1,
        rng: random.Random | None = None,
    ):
        if not 0.0 <= success_rate <= 1.0:
            raise ConfigurationError("success_rate must be between 0.0 and 1.0")
        self.name = name
        self.success_rate = success_rate
        self.latency = latency
        self.calls = 0
        self._rng = rng or random.Random()

    async def send(self, recipient: str, subject: str, body: str) -> str:
        self.calls += 1
        if self.latency > 0:
            await asyncio.sleep(self.latency)
        if self._rng.random() < self.success_rate:
            return f"Email sent successfully via {self.name} to {recipient}"
        raise ProviderFailure(f"Failed to send email via {self.name} to {recipient}", provider=self.name)


class SmtpProvider:
    """Provider delivering plain-text messages through an SMTP server.

    TLS behavior based on port and ``use_tls``:

    - Port 465 with ``use_tls=True``: direct TLS (implicit TLS)
    - Other ports with ``use_tls=True``: STARTTLS
    - ``use_tls=False``: plain SMTP

    Attributes:
        name: Provider name, defaults to ``smtp:<host>``.
        host: SMTP server hostname.
        port: SMTP server port.
        sender: Address used in the From header and envelope.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        *,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout: float = 10.0,
        name: str | None = None,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.name = name or f"smtp:{host}"

    def _tls_options(self) -> dict[str, bool]:
        if self.use_tls and self.port == 465:
            return {"use_tls": True, "start_tls": False}
        if self.use_tls:
            return {"use_tls": False, "start_tls": True}
        return {"use_tls": False, "start_tls": False}

    def build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    async def send(self, recipient: str, subject: str, body: str) -> str:
        """Deliver one message.

        Returns:
            The server's final response text.

        Raises:
            ProviderFailure: On SMTP, network or timeout errors.
        """
        message = self.build_message(recipient, subject, body)
        try:
            _errors, response = await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.user,
                password=self.password,
                timeout=self.timeout,
                **self._tls_options(),
            )
        except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError) as exc:
            raise ProviderFailure(f"SMTP delivery via {self.name} failed: {exc}", provider=self.name) from exc
        return response
