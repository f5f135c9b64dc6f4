# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic models for the mail dispatcher.

Models:
    - TaskStatus: Lifecycle state of a submitted task
    - MailTask: The unit of work handed to providers
    - Delivery: Success value returned by ``MailDispatcher.send``
    - AlreadySubmitted: Informational result for duplicate submissions
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidTask


class TaskStatus(str, Enum):
    """Lifecycle states of a task, keyed by task id.

    Attributes:
        PENDING: Accepted but deferred by the admission controller.
        PROCESSING: The provider loop has started.
        SENT: A provider accepted the message. Terminal.
        FAILED: Every eligible provider was skipped or exhausted. Terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SENT, TaskStatus.FAILED)


class MailTask(BaseModel):
    """An email send submitted to the dispatcher.

    Identity is ``id`` alone; the other fields are passed through to
    providers untouched. Instances are immutable.

    Attributes:
        id: Caller-supplied identifier, unique per logical send.
        recipient: Destination address (``to`` is accepted as an alias).
        subject: Message subject.
        body: Message body.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Annotated[str, Field(min_length=1, description="Unique task identifier")]
    recipient: Annotated[
        str,
        Field(
            min_length=1,
            validation_alias=AliasChoices("recipient", "to"),
            description="Recipient address",
        ),
    ]
    subject: Annotated[str, Field(min_length=1, description="Message subject")]
    body: Annotated[str, Field(min_length=1, description="Message body")]

    @classmethod
    def from_payload(cls, payload: MailTask | Mapping[str, Any]) -> MailTask:
        """Build a task from a mapping, translating validation errors.

        Args:
            payload: An existing ``MailTask`` (returned as is) or a mapping
                with ``id``, ``recipient`` (or ``to``), ``subject`` and ``body``.

        Returns:
            The validated task.

        Raises:
            InvalidTask: If the payload is not a mapping or any required field
                is missing, empty or not a string.
        """
        if isinstance(payload, cls):
            return payload
        if not isinstance(payload, Mapping):
            raise InvalidTask(
                f"Task must be a MailTask or a mapping, got {type(payload).__name__}",
                ["id", "recipient", "subject", "body"],
            )
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            raise InvalidTask(
                f"Task must include non-empty id, recipient, subject and body (invalid: {', '.join(fields)})",
                fields,
            ) from exc


class Delivery(BaseModel):
    """Successful outcome of a send.

    Attributes:
        task_id: Identifier of the delivered task.
        provider: Name of the provider that accepted the message.
        result: Whatever the provider returned.
        status: Always ``sent``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    task_id: str
    provider: str
    result: Any = None
    status: Literal[TaskStatus.SENT] = TaskStatus.SENT


class AlreadySubmitted(BaseModel):
    """Returned instead of contacting providers when a task id repeats.

    Attributes:
        task_id: The repeated identifier.
        status: The status recorded for the first submission, if any.
    """

    model_config = ConfigDict(frozen=True)

    task_id: str
    status: TaskStatus | None = None

    @property
    def message(self) -> str:
        current = self.status.value if self.status is not None else "unknown"
        return f"Task {self.task_id} was already submitted. Current status: {current}"
