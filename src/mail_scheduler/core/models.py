"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

ScheduleType = Literal["once", "daily", "weekly", "monthly", "interval"]
TaskStatus = Literal["pending", "sent", "failed", "cancelled"]
SendType = Literal["scheduled", "manual", "test"]
SendStatus = Literal["success", "failed"]

SCHEDULE_TYPES: tuple[str, ...] = ("once", "daily", "weekly", "monthly", "interval")
TASK_STATUSES: tuple[str, ...] = ("pending", "sent", "failed", "cancelled")
SEND_TYPES: tuple[str, ...] = ("scheduled", "manual", "test")
SEND_STATUSES: tuple[str, ...] = ("success", "failed")


@dataclass(slots=True)
class Attachment:
    """Attachment supplied by a caller.

    Either ``content`` (raw bytes or a base64 string) or ``path`` (read at
    send time) carries the payload.
    """

    filename: str
    content: bytes | str | None = None
    path: str | None = None
    content_type: str | None = None


@dataclass(slots=True)
class AttachmentMeta:
    """Attachment description retained in history, without the payload."""

    filename: str
    content_type: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class MailAccount:
    """SMTP account used to deliver messages."""

    id: str
    name: str
    host: str
    port: int
    user: str
    password: str
    sender_name: str = ""
    subject_prefix: str = ""
    secure: bool = True
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class ScheduledTask:
    """Scheduled email job with its recurrence rule and delivery state."""

    id: str
    name: str
    to: str
    subject: str
    schedule_type: ScheduleType
    scheduled_at: datetime
    status: TaskStatus
    created_at: datetime
    account_id: str | None = None
    text: str | None = None
    html: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    interval_minutes: int | None = None
    weekday: int | None = None
    day_of_month: int | None = None
    last_sent_at: datetime | None = None
    error_message: str | None = None
    send_count: int = 0
    max_send_count: int | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class TaskParams:
    """Caller-supplied fields for creating a scheduled task."""

    name: str
    to: str
    subject: str
    schedule_type: str
    scheduled_at: str | datetime | None
    account_id: str | None = None
    text: str | None = None
    html: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    interval_minutes: int | None = None
    weekday: int | None = None
    day_of_month: int | None = None
    max_send_count: int | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class HistoryRecord:
    """Immutable log entry describing one send attempt."""

    id: str
    send_type: SendType
    to: str
    subject: str
    status: SendStatus
    sent_at: datetime
    account_id: str | None = None
    text: str | None = None
    html: str | None = None
    error_message: str | None = None
    scheduled_email_id: str | None = None
    attachment_count: int = 0
    attachments: tuple[AttachmentMeta, ...] = ()


@dataclass(slots=True)
class SendRequest:
    """Message payload handed to the dispatcher."""

    to: str
    subject: str
    text: str | None = None
    html: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    account_id: str | None = None


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a send, verification, or execution."""

    success: bool
    message: str


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating caller-supplied parameters."""

    valid: bool
    message: str


@dataclass(slots=True)
class HistoryPage:
    """One page of filtered history records."""

    records: list[HistoryRecord]
    total: int
    page: int
    page_size: int


@dataclass(slots=True)
class HistoryStats:
    """Aggregate counts over history records."""

    total: int = 0
    success: int = 0
    failed: int = 0
    scheduled: int = 0
    manual: int = 0
    test: int = 0


__all__ = [
    "Attachment",
    "AttachmentMeta",
    "HistoryPage",
    "HistoryRecord",
    "HistoryStats",
    "MailAccount",
    "SCHEDULE_TYPES",
    "SEND_STATUSES",
    "SEND_TYPES",
    "ScheduleType",
    "ScheduledTask",
    "SendRequest",
    "SendResult",
    "SendStatus",
    "SendType",
    "TASK_STATUSES",
    "TaskParams",
    "TaskStatus",
    "ValidationResult",
]
