"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .models import (
    AttachmentMeta,
    HistoryRecord,
    MailAccount,
    ScheduledTask,
    SendRequest,
    SendResult,
)


class AccountNotFoundError(LookupError):
    """Raised when a mail account cannot be resolved."""


class TaskRepository(Protocol):
    """Abstraction for scheduled task persistence."""

    def list_tasks(self) -> list[ScheduledTask]:
        """Return every stored task in store order."""
        raise NotImplementedError

    def get_task(self, task_id: str) -> ScheduledTask | None:
        """Return the task with ``task_id`` if present."""
        raise NotImplementedError

    def save_tasks(self, tasks: Sequence[ScheduledTask]) -> bool:
        """Overwrite the whole collection. Returns ``False`` if the write failed."""
        raise NotImplementedError


class AccountProvider(Protocol):
    """Lookup service supplying SMTP credentials by id."""

    def get_account(self, account_id: str) -> MailAccount | None:
        """Return the account with ``account_id`` if present."""
        raise NotImplementedError

    def get_default_account(self) -> MailAccount | None:
        """Return the account used when callers do not name one."""
        raise NotImplementedError

    def resolve(self, account_id: str | None) -> MailAccount:
        """Return the named account, or the default one when no id is given.

        Raises:
            AccountNotFoundError: If nothing matches.
        """
        raise NotImplementedError


class HistoryRecorder(Protocol):
    """Sink for send attempt records."""

    # pylint: disable=too-many-arguments
    def add_record(
        self,
        *,
        send_type: str,
        to: str,
        subject: str,
        status: str,
        account_id: str | None = None,
        text: str | None = None,
        html: str | None = None,
        error_message: str | None = None,
        scheduled_email_id: str | None = None,
        attachments: Sequence[AttachmentMeta] = (),
    ) -> HistoryRecord:
        """Record one send attempt and return the stored record."""
        raise NotImplementedError


class MailSender(Protocol):
    """Delivers a message and reports the outcome without raising."""

    def send(self, request: SendRequest) -> SendResult:
        """Send ``request`` and return the outcome."""
        raise NotImplementedError


__all__ = [
    "AccountNotFoundError",
    "AccountProvider",
    "HistoryRecorder",
    "MailSender",
    "TaskRepository",
]
