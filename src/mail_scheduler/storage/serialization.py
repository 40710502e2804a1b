"""Conversion between domain models and their persisted JSON shape.

Persisted documents use camelCase keys so files written by earlier releases
of the notifier stay readable.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from datetime import datetime
from typing import Any, cast

from ..core.datetime_utils import parse_datetime, serialize_datetime
from ..core.models import (
    Attachment,
    AttachmentMeta,
    HistoryRecord,
    MailAccount,
    ScheduledTask,
    ScheduleType,
    SendStatus,
    SendType,
    TaskStatus,
)


def _required_datetime(value: Any) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError("missing timestamp")
    return parsed


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def attachment_to_dict(
    attachment: Attachment, *, include_content: bool = True
) -> dict[str, Any]:
    """Serialise an attachment, encoding binary content as base64."""
    payload: dict[str, Any] = {"filename": attachment.filename}
    if attachment.content_type:
        payload["contentType"] = attachment.content_type
    if attachment.path:
        payload["path"] = attachment.path
    if include_content and attachment.content is not None:
        content = attachment.content
        if isinstance(content, bytes):
            content = base64.b64encode(content).decode("ascii")
        payload["content"] = content
    return payload


def attachment_from_dict(data: Mapping[str, Any]) -> Attachment:
    """Build an attachment from its persisted or request representation."""
    return Attachment(
        filename=str(data.get("filename") or "attachment"),
        content=data.get("content"),
        path=data.get("path") or None,
        content_type=data.get("contentType") or data.get("content_type") or None,
    )


def task_to_dict(task: ScheduledTask, *, include_content: bool = True) -> dict[str, Any]:
    """Serialise a scheduled task."""
    return {
        "id": task.id,
        "name": task.name,
        "accountId": task.account_id,
        "to": task.to,
        "subject": task.subject,
        "text": task.text,
        "html": task.html,
        "attachments": [
            attachment_to_dict(item, include_content=include_content)
            for item in task.attachments
        ],
        "scheduleType": task.schedule_type,
        "scheduledAt": serialize_datetime(task.scheduled_at),
        "intervalMinutes": task.interval_minutes,
        "weekday": task.weekday,
        "dayOfMonth": task.day_of_month,
        "status": task.status,
        "createdAt": serialize_datetime(task.created_at),
        "lastSentAt": serialize_datetime(task.last_sent_at),
        "errorMessage": task.error_message,
        "sendCount": task.send_count,
        "maxSendCount": task.max_send_count,
    }


def task_from_dict(data: Mapping[str, Any]) -> ScheduledTask:
    """Rebuild a scheduled task. Raises ``KeyError``/``ValueError`` on bad input."""
    scheduled_at = _required_datetime(data["scheduledAt"])
    created_at = _required_datetime(data.get("createdAt") or data["scheduledAt"])
    return ScheduledTask(
        id=str(data["id"]),
        name=str(data.get("name") or ""),
        account_id=data.get("accountId") or None,
        to=str(data["to"]),
        subject=str(data.get("subject") or ""),
        text=data.get("text"),
        html=data.get("html"),
        attachments=[
            attachment_from_dict(item) for item in data.get("attachments") or ()
        ],
        schedule_type=cast(ScheduleType, data.get("scheduleType") or "once"),
        scheduled_at=scheduled_at,
        interval_minutes=_optional_int(data.get("intervalMinutes")),
        weekday=_optional_int(data.get("weekday")),
        day_of_month=_optional_int(data.get("dayOfMonth")),
        status=cast(TaskStatus, data.get("status") or "pending"),
        created_at=created_at,
        last_sent_at=parse_datetime(data.get("lastSentAt")),
        error_message=data.get("errorMessage"),
        send_count=int(data.get("sendCount") or 0),
        max_send_count=_optional_int(data.get("maxSendCount")),
    )


def record_to_dict(record: HistoryRecord) -> dict[str, Any]:
    """Serialise a history record."""
    return {
        "id": record.id,
        "sendType": record.send_type,
        "accountId": record.account_id,
        "to": record.to,
        "subject": record.subject,
        "text": record.text,
        "html": record.html,
        "status": record.status,
        "errorMessage": record.error_message,
        "sentAt": serialize_datetime(record.sent_at),
        "scheduledEmailId": record.scheduled_email_id,
        "attachmentCount": record.attachment_count,
        "attachments": [
            {"filename": meta.filename, "contentType": meta.content_type}
            for meta in record.attachments
        ],
    }


def record_from_dict(data: Mapping[str, Any]) -> HistoryRecord:
    """Rebuild a history record. Raises ``KeyError``/``ValueError`` on bad input."""
    sent_at = _required_datetime(data["sentAt"])
    attachments = tuple(
        AttachmentMeta(
            filename=str(item.get("filename") or "attachment"),
            content_type=item.get("contentType"),
        )
        for item in data.get("attachments") or ()
    )
    return HistoryRecord(
        id=str(data["id"]),
        send_type=cast(SendType, data["sendType"]),
        account_id=data.get("accountId"),
        to=str(data.get("to") or ""),
        subject=str(data.get("subject") or ""),
        text=data.get("text"),
        html=data.get("html"),
        status=cast(SendStatus, data["status"]),
        error_message=data.get("errorMessage"),
        sent_at=sent_at,
        scheduled_email_id=data.get("scheduledEmailId"),
        attachment_count=int(data.get("attachmentCount") or len(attachments)),
        attachments=attachments,
    )


def account_to_dict(account: MailAccount, *, include_secret: bool = True) -> dict[str, Any]:
    """Serialise a mail account; the password is omitted for public views."""
    payload: dict[str, Any] = {
        "id": account.id,
        "name": account.name,
        "isDefault": account.is_default,
        "host": account.host,
        "port": account.port,
        "user": account.user,
        "senderName": account.sender_name,
        "subjectPrefix": account.subject_prefix,
        "secure": account.secure,
        "createdAt": serialize_datetime(account.created_at),
        "updatedAt": serialize_datetime(account.updated_at),
    }
    if include_secret:
        payload["pass"] = account.password
    return payload


def account_from_dict(data: Mapping[str, Any]) -> MailAccount:
    """Rebuild a mail account, tolerating missing optional fields."""
    return MailAccount(
        id=str(data["id"]),
        name=str(data.get("name") or data.get("user") or "Unnamed account"),
        is_default=bool(data.get("isDefault")),
        host=str(data.get("host") or ""),
        port=int(data.get("port") or 465),
        user=str(data.get("user") or ""),
        password=str(data.get("pass") or ""),
        sender_name=str(data.get("senderName") or ""),
        subject_prefix=str(data.get("subjectPrefix") or ""),
        secure=bool(data.get("secure", True)),
        created_at=parse_datetime(data.get("createdAt")),
        updated_at=parse_datetime(data.get("updatedAt")),
    )


__all__ = [
    "account_from_dict",
    "account_to_dict",
    "attachment_from_dict",
    "attachment_to_dict",
    "record_from_dict",
    "record_to_dict",
    "task_from_dict",
    "task_to_dict",
]
