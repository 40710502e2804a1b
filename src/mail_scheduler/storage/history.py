"""Bounded, file-backed log of every send attempt."""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import cast

from ..core.datetime_utils import utc_now
from ..core.interfaces import HistoryRecorder
from ..core.models import (
    Attachment,
    AttachmentMeta,
    HistoryPage,
    HistoryRecord,
    HistoryStats,
    SendStatus,
    SendType,
)
from .json_file import read_json, write_json
from .serialization import record_from_dict, record_to_dict

LOGGER = logging.getLogger(__name__)

MAX_HISTORY_SIZE = 1000
DEFAULT_PAGE_SIZE = 20


class HistoryLog(HistoryRecorder):
    """Newest-first history of send attempts mirrored in memory.

    History is best effort: read failures start from an empty log and write
    failures are logged, so recording never blocks or fails a send.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        max_records: int = MAX_HISTORY_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Configure the log; call :meth:`init` to load persisted records."""
        if max_records <= 0:
            raise ValueError("max_records must be positive")
        self._path = Path(path) if path is not None else None
        self._max_records = max_records
        self._clock = clock
        self._records: list[HistoryRecord] = []
        self._lock = threading.Lock()
        self._initialized = False

    def init(self, path: Path | str | None = None) -> None:
        """Load persisted records. Subsequent calls are no-ops."""
        with self._lock:
            if self._initialized:
                return
            if path is not None:
                self._path = Path(path)
            self._records = self._load()
            self._initialized = True
        LOGGER.info("Email history initialised with %d record(s)", len(self._records))

    def __len__(self) -> int:
        return len(self._records)

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
        attachments: Sequence[AttachmentMeta | Attachment] = (),
    ) -> HistoryRecord:
        """Prepend a record for one send attempt and persist the log."""
        metas = tuple(
            AttachmentMeta(filename=item.filename, content_type=item.content_type)
            for item in attachments
        )
        record = HistoryRecord(
            id=_generate_id(),
            send_type=cast(SendType, send_type),
            account_id=account_id,
            to=to,
            subject=subject,
            text=text,
            html=html,
            status=cast(SendStatus, status),
            error_message=error_message,
            sent_at=self._clock(),
            scheduled_email_id=scheduled_email_id,
            attachment_count=len(metas),
            attachments=metas,
        )
        with self._lock:
            self._records.insert(0, record)
            if len(self._records) > self._max_records:
                del self._records[self._max_records :]
            self._save()
        return record

    def get_history(
        self,
        *,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        send_type: str | None = None,
        status: str | None = None,
    ) -> HistoryPage:
        """Filter by type and status, then return the requested page."""
        page = max(page, 1)
        page_size = max(page_size, 1)
        with self._lock:
            filtered = [
                record
                for record in self._records
                if (send_type is None or record.send_type == send_type)
                and (status is None or record.status == status)
            ]
        start = (page - 1) * page_size
        return HistoryPage(
            records=filtered[start : start + page_size],
            total=len(filtered),
            page=page,
            page_size=page_size,
        )

    def get_record(self, record_id: str) -> HistoryRecord | None:
        """Return a single record by id."""
        with self._lock:
            return next((r for r in self._records if r.id == record_id), None)

    def get_stats(self) -> HistoryStats:
        """Aggregate counts across every retained record."""
        with self._lock:
            records = list(self._records)
        return _aggregate(records)

    def get_today_stats(self) -> HistoryStats:
        """Aggregate counts for records sent on the current local calendar day."""
        today = self._clock().astimezone().date()
        with self._lock:
            records = [
                record
                for record in self._records
                if record.sent_at.astimezone().date() == today
            ]
        return _aggregate(records)

    def delete_record(self, record_id: str) -> bool:
        """Remove a record. Returns ``True`` if it existed."""
        with self._lock:
            for index, record in enumerate(self._records):
                if record.id == record_id:
                    del self._records[index]
                    self._save()
                    return True
        return False

    def clear_history(self) -> None:
        """Drop every record."""
        with self._lock:
            self._records = []
            self._save()
        LOGGER.info("Email history cleared")

    def _load(self) -> list[HistoryRecord]:
        if self._path is None:
            return []
        raw = read_json(self._path, [])
        if not isinstance(raw, list):
            LOGGER.error("History file %s does not hold a list; starting empty", self._path)
            return []
        records: list[HistoryRecord] = []
        for entry in raw:
            try:
                records.append(record_from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Skipping unreadable history entry: %s", exc)
        LOGGER.debug("Loaded %d history record(s) from %s", len(records), self._path)
        return records[: self._max_records]

    def _save(self) -> None:
        if self._path is None:
            return
        write_json(self._path, [record_to_dict(record) for record in self._records])


def _aggregate(records: Iterable[HistoryRecord]) -> HistoryStats:
    stats = HistoryStats()
    for record in records:
        stats.total += 1
        if record.status == "success":
            stats.success += 1
        else:
            stats.failed += 1
        if record.send_type == "scheduled":
            stats.scheduled += 1
        elif record.send_type == "manual":
            stats.manual += 1
        elif record.send_type == "test":
            stats.test += 1
    return stats


def _generate_id() -> str:
    return f"hist_{secrets.token_hex(8)}"


__all__ = ["DEFAULT_PAGE_SIZE", "HistoryLog", "MAX_HISTORY_SIZE"]
