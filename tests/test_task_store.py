"""Tests for the JSON task store and its serialised shape."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from mail_scheduler.core.models import Attachment, ScheduledTask
from mail_scheduler.storage import JsonTaskStore

WHEN = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)


def _task(task_id: str, **kwargs) -> ScheduledTask:
    return ScheduledTask(
        id=task_id,
        name=f"Task {task_id}",
        to="a@b.com",
        subject="Subject",
        schedule_type="daily",
        scheduled_at=WHEN,
        status="pending",
        created_at=WHEN,
        text="Body",
        **kwargs,
    )


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    store = JsonTaskStore(tmp_path / "missing.json")
    assert store.list_tasks() == []
    assert store.get_task("anything") is None


def test_corrupt_file_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "scheduled_emails.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonTaskStore(path).list_tasks() == []


def test_save_and_reload_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "scheduled_emails.json"
    store = JsonTaskStore(path)
    tasks = [
        _task("task_a", attachments=[Attachment(filename="a.txt", content=b"hello")]),
        _task("task_b", weekday=3, max_send_count=2),
    ]
    assert store.save_tasks(tasks)

    reloaded = JsonTaskStore(path)
    loaded = reloaded.list_tasks()
    assert [task.id for task in loaded] == ["task_a", "task_b"]
    assert loaded[0].scheduled_at == WHEN
    assert loaded[0].attachments[0].content == "aGVsbG8="
    assert loaded[1].weekday == 3
    assert loaded[1].max_send_count == 2
    assert reloaded.get_task("task_b") is not None


def test_persisted_document_uses_camel_case(tmp_path: Path) -> None:
    path = tmp_path / "scheduled_emails.json"
    JsonTaskStore(path).save_tasks([_task("task_a", interval_minutes=5)])

    document = json.loads(path.read_text(encoding="utf-8"))
    entry = document[0]
    assert entry["scheduleType"] == "daily"
    assert entry["intervalMinutes"] == 5
    assert entry["sendCount"] == 0
    assert entry["scheduledAt"] == "2025-03-10T09:00:00+00:00"


def test_unreadable_entries_skipped(tmp_path: Path) -> None:
    path = tmp_path / "scheduled_emails.json"
    store = JsonTaskStore(path)
    store.save_tasks([_task("task_ok")])
    document = json.loads(path.read_text(encoding="utf-8"))
    document.append({"id": "task_bad", "scheduledAt": "not a date", "to": "x@y.z"})
    path.write_text(json.dumps(document), encoding="utf-8")

    assert [task.id for task in store.list_tasks()] == ["task_ok"]


def test_save_failure_reported(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    store = JsonTaskStore(blocker / "scheduled_emails.json")
    assert store.save_tasks([_task("task_a")]) is False
