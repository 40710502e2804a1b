"""Tests for the scheduled task lifecycle and execution state machine."""

from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import pytest

from mail_scheduler.core.models import SendRequest, SendResult, TaskParams
from mail_scheduler.mail import MailDispatcher
from mail_scheduler.scheduling import EmailScheduler, TaskManager, TaskValidationError
from mail_scheduler.storage import HistoryLog, JsonTaskStore


@pytest.fixture
def manager(
    tmp_path: Path, dispatcher: MailDispatcher, history: HistoryLog, clock
) -> TaskManager:
    store = JsonTaskStore(tmp_path / "scheduled_emails.json")
    return TaskManager(store, dispatcher, history, clock=clock)


def _params(clock, **overrides) -> TaskParams:
    fields = {
        "name": "Report",
        "to": "a@b.com",
        "subject": "S",
        "text": "T",
        "schedule_type": "once",
        "scheduled_at": (clock() + timedelta(minutes=1)).isoformat(),
    }
    fields.update(overrides)
    return TaskParams(**fields)


def _scheduled_records(history: HistoryLog, task_id: str) -> list:
    return [
        record
        for record in history.get_history(page_size=1000, send_type="scheduled").records
        if record.scheduled_email_id == task_id
    ]


def test_create_assigns_defaults(manager: TaskManager, clock) -> None:
    task = manager.create(_params(clock))

    assert task.id.startswith("task_")
    assert task.status == "pending"
    assert task.send_count == 0
    assert task.created_at == clock()
    assert manager.get_task(task.id) is not None


def test_create_rejects_invalid_params(manager: TaskManager, clock) -> None:
    past = (clock() - timedelta(minutes=1)).isoformat()
    with pytest.raises(TaskValidationError, match="must be in the future"):
        manager.create(_params(clock, scheduled_at=past))
    assert manager.list_tasks() == []


def test_scenario_once_task_sent_once(
    manager: TaskManager, history: HistoryLog, transport_factory, clock
) -> None:
    task = manager.create(_params(clock))
    scheduler = EmailScheduler(manager)

    assert scheduler.tick() == []
    clock.advance(minutes=2)
    futures = scheduler.tick()
    assert [future.result().success for future in futures] == [True]

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "sent"
    assert stored.send_count == 1
    assert stored.last_sent_at == clock()
    records = _scheduled_records(history, task.id)
    assert len(records) == 1
    assert records[0].status == "success"

    clock.advance(minutes=5)
    assert scheduler.tick() == []
    assert len(_scheduled_records(history, task.id)) == 1
    assert len(transport_factory.outbox) == 1


def test_scenario_once_task_failure(
    manager: TaskManager, history: HistoryLog, transport_factory, clock
) -> None:
    transport_factory.send_error = "550 rejected"
    task = manager.create(_params(clock))
    clock.advance(minutes=2)

    futures = EmailScheduler(manager).tick()
    assert not futures[0].result().success

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "failed"
    assert stored.send_count == 0
    assert "550 rejected" in (stored.error_message or "")
    records = _scheduled_records(history, task.id)
    assert [record.status for record in records] == ["failed"]

    clock.advance(minutes=5)
    assert EmailScheduler(manager).tick() == []


def test_scenario_interval_anchors_to_execution(manager: TaskManager, clock) -> None:
    start = clock()
    task = manager.create(
        _params(
            clock,
            schedule_type="interval",
            interval_minutes=5,
            scheduled_at=start.isoformat(),
        )
    )
    clock.advance(minutes=12)
    executed_at = clock()

    manager.execute_due(task.id)

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "pending"
    assert stored.scheduled_at == executed_at + timedelta(minutes=5)
    assert stored.scheduled_at != start + timedelta(minutes=5)


def test_daily_task_keeps_time_of_day(manager: TaskManager, clock) -> None:
    start = clock()
    task = manager.create(
        _params(clock, schedule_type="daily", scheduled_at=start.isoformat())
    )
    clock.advance(minutes=40)

    manager.execute_due(task.id)

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.scheduled_at == start + timedelta(days=1)
    assert stored.status == "pending"


def test_max_send_count_caps_recurring_task(
    manager: TaskManager, history: HistoryLog, transport_factory, clock
) -> None:
    task = manager.create(
        _params(
            clock,
            schedule_type="interval",
            interval_minutes=1,
            scheduled_at=clock().isoformat(),
            max_send_count=3,
        )
    )
    scheduler = EmailScheduler(manager)
    for _ in range(5):
        clock.advance(minutes=2)
        for future in scheduler.tick():
            future.result()

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.send_count == 3
    assert stored.status == "sent"
    assert len(_scheduled_records(history, task.id)) == 3
    assert len(transport_factory.outbox) == 3


def test_cancelled_task_never_executes(
    manager: TaskManager, transport_factory, clock
) -> None:
    task = manager.create(
        _params(clock, schedule_type="daily", scheduled_at=clock().isoformat())
    )
    assert manager.cancel(task.id)
    assert manager.get_task(task.id).status == "cancelled"  # type: ignore[union-attr]

    clock.advance(days=3)
    assert EmailScheduler(manager).tick() == []
    assert manager.execute_due(task.id).success is False
    assert manager.execute_now(task.id).message == "Cancelled tasks cannot be executed"
    assert transport_factory.outbox == []
    assert not manager.cancel("task_missing")


def test_update_merges_supplied_fields(manager: TaskManager, clock) -> None:
    task = manager.create(_params(clock))
    later = clock() + timedelta(hours=2)

    updated = manager.update(
        task.id, subject="New subject", schedule_type="interval", scheduled_at=later.isoformat()
    )
    assert updated is not None
    assert updated.subject == "New subject"
    assert updated.schedule_type == "interval"
    assert updated.scheduled_at == later
    assert updated.id == task.id
    assert updated.created_at == task.created_at
    assert manager.update("task_missing", subject="x") is None


def test_update_rejects_bad_values(manager: TaskManager, clock) -> None:
    task = manager.create(_params(clock))
    with pytest.raises(TaskValidationError):
        manager.update(task.id, status="archived")
    with pytest.raises(TaskValidationError):
        manager.update(task.id, schedule_type="hourly")
    with pytest.raises(TaskValidationError):
        manager.update(task.id, send_count=10)
    with pytest.raises(TaskValidationError):
        manager.update(task.id, scheduled_at="not a date")


def test_failed_task_revived_by_update(manager: TaskManager, transport_factory, clock) -> None:
    transport_factory.send_error = "boom"
    task = manager.create(_params(clock))
    clock.advance(minutes=2)
    manager.execute_due(task.id)
    assert manager.get_task(task.id).status == "failed"  # type: ignore[union-attr]

    transport_factory.send_error = None
    manager.update(task.id, status="pending")
    assert manager.execute_due(task.id).success
    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "sent"
    assert stored.error_message is None


def test_execute_now_ignores_schedule(manager: TaskManager, clock) -> None:
    task = manager.create(
        _params(clock, schedule_type="weekly", weekday=1, scheduled_at=clock().isoformat())
    )
    original = manager.get_task(task.id).scheduled_at  # type: ignore[union-attr]
    clock.advance(minutes=1)

    result = manager.execute_now(task.id)
    assert result.success
    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.send_count == 1
    assert stored.scheduled_at == original + timedelta(days=7)
    assert manager.execute_now("task_missing").message == "Task not found: task_missing"


def test_delete(manager: TaskManager, clock) -> None:
    task = manager.create(_params(clock))
    assert manager.delete(task.id)
    assert not manager.delete(task.id)
    assert manager.list_tasks() == []


class _BlockingSender:
    """Sender that parks inside ``send`` until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def send(self, request: SendRequest) -> SendResult:
        self.calls += 1
        self.entered.set()
        self.release.wait(5)
        return SendResult(True, "Email sent successfully: <blocked@example.com>")


def test_in_flight_guard_prevents_double_send(
    tmp_path: Path, history: HistoryLog, clock
) -> None:
    sender = _BlockingSender()
    manager = TaskManager(
        JsonTaskStore(tmp_path / "tasks.json"), sender, history, clock=clock
    )
    task = manager.create(
        _params(clock, schedule_type="daily", scheduled_at=clock().isoformat())
    )

    results: list[SendResult] = []
    worker = threading.Thread(target=lambda: results.append(manager.execute_due(task.id)))
    worker.start()
    assert sender.entered.wait(5)

    assert manager.is_in_flight(task.id)
    busy = manager.execute_due(task.id)
    assert not busy.success
    assert "already being executed" in busy.message
    assert EmailScheduler(manager).tick() == []

    sender.release.set()
    worker.join(5)
    assert results and results[0].success
    assert sender.calls == 1
    assert not manager.is_in_flight(task.id)
    assert len(_scheduled_records(history, task.id)) == 1


def test_sender_exception_recorded_as_failure(
    tmp_path: Path, history: HistoryLog, clock
) -> None:
    class ExplodingSender:
        def send(self, request: SendRequest) -> SendResult:
            raise RuntimeError("kaboom")

    manager = TaskManager(
        JsonTaskStore(tmp_path / "tasks.json"), ExplodingSender(), history, clock=clock
    )
    task = manager.create(_params(clock))
    clock.advance(minutes=2)

    result = manager.execute_due(task.id)
    assert not result.success
    assert "kaboom" in result.message
    assert manager.get_task(task.id).status == "failed"  # type: ignore[union-attr]
    assert _scheduled_records(history, task.id)[0].status == "failed"


def test_execute_sends_supplied_task(
    manager: TaskManager, history: HistoryLog, transport_factory, clock
) -> None:
    task = manager.create(
        _params(clock, schedule_type="monthly", day_of_month=10, scheduled_at=clock().isoformat())
    )

    result = manager.execute(task)

    assert result.success
    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "pending"
    assert stored.scheduled_at.month == task.scheduled_at.month + 1
    assert transport_factory.outbox[0].subject == "[Bot] S"
    assert _scheduled_records(history, task.id)[0].status == "success"


def test_cancel_is_terminal(manager: TaskManager, clock) -> None:
    task = manager.create(_params(clock))
    manager.cancel(task.id)

    with pytest.raises(TaskValidationError, match="cannot change status"):
        manager.update(task.id, status="pending")
    renamed = manager.update(task.id, name="Renamed")
    assert renamed is not None
    assert renamed.status == "cancelled"


def test_sent_once_task_cannot_be_requeued(
    manager: TaskManager, history: HistoryLog, transport_factory, clock
) -> None:
    task = manager.create(_params(clock))
    clock.advance(minutes=2)
    assert manager.execute_due(task.id).success

    with pytest.raises(TaskValidationError, match="sent and cannot change status"):
        manager.update(task.id, status="pending")
    assert manager.execute_due(task.id).success is False

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "sent"
    assert stored.send_count == 1
    assert len(_scheduled_records(history, task.id)) == 1
    assert len(transport_factory.outbox) == 1


def test_sent_task_stays_sent_after_failed_manual_resend(
    manager: TaskManager, transport_factory, clock
) -> None:
    task = manager.create(_params(clock))
    clock.advance(minutes=2)
    manager.execute_due(task.id)

    transport_factory.send_error = "421 try later"
    assert not manager.execute_now(task.id).success

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "sent"
    assert "421 try later" in (stored.error_message or "")
    assert manager.cancel(task.id)
    assert manager.get_task(task.id).status == "sent"  # type: ignore[union-attr]


class _ReschedulingSender:
    """Sender that pushes the task's schedule forward mid-send."""

    def __init__(self, manager_ref: list[TaskManager], new_time: str) -> None:
        self._manager_ref = manager_ref
        self._new_time = new_time

    def send(self, request: SendRequest) -> SendResult:
        manager = self._manager_ref[0]
        (task,) = manager.list_tasks()
        manager.update(task.id, scheduled_at=self._new_time)
        return SendResult(True, "Email sent successfully: <moved@example.com>")


def test_schedule_edited_during_send_is_not_pulled_back(
    tmp_path: Path, history: HistoryLog, clock
) -> None:
    start = clock()
    pushed_to = start + timedelta(days=10)
    manager_ref: list[TaskManager] = []
    sender = _ReschedulingSender(manager_ref, pushed_to.isoformat())
    manager = TaskManager(JsonTaskStore(tmp_path / "tasks.json"), sender, history, clock=clock)
    manager_ref.append(manager)
    task = manager.create(
        _params(clock, schedule_type="daily", scheduled_at=start.isoformat())
    )
    clock.advance(minutes=5)

    assert manager.execute_due(task.id).success

    stored = manager.get_task(task.id)
    assert stored is not None
    assert stored.status == "pending"
    assert stored.send_count == 1
    assert stored.scheduled_at == pushed_to
    assert stored.scheduled_at > start + timedelta(days=1)
