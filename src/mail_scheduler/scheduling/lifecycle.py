"""Scheduled task lifecycle: CRUD, validation and execution."""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from ..core.datetime_utils import parse_datetime, utc_now
from ..core.interfaces import HistoryRecorder, MailSender, TaskRepository
from ..core.models import (
    SCHEDULE_TYPES,
    TASK_STATUSES,
    ScheduledTask,
    SendRequest,
    SendResult,
    TaskParams,
    ValidationResult,
)
from .recurrence import is_recurring, next_run
from .validation import TaskValidationError, validate_task_params

LOGGER = logging.getLogger(__name__)

# Statuses a task never leaves once reached.
TERMINAL_STATUSES = frozenset({"sent", "cancelled"})

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "account_id",
        "to",
        "subject",
        "text",
        "html",
        "attachments",
        "schedule_type",
        "scheduled_at",
        "interval_minutes",
        "weekday",
        "day_of_month",
        "status",
        "max_send_count",
    }
)


class TaskManager:
    """Own the scheduled task state machine.

    Mutations serialise on a store lock so a read-modify-write cycle never
    interleaves with another. Executions claim the task id in an in-flight
    set before touching the store, so a scheduler tick and a manual execute
    cannot send the same task twice at once.
    """

    def __init__(
        self,
        store: TaskRepository,
        sender: MailSender,
        history: HistoryRecorder,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._sender = sender
        self._history = history
        self._clock = clock
        self._store_lock = threading.RLock()
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    # Queries ----------------------------------------------------------------
    def list_tasks(self) -> list[ScheduledTask]:
        """Return all stored tasks."""
        return self._store.list_tasks()

    def get_task(self, task_id: str) -> ScheduledTask | None:
        """Return a single task by id."""
        return self._store.get_task(task_id)

    def due_tasks(self, now: datetime | None = None) -> list[ScheduledTask]:
        """Return pending tasks whose scheduled time has arrived."""
        now = now or self._clock()
        return [task for task in self._store.list_tasks() if _is_due(task, now)]

    def is_in_flight(self, task_id: str) -> bool:
        """Whether an execution of ``task_id`` is currently running."""
        with self._in_flight_lock:
            return task_id in self._in_flight

    # Mutations --------------------------------------------------------------
    def validate(self, params: TaskParams) -> ValidationResult:
        """Validate ``params`` against the current time."""
        return validate_task_params(params, self._clock())

    def create(self, params: TaskParams) -> ScheduledTask:
        """Validate and persist a new pending task.

        Raises:
            TaskValidationError: If ``params`` are invalid.
        """
        result = self.validate(params)
        if not result.valid:
            raise TaskValidationError(result.message)

        scheduled_at = parse_datetime(params.scheduled_at)
        if scheduled_at is None:
            raise TaskValidationError("Scheduled time must not be empty")

        task = ScheduledTask(
            id=_generate_id(),
            name=params.name.strip(),
            account_id=params.account_id or None,
            to=params.to,
            subject=params.subject,
            text=params.text,
            html=params.html,
            attachments=list(params.attachments),
            schedule_type=params.schedule_type,  # type: ignore[arg-type]
            scheduled_at=scheduled_at,
            interval_minutes=params.interval_minutes,
            weekday=params.weekday,
            day_of_month=params.day_of_month,
            status="pending",
            created_at=self._clock(),
            send_count=0,
            max_send_count=params.max_send_count,
        )
        with self._store_lock:
            tasks = self._store.list_tasks()
            tasks.append(task)
            self._store.save_tasks(tasks)
        LOGGER.info("Created scheduled email %s (%s)", task.name, task.id)
        return task

    def update(self, task_id: str, **changes: Any) -> ScheduledTask | None:
        """Merge the supplied fields into a task.

        Cross-field consistency is not re-checked; fields left over from a
        previous schedule type are kept and ignored.

        Raises:
            TaskValidationError: On unknown fields or enum values, or when
                moving a ``sent`` or ``cancelled`` task to another status.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TaskValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
        if "status" in changes and changes["status"] not in TASK_STATUSES:
            raise TaskValidationError(f"Unsupported status: {changes['status']}")
        if "schedule_type" in changes and changes["schedule_type"] not in SCHEDULE_TYPES:
            raise TaskValidationError(f"Unsupported schedule type: {changes['schedule_type']}")
        if "scheduled_at" in changes:
            try:
                changes["scheduled_at"] = parse_datetime(changes["scheduled_at"])
            except (TypeError, ValueError) as exc:
                raise TaskValidationError(
                    f"Invalid scheduled time: {changes['scheduled_at']}"
                ) from exc
            if changes["scheduled_at"] is None:
                raise TaskValidationError("Scheduled time must not be empty")
        if "attachments" in changes:
            changes["attachments"] = list(changes["attachments"] or [])

        with self._store_lock:
            tasks = self._store.list_tasks()
            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                return None
            new_status = changes.get("status", task.status)
            if task.status in TERMINAL_STATUSES and new_status != task.status:
                raise TaskValidationError(
                    f"Task {task_id} is {task.status} and cannot change status"
                )
            for name, value in changes.items():
                setattr(task, name, value)
            self._store.save_tasks(tasks)
        LOGGER.info("Updated scheduled email %s", task_id)
        return task

    def delete(self, task_id: str) -> bool:
        """Remove a task permanently regardless of its status."""
        with self._store_lock:
            tasks = self._store.list_tasks()
            remaining = [t for t in tasks if t.id != task_id]
            if len(remaining) == len(tasks):
                return False
            self._store.save_tasks(remaining)
        LOGGER.info("Deleted scheduled email %s", task_id)
        return True

    def cancel(self, task_id: str) -> bool:
        """Move a task to the terminal ``cancelled`` state.

        A task that is already ``sent`` or ``cancelled`` is left unchanged.
        Returns ``False`` only when the task does not exist.
        """
        with self._store_lock:
            task = self._store.get_task(task_id)
            if task is None:
                return False
            if task.status in TERMINAL_STATUSES:
                LOGGER.info("Scheduled email %s already %s", task_id, task.status)
                return True
            return self.update(task_id, status="cancelled") is not None

    # Execution --------------------------------------------------------------
    def execute_due(self, task_id: str) -> SendResult:
        """Execute ``task_id`` if it is still pending and due.

        The status is re-read after the in-flight claim so a task cancelled
        or already sent since the scan is skipped.
        """
        with self._claimed(task_id) as claimed:
            if not claimed:
                return SendResult(False, f"Task {task_id} is already being executed")
            task = self._store.get_task(task_id)
            if task is None:
                return SendResult(False, f"Task not found: {task_id}")
            if not _is_due(task, self._clock()):
                LOGGER.debug("Skipping task %s; no longer due (status=%s)", task_id, task.status)
                return SendResult(False, f"Task {task_id} is not due")
            return self._execute_claimed(task)

    def execute_now(self, task_id: str) -> SendResult:
        """Send a task immediately, ignoring its scheduled time."""
        with self._claimed(task_id) as claimed:
            if not claimed:
                return SendResult(False, f"Task {task_id} is already being executed")
            task = self._store.get_task(task_id)
            if task is None:
                return SendResult(False, f"Task not found: {task_id}")
            if task.status == "cancelled":
                return SendResult(False, "Cancelled tasks cannot be executed")
            return self._execute_claimed(task)

    def execute(self, task: ScheduledTask) -> SendResult:
        """Send ``task`` and apply the resulting state transition."""
        with self._claimed(task.id) as claimed:
            if not claimed:
                return SendResult(False, f"Task {task.id} is already being executed")
            return self._execute_claimed(task)

    def _execute_claimed(self, task: ScheduledTask) -> SendResult:
        LOGGER.info("Executing scheduled email %s (%s)", task.name, task.id)
        request = SendRequest(
            to=task.to,
            subject=task.subject,
            text=task.text,
            html=task.html,
            attachments=list(task.attachments),
            account_id=task.account_id,
        )
        try:
            result = self._sender.send(request)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Unexpected error executing scheduled email %s", task.id)
            result = SendResult(False, f"Failed to send email: {exc}")

        executed_at = self._clock()
        self._history.add_record(
            send_type="scheduled",
            to=task.to,
            subject=task.subject,
            status="success" if result.success else "failed",
            account_id=task.account_id,
            text=task.text,
            html=task.html,
            error_message=None if result.success else result.message,
            scheduled_email_id=task.id,
            attachments=task.attachments,
        )
        self._apply_outcome(task.id, task, result, executed_at)
        return result

    def _apply_outcome(
        self,
        task_id: str,
        executed: ScheduledTask,
        result: SendResult,
        executed_at: datetime,
    ) -> None:
        with self._store_lock:
            tasks = self._store.list_tasks()
            current = next((t for t in tasks if t.id == task_id), None)
            if current is None:
                LOGGER.info("Scheduled email %s was deleted during execution", task_id)
                return

            terminal = current.status in TERMINAL_STATUSES
            if result.success:
                current.last_sent_at = executed_at
                current.send_count += 1
                current.error_message = None
                cap_reached = (
                    current.max_send_count is not None
                    and current.send_count >= current.max_send_count
                )
                if not is_recurring(current) or cap_reached:
                    if not terminal:
                        current.status = "sent"
                elif not terminal:
                    current.status = "pending"
                    # step from the executed snapshot; scheduled_at never moves back
                    upcoming = next_run(executed, executed_at)
                    current.scheduled_at = max(upcoming, current.scheduled_at)
                LOGGER.info(
                    "Scheduled email %s sent (count=%d, status=%s)",
                    task_id,
                    current.send_count,
                    current.status,
                )
            else:
                current.error_message = result.message
                if not terminal:
                    current.status = "failed"
                LOGGER.warning("Scheduled email %s failed: %s", task_id, result.message)
            self._store.save_tasks(tasks)

    @contextmanager
    def _claimed(self, task_id: str) -> Iterator[bool]:
        with self._in_flight_lock:
            if task_id in self._in_flight:
                claimed = False
            else:
                self._in_flight.add(task_id)
                claimed = True
        try:
            yield claimed
        finally:
            if claimed:
                with self._in_flight_lock:
                    self._in_flight.discard(task_id)


def _is_due(task: ScheduledTask, now: datetime) -> bool:
    return task.status == "pending" and now >= task.scheduled_at


def _generate_id() -> str:
    return f"task_{secrets.token_hex(8)}"


__all__ = ["TaskManager", "TaskValidationError"]
