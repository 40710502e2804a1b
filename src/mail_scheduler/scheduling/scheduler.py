"""Periodic checker that dispatches due scheduled emails."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import wait as wait_for_futures

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import ConflictingIdError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..core.models import SendResult
from .lifecycle import TaskManager

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
TICK_JOB_ID = "check_scheduled_emails"
DISPATCH_EXECUTOR = "dispatch"


class EmailScheduler:
    """Scan for due tasks on a fixed period and execute them in a worker pool.

    The scan runs as an APScheduler interval job. Each due task becomes a
    one-shot job on the ``dispatch`` executor, so a tick never waits for the
    sends it hands off and each send runs inside its own error boundary.
    """

    def __init__(
        self,
        manager: TaskManager,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_workers: int = 4,
        name: str = "scheduled-email-checker",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._manager = manager
        self._interval = interval_seconds
        self._max_workers = max_workers
        self._name = name
        self._lock = threading.Lock()
        self._scheduler: BackgroundScheduler | None = None
        self._accepting = False
        self._pending: set[Future[SendResult]] = set()

    @property
    def running(self) -> bool:
        """Whether the periodic job is scheduled."""
        scheduler = self._scheduler
        return scheduler is not None and scheduler.running

    def start(self) -> bool:
        """Start the periodic job. Returns ``False`` if it is already running."""
        with self._lock:
            if self._scheduler is not None and self._scheduler.running:
                LOGGER.warning("Scheduler %s is already running", self._name)
                return False
            scheduler = BackgroundScheduler(
                executors={
                    "default": ThreadPoolExecutor(1),
                    DISPATCH_EXECUTOR: ThreadPoolExecutor(self._max_workers),
                },
                job_defaults={"coalesce": True, "max_instances": 1},
                daemon=True,
            )
            scheduler.add_job(
                self.tick,
                IntervalTrigger(seconds=self._interval),
                id=TICK_JOB_ID,
                name=self._name,
                replace_existing=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            self._accepting = True
        LOGGER.info("Scheduler %s started (interval=%.1fs)", self._name, self._interval)
        return True

    def stop(self, *, wait: bool = False, timeout: float | None = None) -> None:
        """Stop future ticks.

        With ``wait``, block until sends already handed off have finished.
        Without it, sends that have not begun yet are cancelled.
        """
        with self._lock:
            scheduler = self._scheduler
            if scheduler is None or not self._accepting:
                return
            self._accepting = False
            pending = set(self._pending)

        scheduler.remove_job(TICK_JOB_ID)
        if wait:
            wait_for_futures(pending, timeout=timeout)
        else:
            for future in pending:
                future.cancel()
        scheduler.shutdown(wait=wait)
        with self._lock:
            self._scheduler = None
        LOGGER.info("Scheduler %s stopped", self._name)

    def tick(self) -> list[Future[SendResult]]:
        """Hand every due task to the dispatch executor and return the futures.

        Before :meth:`start` the tasks run inline, which keeps a single tick
        easy to drive from a script or a test.
        """
        try:
            due = self._manager.due_tasks()
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Failed to load scheduled emails")
            return []
        if not due:
            return []

        LOGGER.info("Found %d due scheduled email(s)", len(due))
        futures: list[Future[SendResult]] = []
        for task in due:
            if self._manager.is_in_flight(task.id):
                LOGGER.debug("Task %s still executing; skipping this tick", task.id)
                continue
            future: Future[SendResult] = Future()
            with self._lock:
                scheduler = self._scheduler
                if scheduler is not None and not self._accepting:
                    LOGGER.warning(
                        "Scheduler %s is shutting down; task %s left for later",
                        self._name,
                        task.id,
                    )
                    break
                queued = scheduler is not None and self._hand_off(scheduler, task.id, future)
            if scheduler is None:
                future.set_running_or_notify_cancel()
                future.set_result(self._execute_safely(task.id))
            elif not queued:
                continue
            else:
                future.add_done_callback(self._forget)
            futures.append(future)
        return futures

    def _hand_off(
        self, scheduler: BackgroundScheduler, task_id: str, future: Future[SendResult]
    ) -> bool:
        """Queue a one-shot dispatch job. Called with ``_lock`` held."""
        try:
            scheduler.add_job(
                self._run_job,
                args=(task_id, future),
                id=f"send:{task_id}",
                executor=DISPATCH_EXECUTOR,
                misfire_grace_time=None,
            )
        except ConflictingIdError:
            LOGGER.debug("Task %s already queued for dispatch", task_id)
            return False
        self._pending.add(future)
        return True

    def _forget(self, future: Future[SendResult]) -> None:
        with self._lock:
            self._pending.discard(future)

    def _run_job(self, task_id: str, future: Future[SendResult]) -> None:
        if not future.set_running_or_notify_cancel():
            LOGGER.info("Dispatch of task %s cancelled by shutdown", task_id)
            return
        future.set_result(self._execute_safely(task_id))

    def _execute_safely(self, task_id: str) -> SendResult:
        try:
            return self._manager.execute_due(task_id)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Scheduled email %s raised during execution", task_id)
            return SendResult(False, str(exc))


__all__ = ["DEFAULT_INTERVAL_SECONDS", "EmailScheduler", "TICK_JOB_ID"]
