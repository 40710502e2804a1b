"""Explicitly constructed application context."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from .commands import EmailCommandHandler
from .core.config import AppSettings
from .core.datetime_utils import utc_now
from .mail import MailDispatcher, MailService, TransportFactory
from .mail.dispatcher import default_transport_factory
from .scheduling import EmailScheduler, TaskManager
from .storage import HistoryLog, JsonAccountStore, JsonTaskStore

LOGGER = logging.getLogger(__name__)


class AppContext:
    """Shared services for one running process.

    Built once by the entry point and handed to the route layer, the chat
    handler and the CLI. ``start`` and ``shutdown`` bracket the scheduler.
    """

    # pylint: disable=too-many-instance-attributes
    def __init__(
        self,
        settings: AppSettings,
        *,
        transport_factory: TransportFactory = default_transport_factory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Wire stores, mail services, task manager and scheduler."""
        self.settings = settings
        storage = settings.storage
        self.accounts = JsonAccountStore(
            storage.accounts_path, legacy=settings.smtp, clock=clock
        )
        self.tasks = JsonTaskStore(storage.tasks_path)
        self.history = HistoryLog(
            storage.history_path,
            max_records=settings.history.max_records,
            clock=clock,
        )
        self.dispatcher = MailDispatcher(
            self.accounts,
            transport_factory=transport_factory,
            timeout_seconds=settings.smtp.timeout_seconds,
            attachment_dir=Path(storage.data_dir),
            clock=clock,
        )
        self.mail = MailService(self.dispatcher, self.history)
        self.commands = EmailCommandHandler(self.mail, prefix=settings.commands.prefix)
        self.manager = TaskManager(self.tasks, self.dispatcher, self.history, clock=clock)
        self.scheduler = EmailScheduler(
            self.manager,
            interval_seconds=settings.scheduler.interval_seconds,
            max_workers=settings.scheduler.max_workers,
        )
        self._started_at: float | None = None

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        transport_factory: TransportFactory = default_transport_factory,
        clock: Callable[[], datetime] = utc_now,
    ) -> AppContext:
        """Build a context from loaded settings."""
        return cls(settings, transport_factory=transport_factory, clock=clock)

    def __enter__(self) -> AppContext:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    @property
    def started(self) -> bool:
        """Whether :meth:`start` has run without a matching shutdown."""
        return self._started_at is not None

    @property
    def uptime_seconds(self) -> float:
        """Seconds since :meth:`start`, zero when not started."""
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def start(self) -> None:
        """Prepare the data directory, load history and start the scheduler."""
        if self._started_at is not None:
            return
        data_dir = Path(self.settings.storage.data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
        self.history.init()
        if self.settings.scheduler.enabled:
            self.scheduler.start()
        else:
            LOGGER.info("Scheduled email checker disabled by configuration")
        self._started_at = time.monotonic()
        LOGGER.info("Mail scheduler started with data directory %s", data_dir.resolve())

    def shutdown(self, *, timeout: float | None = None) -> None:
        """Stop the scheduler and wait for submitted sends to finish."""
        if self._started_at is None:
            return
        self.scheduler.stop(wait=True, timeout=timeout)
        self._started_at = None
        LOGGER.info("Mail scheduler stopped")


__all__ = ["AppContext"]
