"""JSON-file backed scheduled task store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from pathlib import Path

from ..core.interfaces import TaskRepository
from ..core.models import ScheduledTask
from .json_file import read_json, write_json
from .serialization import task_from_dict, task_to_dict

LOGGER = logging.getLogger(__name__)


class JsonTaskStore(TaskRepository):
    """Persist the scheduled task collection as a single JSON array.

    Every read goes to disk so edits made by one component are visible to the
    next reader. The store assumes it is the only writer of its file.
    """

    def __init__(self, path: Path | str) -> None:
        """Bind the store to ``path``; the file is created on first save."""
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Location of the backing document."""
        return self._path

    def list_tasks(self) -> list[ScheduledTask]:
        """Return every task, skipping entries that cannot be decoded."""
        with self._lock:
            raw = read_json(self._path, [])
        if not isinstance(raw, list):
            LOGGER.warning("Task file %s does not hold a list; ignoring", self._path)
            return []

        tasks: list[ScheduledTask] = []
        for entry in raw:
            try:
                tasks.append(task_from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Skipping unreadable task entry in %s: %s", self._path, exc)
        return tasks

    def get_task(self, task_id: str) -> ScheduledTask | None:
        """Return the task with ``task_id`` or ``None``."""
        for task in self.list_tasks():
            if task.id == task_id:
                return task
        return None

    def save_tasks(self, tasks: Sequence[ScheduledTask]) -> bool:
        """Overwrite the stored collection with ``tasks``."""
        payload = [task_to_dict(task) for task in tasks]
        with self._lock:
            saved = write_json(self._path, payload)
        if saved:
            LOGGER.debug("Saved %d scheduled task(s) to %s", len(payload), self._path)
        return saved


__all__ = ["JsonTaskStore"]
