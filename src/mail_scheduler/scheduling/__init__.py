"""Scheduled email lifecycle, recurrence and the periodic checker."""

from .lifecycle import TaskManager
from .recurrence import is_recurring, next_run
from .scheduler import EmailScheduler
from .validation import TaskValidationError, parse_recipients, validate_task_params

__all__ = [
    "EmailScheduler",
    "TaskManager",
    "TaskValidationError",
    "is_recurring",
    "next_run",
    "parse_recipients",
    "validate_task_params",
]
