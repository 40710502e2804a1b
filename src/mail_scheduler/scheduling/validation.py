"""Parameter validation for scheduled task creation."""

from __future__ import annotations

from datetime import datetime

from ..core.datetime_utils import parse_datetime
from ..core.models import SCHEDULE_TYPES, TaskParams, ValidationResult


class TaskValidationError(ValueError):
    """Raised when task parameters fail validation."""


def parse_recipients(to: str | None) -> list[str]:
    """Split a comma-separated recipient string into trimmed addresses."""
    if not to:
        return []
    return [item.strip() for item in to.split(",") if item.strip()]


# pylint: disable=too-many-return-statements,too-many-branches
def validate_task_params(params: TaskParams, now: datetime) -> ValidationResult:
    """Check ``params`` and return the first problem found.

    Args:
        params: Caller-supplied task fields
        now: Reference time for the ``once`` future check

    Returns:
        ``ValidationResult`` with ``valid`` set and a human readable message
    """
    if not params.name or not params.name.strip():
        return _invalid("Task name must not be empty")

    recipients = parse_recipients(params.to)
    if not recipients:
        return _invalid("Recipient address must not be empty")
    invalid = [item for item in recipients if "@" not in item]
    if invalid:
        return _invalid(f"Invalid recipient address: {', '.join(invalid)}")

    if not params.subject or not params.subject.strip():
        return _invalid("Subject must not be empty")

    if not params.text and not params.html:
        return _invalid("Email content must not be empty")

    if params.schedule_type not in SCHEDULE_TYPES:
        return _invalid(f"Unsupported schedule type: {params.schedule_type}")

    if params.scheduled_at is None or (
        isinstance(params.scheduled_at, str) and not params.scheduled_at.strip()
    ):
        return _invalid("Scheduled time must not be empty")
    try:
        scheduled_at = parse_datetime(params.scheduled_at)
    except (TypeError, ValueError):
        return _invalid(f"Invalid scheduled time: {params.scheduled_at}")
    if scheduled_at is None:
        return _invalid("Scheduled time must not be empty")

    if params.schedule_type == "once" and scheduled_at <= now:
        return _invalid("Scheduled time must be in the future")

    if params.schedule_type == "interval" and (
        params.interval_minutes is None or params.interval_minutes <= 0
    ):
        return _invalid("Interval minutes must be greater than 0")

    if params.schedule_type == "weekly" and (
        params.weekday is None or not 0 <= params.weekday <= 6
    ):
        return _invalid("Weekday must be between 0 and 6")

    if params.schedule_type == "monthly" and (
        params.day_of_month is None or not 1 <= params.day_of_month <= 31
    ):
        return _invalid("Day of month must be between 1 and 31")

    if params.max_send_count is not None and params.max_send_count <= 0:
        return _invalid("Max send count must be greater than 0")

    return ValidationResult(True, "Validation passed")


def _invalid(message: str) -> ValidationResult:
    return ValidationResult(False, message)


__all__ = ["TaskValidationError", "parse_recipients", "validate_task_params"]
