"""Next-run computation for recurring tasks."""

from __future__ import annotations

from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from ..core.models import ScheduledTask

RECURRING_TYPES = frozenset({"daily", "weekly", "monthly", "interval"})


def next_run(task: ScheduledTask, executed_at: datetime) -> datetime:
    """Return the timestamp at which ``task`` is next due.

    Calendar recurrences step from the previous ``scheduled_at`` so the
    time of day is preserved even when execution ran late. ``interval``
    steps from ``executed_at`` so a late run shifts the cadence instead of
    queueing catch-up sends. Monthly steps clamp to the last day of shorter
    months (Jan 31 becomes Feb 28 or 29).
    """
    anchor = task.scheduled_at
    schedule_type = task.schedule_type
    if schedule_type == "daily":
        return anchor + timedelta(days=1)
    if schedule_type == "weekly":
        return anchor + timedelta(days=7)
    if schedule_type == "monthly":
        return anchor + relativedelta(months=+1)
    if schedule_type == "interval":
        if not task.interval_minutes or task.interval_minutes <= 0:
            return anchor
        return executed_at + timedelta(minutes=task.interval_minutes)
    return anchor


def is_recurring(task: ScheduledTask) -> bool:
    """Whether ``task`` is rescheduled after a successful send."""
    return task.schedule_type in RECURRING_TYPES


__all__ = ["RECURRING_TYPES", "is_recurring", "next_run"]
