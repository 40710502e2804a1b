"""Tests for scheduled task parameter validation."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from mail_scheduler.core.models import TaskParams
from mail_scheduler.scheduling import parse_recipients, validate_task_params

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)


def _params(**overrides) -> TaskParams:
    params = TaskParams(
        name="Weekly report",
        to="a@b.com",
        subject="Report",
        schedule_type="once",
        scheduled_at=(NOW + timedelta(minutes=1)).isoformat(),
        text="Body",
    )
    return replace(params, **overrides)


def test_valid_once_task_passes() -> None:
    result = validate_task_params(_params(), NOW)
    assert result.valid
    assert result.message == "Validation passed"


def test_once_in_past_rejected() -> None:
    result = validate_task_params(
        _params(scheduled_at=(NOW - timedelta(minutes=1)).isoformat()), NOW
    )
    assert not result.valid
    assert "must be in the future" in result.message


def test_recurring_task_may_start_in_past() -> None:
    result = validate_task_params(
        _params(schedule_type="daily", scheduled_at=(NOW - timedelta(days=2)).isoformat()),
        NOW,
    )
    assert result.valid


@pytest.mark.parametrize(
    ("overrides", "fragment"),
    [
        ({"name": "  "}, "Task name"),
        ({"to": ""}, "Recipient"),
        ({"to": "a@b.com, nobody"}, "Invalid recipient address: nobody"),
        ({"subject": ""}, "Subject"),
        ({"text": None, "html": None}, "content"),
        ({"schedule_type": "hourly"}, "Unsupported schedule type"),
        ({"scheduled_at": ""}, "Scheduled time must not be empty"),
        ({"scheduled_at": "tomorrow"}, "Invalid scheduled time"),
        ({"schedule_type": "interval", "interval_minutes": 0}, "Interval minutes"),
        ({"schedule_type": "interval", "interval_minutes": None}, "Interval minutes"),
        ({"schedule_type": "weekly", "weekday": 7}, "Weekday"),
        ({"schedule_type": "weekly", "weekday": None}, "Weekday"),
        ({"schedule_type": "monthly", "day_of_month": 0}, "Day of month"),
        ({"schedule_type": "monthly", "day_of_month": 32}, "Day of month"),
        ({"max_send_count": 0}, "Max send count"),
    ],
)
def test_invalid_params_rejected(overrides: dict, fragment: str) -> None:
    result = validate_task_params(_params(**overrides), NOW)
    assert not result.valid
    assert fragment in result.message


def test_html_only_content_accepted() -> None:
    assert validate_task_params(_params(text=None, html="<p>Hi</p>"), NOW).valid


def test_datetime_objects_accepted() -> None:
    assert validate_task_params(_params(scheduled_at=NOW + timedelta(hours=1)), NOW).valid


def test_parse_recipients_trims_and_drops_blanks() -> None:
    assert parse_recipients(" a@b.com, ,c@d.org ") == ["a@b.com", "c@d.org"]
    assert parse_recipients(None) == []
