# tests/test_calendar_links.py — Calendar deep link tests
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from calendar_links import (
    build_daily_events, build_pr_event, calendar_link, format_calendar_time,
)

PR = {
    "id": "pr-1",
    "title": "Add retry to payment webhook",
    "category": "project",
    "project": "Payments",
    "author": "alice",
    "priority": "high",
    "status": "approved",
    "links": [{"url": "https://git.example.com/pr/1"}],
    "scheduledDate": "2026-11-02",
    "scheduledTime": "10:30",
}


def test_format_calendar_time():
    moment = datetime(2026, 11, 2, 10, 30, 5, 123000, tzinfo=timezone.utc)
    assert format_calendar_time(moment) == "20261102T103005Z"


def test_pr_event_link():
    event = build_pr_event(PR, "team@example.com", tz=timezone.utc)
    url = calendar_link(event)
    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://calendar.google.com/calendar/render"
    query = parse_qs(parsed.query)
    assert query["action"] == ["TEMPLATE"]
    assert query["dates"] == ["20261102T103000Z/20261102T113000Z"]
    assert query["add"] == ["team@example.com"]
    assert "Add retry to payment webhook" in query["text"][0]
    assert "Ready for release" in query["details"][0]
    assert "https://git.example.com/pr/1" in query["details"][0]


def test_pr_event_requires_schedule():
    with pytest.raises(ValueError):
        build_pr_event({**PR, "scheduledTime": None}, "team@example.com")


def test_daily_events_roll_to_tomorrow():
    now = datetime(2026, 11, 2, 16, 0, tzinfo=timezone.utc)
    events = build_daily_events("team@example.com", [PR], now=now)
    starts = {e.id: e.start for e in events}

    assert starts["daily_reminder_morning"] == datetime(2026, 11, 3, 11, 0, tzinfo=timezone.utc)
    assert starts["daily_reminder_afternoon"] == datetime(2026, 11, 3, 15, 30, tzinfo=timezone.utc)
    assert starts["daily_reminder_evening"] == datetime(2026, 11, 2, 17, 45, tzinfo=timezone.utc)
    for event in events:
        assert (event.end - event.start).total_seconds() == 15 * 60
