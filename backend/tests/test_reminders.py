# tests/test_reminders.py — Reminder scheduler tests
import asyncio
from datetime import datetime, timedelta

import pytest

from calendar_links import parse_schedule
from reminders import ReminderScheduler, pending_prs

PRS = [
    {"id": "1", "title": "A", "status": "initial"},
    {"id": "2", "title": "B", "status": "approved"},
    {"id": "3", "title": "C", "status": "released"},
    {"id": "4", "title": "D", "status": "merged"},
]


class FakeMailer:
    def __init__(self):
        self.sent = []

    async def send_pending_reminder(self, to, prs, team_name="Team"):
        if not prs:
            return True
        self.sent.append((to, [p["id"] for p in prs], team_name))
        return True


def _scheduler(mailer, prs=PRS, now=None):
    async def fetch():
        return list(prs)

    clock = (lambda: now) if now else (lambda: datetime.now().astimezone())
    return ReminderScheduler(mailer, fetch, clock=clock)


def test_pending_statuses():
    assert [p["id"] for p in pending_prs(PRS)] == ["1", "2"]


@pytest.mark.asyncio
async def test_daily_sends_once_per_slot_per_day():
    mailer = FakeMailer()
    scheduler = _scheduler(mailer)
    scheduler.setup_daily("team@example.com", team_name="Core")

    morning = datetime(2026, 11, 2, 11, 3).astimezone()
    assert await scheduler.check_daily(morning) == 1
    assert await scheduler.check_daily(morning + timedelta(minutes=1)) == 0
    assert mailer.sent == [("team@example.com", ["1", "2"], "Core")]

    assert await scheduler.check_daily(datetime(2026, 11, 2, 15, 27).astimezone()) == 1
    assert await scheduler.check_daily(datetime(2026, 11, 3, 11, 0).astimezone()) == 1
    assert len(mailer.sent) == 3


@pytest.mark.asyncio
async def test_daily_outside_window():
    mailer = FakeMailer()
    scheduler = _scheduler(mailer)
    scheduler.setup_daily("team@example.com")
    assert await scheduler.check_daily(datetime(2026, 11, 2, 11, 6).astimezone()) == 0
    assert await scheduler.check_daily(datetime(2026, 11, 2, 12, 0).astimezone()) == 0
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_daily_skipped_without_pending():
    mailer = FakeMailer()
    scheduler = _scheduler(mailer, prs=[{"id": "9", "status": "released"}])
    scheduler.setup_daily("team@example.com")
    assert await scheduler.check_daily(datetime(2026, 11, 2, 17, 45).astimezone()) == 0
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_toggle_daily():
    mailer = FakeMailer()
    scheduler = _scheduler(mailer)
    reminder_id = scheduler.setup_daily("team@example.com")
    assert scheduler.toggle_daily(reminder_id) is False
    assert await scheduler.check_daily(datetime(2026, 11, 2, 11, 0).astimezone()) == 0
    assert scheduler.toggle_daily(reminder_id) is True
    assert await scheduler.check_daily(datetime(2026, 11, 2, 11, 0).astimezone()) == 1


@pytest.mark.asyncio
async def test_schedule_email_fires():
    mailer = FakeMailer()
    pr = {"id": "1", "title": "A", "status": "approved", "scheduledDate": "2026-11-02", "scheduledTime": "10:30"}
    fire_at = parse_schedule("2026-11-02", "10:30")
    scheduler = _scheduler(mailer, now=fire_at - timedelta(milliseconds=20))

    schedule_id = scheduler.schedule_email(pr, "dev@example.com")
    assert schedule_id is not None
    await asyncio.sleep(0.2)

    assert mailer.sent == [("dev@example.com", ["1"], "dev")]
    assert scheduler.schedules() == []


@pytest.mark.asyncio
async def test_failed_send_stays_listed():
    class FailingMailer(FakeMailer):
        async def send_pending_reminder(self, to, prs, team_name="Team"):
            return False

    pr = {"id": "1", "title": "A", "status": "approved", "scheduledDate": "2026-11-02", "scheduledTime": "10:30"}
    fire_at = parse_schedule("2026-11-02", "10:30")
    scheduler = _scheduler(FailingMailer(), now=fire_at - timedelta(milliseconds=20))

    schedule_id = scheduler.schedule_email(pr, "dev@example.com")
    await asyncio.sleep(0.2)

    assert [s.id for s in scheduler.schedules()] == [schedule_id]
    assert scheduler.schedules()[0].sent is False


@pytest.mark.asyncio
async def test_schedule_in_past_not_armed():
    mailer = FakeMailer()
    pr = {"id": "1", "title": "A", "status": "approved", "scheduledDate": "2026-11-02", "scheduledTime": "10:30"}
    scheduler = _scheduler(mailer, now=parse_schedule("2026-11-02", "10:31"))
    assert scheduler.schedule_email(pr, "dev@example.com") is None
    assert scheduler.schedules() == []


@pytest.mark.asyncio
async def test_cancel_schedule():
    mailer = FakeMailer()
    pr = {"id": "1", "title": "A", "status": "approved", "scheduledDate": "2026-11-02", "scheduledTime": "10:30"}
    scheduler = _scheduler(mailer, now=parse_schedule("2026-11-02", "10:00"))
    schedule_id = scheduler.schedule_email(pr, "dev@example.com")
    assert scheduler.cancel(schedule_id) is True
    await scheduler.stop()
    assert mailer.sent == []
    assert scheduler.schedules() == []
