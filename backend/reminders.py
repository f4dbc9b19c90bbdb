"""
Best-effort reminder scheduling.

Timers live on the running event loop only: nothing is persisted, and
scheduled emails are lost if the process exits before they fire.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from calendar_links import DAILY_SLOTS, ReminderSlot, parse_schedule
from mailer import MailerSendClient

logger = logging.getLogger("pr-board.reminders")

PENDING_STATUSES = ("initial", "in_review", "approved")
DAILY_WINDOW_MINUTES = 5
CHECK_INTERVAL_SECONDS = 60

FetchPRs = Callable[[], Awaitable[List[Dict[str, Any]]]]


def pending_prs(prs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [pr for pr in prs if pr.get("status") in PENDING_STATUSES]


@dataclass
class EmailSchedule:
    id: str
    pr_id: str
    email: str
    fire_at: datetime
    sent: bool = False


@dataclass
class DailyReminder:
    id: str
    email: str
    team_name: str = "Team"
    active: bool = True
    slots: tuple = DAILY_SLOTS
    last_sent: Dict[str, date] = field(default_factory=dict)


class ReminderScheduler:
    def __init__(
        self,
        mailer: MailerSendClient,
        fetch_prs: FetchPRs,
        clock: Callable[[], datetime] = lambda: datetime.now().astimezone(),
    ):
        self.mailer = mailer
        self.fetch_prs = fetch_prs
        self.clock = clock
        self._schedules: Dict[str, EmailSchedule] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._daily: Dict[str, DailyReminder] = {}
        self._loop_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # One-off PR emails
    # ------------------------------------------------------------------

    def schedule_email(self, pr: Dict[str, Any], email: str) -> Optional[str]:
        """Arm a timer for the PR's scheduled moment. Past moments are not scheduled."""
        if not pr.get("scheduledDate") or not pr.get("scheduledTime"):
            raise ValueError("PR must have scheduled date and time")
        fire_at = parse_schedule(pr["scheduledDate"], pr["scheduledTime"])
        delay = (fire_at - self.clock()).total_seconds()
        if delay <= 0:
            logger.info("Schedule for PR %s is in the past; not scheduled", pr.get("id"))
            return None

        schedule = EmailSchedule(id=f"schedule_{uuid.uuid4().hex[:12]}", pr_id=pr["id"], email=email, fire_at=fire_at)
        self._schedules[schedule.id] = schedule
        self._timers[schedule.id] = asyncio.create_task(self._fire_after(delay, schedule, pr))
        return schedule.id

    async def _fire_after(self, delay: float, schedule: EmailSchedule, pr: Dict[str, Any]) -> None:
        await asyncio.sleep(delay)
        try:
            sent = await self.mailer.send_pending_reminder(schedule.email, [pr], schedule.email.split("@")[0])
        except Exception:
            logger.exception("Email reminder for PR %s failed", schedule.pr_id)
            return
        finally:
            self._timers.pop(schedule.id, None)
        if sent:
            # Only unsent schedules stay listed
            schedule.sent = True
            self._schedules.pop(schedule.id, None)
            logger.info("Email reminder sent for PR: %s", pr.get("title"))

    def cancel(self, schedule_id: str) -> bool:
        task = self._timers.pop(schedule_id, None)
        if task is not None:
            task.cancel()
        removed = self._schedules.pop(schedule_id, None) is not None
        removed = self._daily.pop(schedule_id, None) is not None or removed
        return removed

    def schedules(self) -> List[EmailSchedule]:
        return list(self._schedules.values())

    # ------------------------------------------------------------------
    # Daily reminders
    # ------------------------------------------------------------------

    def setup_daily(self, email: str, team_name: str = "Team") -> str:
        reminder = DailyReminder(id=f"daily_{uuid.uuid4().hex[:12]}", email=email, team_name=team_name)
        self._daily[reminder.id] = reminder
        return reminder.id

    def toggle_daily(self, reminder_id: str) -> bool:
        reminder = self._daily.get(reminder_id)
        if reminder is None:
            raise KeyError(reminder_id)
        reminder.active = not reminder.active
        return reminder.active

    def daily_reminders(self) -> List[DailyReminder]:
        return list(self._daily.values())

    @staticmethod
    def _in_window(slot: ReminderSlot, now: datetime) -> bool:
        return now.hour == slot.hour and abs(now.minute - slot.minute) <= DAILY_WINDOW_MINUTES

    async def check_daily(self, now: Optional[datetime] = None) -> int:
        """Send any daily reminder whose slot is open now. Returns emails sent."""
        now = now or self.clock()
        today = now.date()
        sent = 0
        pending: Optional[List[Dict[str, Any]]] = None

        for reminder in self._daily.values():
            if not reminder.active:
                continue
            for slot in reminder.slots:
                if not self._in_window(slot, now) or reminder.last_sent.get(slot.label) == today:
                    continue
                if pending is None:
                    pending = pending_prs(await self.fetch_prs())
                reminder.last_sent[slot.label] = today
                if not pending:
                    logger.info("No pending PRs; %s reminder skipped", slot.label)
                    continue
                if await self.mailer.send_pending_reminder(reminder.email, pending, reminder.team_name):
                    sent += 1
        return sent

    async def _run(self, interval: float) -> None:
        while True:
            try:
                await self.check_daily()
            except Exception:
                logger.exception("Daily reminder check failed")
            await asyncio.sleep(interval)

    def start(self, interval: float = CHECK_INTERVAL_SECONDS) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._run(interval))

    async def stop(self) -> None:
        tasks = list(self._timers.values())
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._loop_task = None
