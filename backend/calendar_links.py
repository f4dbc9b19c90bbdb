"""Google Calendar "add event" deep links for scheduled PR releases."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

CALENDAR_RENDER_URL = "https://calendar.google.com/calendar/render"

PR_EVENT_DURATION = timedelta(hours=1)
DAILY_EVENT_DURATION = timedelta(minutes=15)


@dataclass(frozen=True)
class ReminderSlot:
    hour: int
    minute: int
    label: str


DAILY_SLOTS = (
    ReminderSlot(11, 0, "Morning"),
    ReminderSlot(15, 30, "Afternoon"),
    ReminderSlot(17, 45, "Evening"),
)


@dataclass
class CalendarEvent:
    id: str
    summary: str
    description: str
    start: datetime
    end: datetime
    attendees: List[str] = field(default_factory=list)


def parse_schedule(scheduled_date: str, scheduled_time: str, tz: Optional[tzinfo] = None) -> datetime:
    """Combine a YYYY-MM-DD date and HH:MM time into an aware datetime.

    Without ``tz`` the wall-clock time is taken as the machine's local zone.
    """
    naive = datetime.fromisoformat(f"{scheduled_date}T{scheduled_time}")
    if tz is not None:
        return naive.replace(tzinfo=tz)
    return naive.astimezone()


def format_calendar_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def calendar_link(event: CalendarEvent) -> str:
    params = {
        "action": "TEMPLATE",
        "text": event.summary,
        "dates": f"{format_calendar_time(event.start)}/{format_calendar_time(event.end)}",
        "details": event.description,
        "add": ",".join(event.attendees),
    }
    return f"{CALENDAR_RENDER_URL}?{urlencode(params)}"


def _release_state(pr: Dict[str, Any]) -> str:
    return "Ready for release" if pr.get("status") == "approved" else "Awaiting final approval"


def _pr_description(pr: Dict[str, Any]) -> str:
    name = pr.get("project") if pr.get("category") == "project" else pr.get("service")
    links = pr.get("links") or []
    link = links[0]["url"] if links else "No link provided"
    return "\n".join([
        "Pending PR release reminder",
        "",
        f"{pr.get('title')} – {_release_state(pr)}",
        "",
        f"Project/Service: {name}",
        f"Author: {pr.get('author')}",
        f"Priority: {pr.get('priority')}",
        "",
        f"Link to PR: {link}",
    ])


def build_pr_event(pr: Dict[str, Any], email: str, tz: Optional[tzinfo] = None) -> CalendarEvent:
    if not pr.get("scheduledDate") or not pr.get("scheduledTime"):
        raise ValueError("PR must have scheduled date and time")
    start = parse_schedule(pr["scheduledDate"], pr["scheduledTime"], tz)
    return CalendarEvent(
        id=f"pr_{pr['id']}",
        summary=f"Reminder: {pr.get('title')} - Pending Release",
        description=_pr_description(pr),
        start=start,
        end=start + PR_EVENT_DURATION,
        attendees=[email] if email else [],
    )


def _daily_description(pending_prs: List[Dict[str, Any]]) -> str:
    if not pending_prs:
        return "Daily PR release check\n\nNo pending PRs found."
    lines = [f"{pr.get('title')} – {_release_state(pr)}" for pr in pending_prs]
    return "Daily PR release check\n\nPending PRs:\n" + "\n".join(lines)


def build_daily_events(
    email: str,
    pending_prs: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[CalendarEvent]:
    """One short event per daily slot; a slot already past today moves to tomorrow."""
    now = now or datetime.now().astimezone()
    description = _daily_description(pending_prs)
    events = []
    for slot in DAILY_SLOTS:
        start = now.replace(hour=slot.hour, minute=slot.minute, second=0, microsecond=0)
        if start <= now:
            start += timedelta(days=1)
        events.append(CalendarEvent(
            id=f"daily_reminder_{slot.label.lower()}",
            summary=f"{slot.label} Reminder: Pending PRs to Release",
            description=description,
            start=start,
            end=start + DAILY_EVENT_DURATION,
            attendees=[email] if email else [],
        ))
    return events
