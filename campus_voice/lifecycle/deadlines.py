"""
Deadline arithmetic.

Everything here is a pure function of its arguments; "now" is always passed in
so the same complaint can be evaluated from any number of readers.
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from .complaint import TERMINAL_STATES, Complaint, Priority

PRIORITY_RESPONSE_DAYS = {
    Priority.CRITICAL: 1,
    Priority.HIGH: 3,
    Priority.MEDIUM: 7,
    Priority.LOW: 14,
}

URGENT_WITHIN = timedelta(hours=24)
WARNING_WITHIN = timedelta(hours=48)


def _zone(tz: "tzinfo | str | None") -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def _aware(moment: datetime) -> datetime:
    # naive timestamps are stored as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def calendar_day(moment: datetime, tz: "tzinfo | str | None" = None) -> date:
    return _aware(moment).astimezone(_zone(tz)).date()


def is_overdue(
    complaint: Complaint, now: datetime, tz: "tzinfo | str | None" = None
) -> bool:
    if complaint.status in TERMINAL_STATES:
        return False
    if complaint.deadline is None:
        return False
    # nobody to be late: never assigned, even if a deadline was recorded
    if not complaint.has_assignee:
        return False
    return calendar_day(complaint.deadline, tz) < calendar_day(now, tz)


def default_deadline(submitted: datetime, priority: Priority) -> datetime:
    return submitted + timedelta(days=PRIORITY_RESPONSE_DAYS[priority])


def deadline_urgency(
    complaint: Complaint, now: datetime, tz: "tzinfo | str | None" = None
) -> str | None:
    """Classify how close a complaint is to its deadline.

    Returns ``"overdue"``, ``"urgent"`` (a day or less left), ``"warning"``
    (two days or less) or ``"normal"``; ``None`` when there is no deadline or
    the complaint is already resolved or closed.
    """
    if complaint.deadline is None or complaint.status in TERMINAL_STATES:
        return None
    if is_overdue(complaint, now, tz):
        return "overdue"
    remaining = _aware(complaint.deadline) - _aware(now)
    if remaining <= URGENT_WITHIN:
        return "urgent"
    if remaining <= WARNING_WITHIN:
        return "warning"
    return "normal"


def time_remaining_label(deadline: datetime, now: datetime) -> str:
    hours = int((_aware(deadline) - _aware(now)).total_seconds() // 3600)

    if hours < 0:
        overdue = abs(hours)
        if overdue < 24:
            return f"{overdue}h overdue"
        return f"{overdue // 24}d overdue"

    if hours < 24:
        return f"{hours}h remaining"
    days, rest = divmod(hours, 24)
    return f"{days}d {rest}h remaining" if rest else f"{days}d remaining"
