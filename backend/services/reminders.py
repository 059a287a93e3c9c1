import calendar
from datetime import datetime, time, timedelta

from models import Reminder, ReminderFrequency


def parse_reminder_time(value: str) -> time:
    try:
        hours_raw, minutes_raw = value.strip().split(":")
        return time(hour=int(hours_raw), minute=int(minutes_raw))
    except ValueError as exc:
        raise ValueError(f"Invalid reminder time '{value}', expected HH:MM") from exc


def _weekday_sunday_first(moment: datetime) -> int:
    # datetime.weekday() is Monday=0; reminders store Sunday=0.
    return (moment.weekday() + 1) % 7


def _add_month(moment: datetime, day: int) -> datetime:
    year = moment.year + (moment.month // 12)
    month = moment.month % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(day, last_day))


def compute_next_trigger(
    frequency: ReminderFrequency,
    reminder_time: str,
    days_of_week: list[int] | None = None,
    now: datetime | None = None,
    anchor_day: int | None = None,
) -> datetime:
    """Next moment strictly after ``now`` at which the reminder should fire."""
    now = now or datetime.utcnow()
    at = parse_reminder_time(reminder_time)
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)

    if frequency == ReminderFrequency.DAILY:
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if frequency == ReminderFrequency.WEEKLY:
        if not days_of_week:
            raise ValueError("Weekly reminders need at least one day of week")
        allowed = set(days_of_week)
        for offset in range(8):
            option = candidate + timedelta(days=offset)
            if option > now and _weekday_sunday_first(option) in allowed:
                return option
        raise ValueError("No matching weekday found")

    day = anchor_day or now.day
    last_day = calendar.monthrange(now.year, now.month)[1]
    candidate = candidate.replace(day=min(day, last_day))
    if candidate <= now:
        candidate = _add_month(candidate, day)
    return candidate


def schedule_reminder(reminder: Reminder, now: datetime | None = None) -> Reminder:
    anchor_day = reminder.created_at.day if reminder.created_at else None
    reminder.next_trigger_at = compute_next_trigger(
        reminder.frequency,
        reminder.reminder_time,
        reminder.days_of_week,
        now=now,
        anchor_day=anchor_day,
    )
    return reminder


def is_reminder_due(reminder: Reminder, now: datetime | None = None) -> bool:
    if not reminder.is_active or reminder.next_trigger_at is None:
        return False
    return (now or datetime.utcnow()) >= reminder.next_trigger_at
