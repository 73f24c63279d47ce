from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional

from dateutil import rrule

from .models import HabitFrequency

DAILY = HabitFrequency.DAILY
WEEKLY = HabitFrequency.WEEKLY
MONTHLY = HabitFrequency.MONTHLY

# target_days for weekly habits count from Sunday (0) to Saturday (6)
RRULE_WEEKDAYS = (rrule.SU, rrule.MO, rrule.TU, rrule.WE, rrule.TH, rrule.FR, rrule.SA)


def parse_day(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def day_key(value) -> Optional[str]:
    day = parse_day(value)
    return day.isoformat() if day else None


def weekday_index(day: date) -> int:
    return (day.weekday() + 1) % 7


def _frequency(habit) -> Optional[HabitFrequency]:
    try:
        return HabitFrequency(habit.frequency)
    except ValueError:
        return None


def is_due_on(habit, day) -> bool:
    target = parse_day(day)
    if target is None or not habit.is_active:
        return False
    frequency = _frequency(habit)
    targets = habit.target_days or []
    if frequency == DAILY:
        return True
    if frequency == WEEKLY:
        if not targets:
            return True
        return weekday_index(target) in targets
    if frequency == MONTHLY:
        return target.day in targets
    return False


def is_satisfied_on(habit, day) -> bool:
    key = day_key(day)
    if key is None:
        return False
    return any(entry.date == key and entry.completed for entry in habit.completion_history or [])


def _rule(habit, start: date):
    frequency = _frequency(habit)
    targets = habit.target_days or []
    dtstart = datetime.combine(start, time.min)
    if frequency == DAILY or (frequency == WEEKLY and not targets):
        return rrule.rrule(rrule.DAILY, dtstart=dtstart)
    if frequency == WEEKLY:
        return rrule.rrule(rrule.WEEKLY, dtstart=dtstart, byweekday=[RRULE_WEEKDAYS[d] for d in targets])
    if frequency == MONTHLY and targets:
        return rrule.rrule(rrule.MONTHLY, dtstart=dtstart, bymonthday=targets)
    return None


def next_due_date(habit, after, inclusive: bool = False) -> Optional[date]:
    start = parse_day(after)
    if start is None or not habit.is_active:
        return None
    rule = _rule(habit, start)
    if rule is None:
        return None
    occurrence = rule.after(datetime.combine(start, time.min), inc=inclusive)
    return occurrence.date() if occurrence else None


def completion_rate(habit, as_of, days: int = 30) -> int:
    end = parse_day(as_of)
    if end is None:
        return 0
    due = satisfied = 0
    for offset in range(days, -1, -1):
        current = end - timedelta(days=offset)
        if is_due_on(habit, current):
            due += 1
            if is_satisfied_on(habit, current):
                satisfied += 1
    return round(satisfied * 100 / due) if due else 0


def is_overdue(habit, now: datetime) -> bool:
    if not is_due_on(habit, now) or is_satisfied_on(habit, now):
        return False
    if not habit.reminder_time:
        return False
    try:
        hour, minute = (int(part) for part in habit.reminder_time.split(":"))
        reminder = time(hour, minute)
    except ValueError:
        return False
    return now.time() > reminder
