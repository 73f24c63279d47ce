from datetime import date, datetime

from taskpoints.models import HabitFrequency
from taskpoints.recurrence import (
    completion_rate,
    is_due_on,
    is_overdue,
    is_satisfied_on,
    next_due_date,
    parse_day,
    weekday_index,
)


class StubEntry:
    def __init__(self, day: str, completed: bool = True):
        self.date = day
        self.completed = completed


class StubHabit:
    def __init__(self, frequency="daily", target_days=None, is_active=True, history=None, reminder_time=None):
        self.frequency = HabitFrequency(frequency)
        self.target_days = target_days or []
        self.is_active = is_active
        self.completion_history = history or []
        self.reminder_time = reminder_time


def test_weekday_index_starts_on_sunday():
    assert weekday_index(date(2024, 1, 7)) == 0
    assert weekday_index(date(2024, 1, 8)) == 1
    assert weekday_index(date(2024, 1, 13)) == 6


def test_daily_is_always_due():
    habit = StubHabit()
    assert is_due_on(habit, date(2024, 1, 10))
    assert is_due_on(habit, "2024-02-29")


def test_inactive_is_never_due():
    assert not is_due_on(StubHabit(is_active=False), date(2024, 1, 10))


def test_weekly_targets():
    habit = StubHabit("weekly", [1, 3])
    assert is_due_on(habit, date(2024, 1, 8))
    assert is_due_on(habit, date(2024, 1, 10))
    assert not is_due_on(habit, date(2024, 1, 9))
    assert is_due_on(StubHabit("weekly", [0]), date(2024, 1, 7))


def test_weekly_without_targets_is_due_every_day():
    habit = StubHabit("weekly")
    assert all(is_due_on(habit, date(2024, 1, d)) for d in range(7, 14))


def test_monthly_targets():
    habit = StubHabit("monthly", [15])
    assert is_due_on(habit, date(2024, 1, 15))
    assert not is_due_on(habit, date(2024, 1, 14))
    assert not is_due_on(StubHabit("monthly"), date(2024, 1, 15))


def test_malformed_date_is_not_due():
    assert parse_day("not a date") is None
    assert not is_due_on(StubHabit(), "not a date")
    assert not is_satisfied_on(StubHabit(), None)


def test_due_is_independent_of_time_of_day():
    habit = StubHabit("weekly", [3])
    assert is_due_on(habit, datetime(2024, 1, 10, 0, 1)) == is_due_on(habit, datetime(2024, 1, 10, 23, 59))


def test_satisfied_needs_completed_entry():
    habit = StubHabit(history=[StubEntry("2024-01-09"), StubEntry("2024-01-10", completed=False)])
    assert is_satisfied_on(habit, date(2024, 1, 9))
    assert not is_satisfied_on(habit, date(2024, 1, 10))


def test_next_due_date():
    assert next_due_date(StubHabit("weekly", [1]), date(2024, 1, 10)) == date(2024, 1, 15)
    assert next_due_date(StubHabit(), date(2024, 1, 10), inclusive=True) == date(2024, 1, 10)
    assert next_due_date(StubHabit("monthly", [31]), date(2024, 2, 1)) == date(2024, 3, 31)
    assert next_due_date(StubHabit("monthly"), date(2024, 2, 1)) is None


def test_completion_rate():
    habit = StubHabit(history=[StubEntry("2024-01-10")])
    assert completion_rate(habit, date(2024, 1, 10), days=1) == 50
    assert completion_rate(StubHabit("monthly"), date(2024, 1, 10)) == 0


def test_overdue_after_reminder_time():
    habit = StubHabit(reminder_time="09:00")
    assert is_overdue(habit, datetime(2024, 1, 10, 10, 0))
    assert not is_overdue(habit, datetime(2024, 1, 10, 8, 0))
    assert not is_overdue(StubHabit(), datetime(2024, 1, 10, 23, 0))
    done = StubHabit(reminder_time="09:00", history=[StubEntry("2024-01-10")])
    assert not is_overdue(done, datetime(2024, 1, 10, 10, 0))
