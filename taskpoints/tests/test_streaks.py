from datetime import date

from taskpoints.models import HabitFrequency, Priority
from taskpoints.scoring import current_streak, login_bonus_points, longest_streak, task_points


class StubEntry:
    def __init__(self, day: str, completed: bool = True):
        self.date = day
        self.completed = completed


class StubHabit:
    def __init__(self, frequency="daily", target_days=None, history=None):
        self.frequency = HabitFrequency(frequency)
        self.target_days = target_days or []
        self.is_active = True
        self.completion_history = history or []


class StubTask:
    def __init__(self, priority=Priority.MEDIUM, points=0):
        self.priority = priority
        self.points = points


def mon_wed_fri():
    # 2024-01-10 is a Wednesday
    return StubHabit(
        "weekly",
        [1, 3, 5],
        history=[
            StubEntry("2024-01-01", completed=False),
            StubEntry("2024-01-03", completed=False),
            StubEntry("2024-01-05"),
            StubEntry("2024-01-06"),
            StubEntry("2024-01-08"),
            StubEntry("2024-01-09", completed=False),
            StubEntry("2024-01-10"),
        ],
    )


def test_weekly_streak_skips_non_due_days():
    assert current_streak(mon_wed_fri(), date(2024, 1, 10)) == 3


def test_longest_streak():
    assert longest_streak(mon_wed_fri(), date(2024, 1, 10)) == 3


def test_daily_streak_breaks_on_missing_day():
    habit = StubHabit(history=[StubEntry("2024-01-07"), StubEntry("2024-01-09"), StubEntry("2024-01-10")])
    assert current_streak(habit, date(2024, 1, 10)) == 2
    assert longest_streak(habit, date(2024, 1, 10)) == 2


def test_unsatisfied_today_is_zero():
    habit = StubHabit(history=[StubEntry("2024-01-09"), StubEntry("2024-01-10", completed=False)])
    assert current_streak(habit, date(2024, 1, 10)) == 0


def test_empty_history():
    assert current_streak(StubHabit(), date(2024, 1, 10)) == 0
    assert current_streak(StubHabit(history=[StubEntry("2024-01-10")]), "garbage") == 0


def test_login_bonus_tiers():
    assert login_bonus_points(1) == 10
    assert login_bonus_points(3) == 15
    assert login_bonus_points(7) == 20
    assert login_bonus_points(14) == 30
    assert login_bonus_points(45) == 50


def test_task_points_fall_back_to_priority():
    assert task_points(StubTask(Priority.HIGH)) == 15
    assert task_points(StubTask(Priority.LOW)) == 5
    assert task_points(StubTask(Priority.LOW, points=12)) == 12
