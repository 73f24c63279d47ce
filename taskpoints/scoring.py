from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from .models import PointEntryType, Priority
from .recurrence import is_due_on, is_satisfied_on, parse_day

# Configurable constants
PRIORITY_POINTS = {
    Priority.HIGH: 15,
    Priority.MEDIUM: 10,
    Priority.LOW: 5,
}
DEFAULT_TASK_POINTS = PRIORITY_POINTS[Priority.MEDIUM]
HABIT_COMPLETION_POINTS = 8
SUBTASK_COMPLETION_POINTS = 3
GAME_PLAY_COST = 5
LOGIN_BONUS_TIERS = (
    (30, 50),
    (14, 30),
    (7, 20),
    (3, 15),
)
LOGIN_BONUS_BASE = 10

# entry types that count towards total_earned_points
EARNING_TYPES = frozenset(
    {
        PointEntryType.TASK_COMPLETE,
        PointEntryType.SUBTASK_COMPLETE,
        PointEntryType.HABIT_COMPLETE,
        PointEntryType.LOGIN_BONUS,
    }
)
REVERSAL_TYPES = {
    PointEntryType.TASK_COMPLETE: PointEntryType.TASK_UNCOMPLETE,
    PointEntryType.SUBTASK_COMPLETE: PointEntryType.SUBTASK_UNCOMPLETE,
    PointEntryType.HABIT_COMPLETE: PointEntryType.HABIT_UNCOMPLETE,
}
SPEND_TYPES = frozenset({PointEntryType.GAME_PLAY, PointEntryType.SHOP_PURCHASE})


def points_for_priority(priority) -> int:
    try:
        return PRIORITY_POINTS[Priority(priority)]
    except ValueError:
        return DEFAULT_TASK_POINTS


def task_points(task) -> int:
    """Points a task is worth; falls back to its priority when unset."""
    if task.points:
        return task.points
    return points_for_priority(task.priority)


def login_bonus_points(streak: int) -> int:
    for threshold, points in LOGIN_BONUS_TIERS:
        if streak >= threshold:
            return points
    return LOGIN_BONUS_BASE


def _earliest_history_day(habit) -> Optional[date]:
    days = [parse_day(entry.date) for entry in habit.completion_history or []]
    days = [day for day in days if day is not None]
    return min(days) if days else None


def current_streak(habit, as_of) -> int:
    """Count consecutive satisfied due dates walking back from ``as_of``.

    Days that are not due are skipped without breaking the run; the first
    due day without a completion ends it.
    """
    day = parse_day(as_of)
    earliest = _earliest_history_day(habit)
    if day is None or earliest is None:
        return 0
    streak = 0
    while day >= earliest:
        if is_due_on(habit, day):
            if not is_satisfied_on(habit, day):
                break
            streak += 1
        day -= timedelta(days=1)
    return streak


def longest_streak(habit, as_of) -> int:
    end = parse_day(as_of)
    day = _earliest_history_day(habit)
    if end is None or day is None:
        return 0
    best = run = 0
    while day <= end:
        if is_due_on(habit, day):
            run = run + 1 if is_satisfied_on(habit, day) else 0
            best = max(best, run)
        day += timedelta(days=1)
    return best
