from __future__ import annotations

from datetime import timedelta

from humanize import intcomma, naturaldelta


def points_label(points: int) -> str:
    return f"{intcomma(abs(points))} point{'s' if abs(points) != 1 else ''}"


def task_created(text: str) -> str:
    return f"Added task \"{text}\"."


def task_deleted(text: str) -> str:
    return f"Deleted task \"{text}\"."


def task_completed(text: str, points: int) -> str:
    return f"Completed \"{text}\"! +{points_label(points)}"


def task_reopened(text: str, points: int) -> str:
    if points:
        return f"Marked \"{text}\" as not done. -{points_label(points)}"
    return f"Marked \"{text}\" as not done."


def subtask_completed(points: int) -> str:
    return f"Sub-task done! +{points_label(points)}"


def subtask_reopened(points: int) -> str:
    if points:
        return f"Sub-task reopened. -{points_label(points)}"
    return "Sub-task reopened."


def habit_created(title: str) -> str:
    return f"Added habit \"{title}\"."


def habit_completed(title: str, points: int) -> str:
    return f"Habit \"{title}\" done! +{points_label(points)}"


def habit_reopened(title: str, points: int) -> str:
    if points:
        return f"Habit \"{title}\" undone. -{points_label(points)}"
    return f"Habit \"{title}\" undone."


def already_in_state(completed: bool) -> str:
    return "Already marked as done." if completed else "Already marked as not done."


def points_spent(reason: str, points: int) -> str:
    return f"{reason}: -{points_label(points)}"


def login_bonus(points: int, streak: int) -> str:
    if streak > 1:
        return f"{streak} day login streak! Bonus +{points_label(points)}"
    return f"Login bonus +{points_label(points)}"


def sweep_result(count: int, retention: timedelta) -> str:
    if not count:
        return "No old completed tasks to remove."
    noun = "task" if count == 1 else "tasks"
    return f"Removed {count} {noun} completed more than {naturaldelta(retention)} ago."


def saved() -> str:
    return "Saved."
