from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .models import HabitFrequency, Priority

REMINDER_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_priority(value: Any) -> Priority:
    if isinstance(value, Priority):
        return value
    try:
        return Priority(str(value).lower())
    except ValueError as exc:
        raise ValidationError("priority", f"expected high, medium or low, got {value!r}") from exc


def parse_frequency(value: Any) -> HabitFrequency:
    if isinstance(value, HabitFrequency):
        return value
    try:
        return HabitFrequency(str(value).lower())
    except ValueError as exc:
        raise ValidationError("frequency", f"expected daily, weekly or monthly, got {value!r}") from exc


def validate_target_days(frequency: HabitFrequency, target_days: Optional[List[int]]) -> List[int]:
    if frequency == HabitFrequency.DAILY or not target_days:
        return []
    low, high = (0, 6) if frequency == HabitFrequency.WEEKLY else (1, 31)
    days = set()
    for day in target_days:
        if isinstance(day, bool) or not isinstance(day, int) or not low <= day <= high:
            raise ValidationError("target_days", f"{day!r} is outside {low}-{high} for a {frequency.value} habit")
        days.add(day)
    return sorted(days)


def validate_reminder_time(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if not REMINDER_RE.match(value):
        raise ValidationError("reminder_time", f"{value!r} is not HH:MM")
    return value


def validate_text(field_name: str, value: Optional[str]) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(field_name, "must not be empty")
    return text


@dataclass
class TaskCreate:
    text: str
    priority: Priority = Priority.MEDIUM
    deadline: Optional[date] = None
    memo: Optional[str] = None
    points: Optional[int] = None
    estimated_minutes: Optional[int] = None

    def validated(self) -> "TaskCreate":
        if self.points is not None and self.points < 0:
            raise ValidationError("points", "must not be negative")
        if self.estimated_minutes is not None and self.estimated_minutes < 0:
            raise ValidationError("estimated_minutes", "must not be negative")
        return TaskCreate(
            text=validate_text("text", self.text),
            priority=parse_priority(self.priority),
            deadline=self.deadline,
            memo=(self.memo or "").strip() or None,
            points=self.points,
            estimated_minutes=self.estimated_minutes,
        )


@dataclass
class HabitCreate:
    title: str
    frequency: HabitFrequency = HabitFrequency.DAILY
    target_days: List[int] = field(default_factory=list)
    description: Optional[str] = None
    reminder_time: Optional[str] = None
    is_active: bool = True

    def validated(self) -> "HabitCreate":
        frequency = parse_frequency(self.frequency)
        return HabitCreate(
            title=validate_text("title", self.title),
            frequency=frequency,
            target_days=validate_target_days(frequency, self.target_days),
            description=(self.description or "").strip() or None,
            reminder_time=validate_reminder_time(self.reminder_time),
            is_active=bool(self.is_active),
        )


@dataclass
class HabitUpdate:
    title: Optional[str] = None
    description: Optional[str] = None
    frequency: Optional[HabitFrequency] = None
    target_days: Optional[List[int]] = None
    reminder_time: Optional[str] = None
    is_active: Optional[bool] = None


@dataclass
class ToggleResult:
    changed: bool
    completed: bool
    points_delta: int = 0


@dataclass
class SubTaskProgress:
    total: int
    completed: int
    progress: int


@dataclass
class TaskAnalytics:
    total_tasks: int
    completed_tasks: int
    total_subtasks: int
    completed_subtasks: int
    average_subtasks_per_task: float
    tasks_with_memo: int
    tasks_with_subtasks: int
    estimated_total_minutes: int
    actual_total_minutes: int


@dataclass
class HabitStats:
    total_habits: int
    active_habits: int
    completed_today: int
    average_completion_rate: int
    longest_streak: int
    current_streaks: Dict[int, int]


@dataclass
class PointsSummary:
    current_points: int
    total_earned_points: int
    today: int
    week: int
    month: int


@dataclass
class Outcome:
    ok: bool
    message: str
    value: Any = None
