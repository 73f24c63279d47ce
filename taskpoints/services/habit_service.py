from __future__ import annotations

from datetime import date, datetime
from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..db import mark_changed
from ..exceptions import NotFound
from ..feed import HABITS
from ..models import Habit, utcnow
from ..recurrence import completion_rate, is_due_on, is_overdue, is_satisfied_on
from ..schemas import (
    HabitCreate,
    HabitStats,
    HabitUpdate,
    parse_frequency,
    validate_reminder_time,
    validate_target_days,
    validate_text,
)
from ..scoring import current_streak


def list_habits(session: Session, user_id: str) -> Sequence[Habit]:
    stmt = (
        select(Habit)
        .where(Habit.user_id == user_id)
        .options(selectinload(Habit.completion_history))
        .order_by(Habit.created_at, Habit.id)
    )
    return session.scalars(stmt).all()


def get_habit(session: Session, user_id: str, habit_id: int) -> Habit:
    stmt = (
        select(Habit)
        .where(Habit.user_id == user_id, Habit.id == habit_id)
        .options(selectinload(Habit.completion_history))
    )
    habit = session.scalars(stmt).first()
    if habit is None:
        raise NotFound("habit", habit_id)
    return habit


def create_habit(session: Session, user_id: str, data: HabitCreate) -> Habit:
    data = data.validated()
    habit = Habit(
        user_id=user_id,
        title=data.title,
        description=data.description,
        frequency=data.frequency,
        target_days=data.target_days,
        reminder_time=data.reminder_time,
        is_active=data.is_active,
        created_at=utcnow(),
    )
    session.add(habit)
    session.flush()
    mark_changed(session, user_id, HABITS)
    return habit


def update_habit(session: Session, user_id: str, habit_id: int, changes: HabitUpdate) -> Habit:
    habit = get_habit(session, user_id, habit_id)
    if changes.title is not None:
        habit.title = validate_text("title", changes.title)
    if changes.description is not None:
        habit.description = changes.description.strip() or None
    frequency = parse_frequency(changes.frequency) if changes.frequency is not None else habit.frequency
    if changes.frequency is not None or changes.target_days is not None:
        target_days = changes.target_days if changes.target_days is not None else habit.target_days
        habit.target_days = validate_target_days(frequency, target_days)
        habit.frequency = frequency
    if changes.reminder_time is not None:
        habit.reminder_time = validate_reminder_time(changes.reminder_time)
    if changes.is_active is not None:
        habit.is_active = changes.is_active
    habit.updated_at = utcnow()
    mark_changed(session, user_id, HABITS)
    return habit


def deactivate_habit(session: Session, user_id: str, habit_id: int) -> Habit:
    return update_habit(session, user_id, habit_id, HabitUpdate(is_active=False))


def delete_habit(session: Session, user_id: str, habit_id: int) -> None:
    habit = get_habit(session, user_id, habit_id)
    session.delete(habit)
    mark_changed(session, user_id, HABITS)


def todays_habits(habits: Sequence[Habit], today: date) -> List[Habit]:
    return [h for h in habits if is_due_on(h, today)]


def overdue_habits(habits: Sequence[Habit], now: datetime) -> List[Habit]:
    return [h for h in habits if is_overdue(h, now)]


def habit_stats(habits: Sequence[Habit], today: date) -> HabitStats:
    due_today = todays_habits(habits, today)
    rates = [completion_rate(h, today) for h in habits if h.completion_history]
    streaks = {h.id: current_streak(h, today) for h in habits}
    return HabitStats(
        total_habits=len(habits),
        active_habits=sum(1 for h in habits if h.is_active),
        completed_today=sum(1 for h in due_today if is_satisfied_on(h, today)),
        average_completion_rate=round(sum(rates) / len(rates)) if rates else 0,
        longest_streak=max(streaks.values(), default=0),
        current_streaks=streaks,
    )
