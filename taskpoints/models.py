from __future__ import annotations

import enum
from datetime import date, datetime, timezone

from typing import List, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Priority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HabitFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PointEntryType(str, enum.Enum):
    TASK_COMPLETE = "task_complete"
    TASK_UNCOMPLETE = "task_uncomplete"
    SUBTASK_COMPLETE = "subtask_complete"
    SUBTASK_UNCOMPLETE = "subtask_uncomplete"
    HABIT_COMPLETE = "habit_complete"
    HABIT_UNCOMPLETE = "habit_uncomplete"
    GAME_PLAY = "game_play"
    SHOP_PURCHASE = "shop_purchase"
    LOGIN_BONUS = "login_bonus"


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_retention", "user_id", "completed", "completed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    text: Mapped[str] = mapped_column(String(500))
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    priority: Mapped[Priority] = mapped_column(Enum(Priority), default=Priority.MEDIUM)
    points: Mapped[int] = mapped_column(Integer, default=0)
    order: Mapped[int] = mapped_column(Integer, default=0)
    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actual_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    scheduled_for_deletion: Mapped[bool] = mapped_column(Boolean, default=False)

    subtasks: Mapped[List["SubTask"]] = relationship(
        "SubTask", back_populates="task", cascade="all, delete-orphan", order_by="SubTask.order_idx"
    )


class SubTask(Base):
    __tablename__ = "subtasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), index=True)
    text: Mapped[str] = mapped_column(String(500))
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    order_idx: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    task: Mapped["Task"] = relationship("Task", back_populates="subtasks")


class Habit(Base):
    __tablename__ = "habits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    frequency: Mapped[HabitFrequency] = mapped_column(Enum(HabitFrequency), default=HabitFrequency.DAILY)
    target_days: Mapped[List[int]] = mapped_column(JSON, default=list)
    reminder_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    completion_history: Mapped[List["HabitCompletion"]] = relationship(
        "HabitCompletion", back_populates="habit", cascade="all, delete-orphan", order_by="HabitCompletion.date"
    )


class HabitCompletion(Base):
    __tablename__ = "habit_completions"
    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_habit_completion_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    habit_id: Mapped[int] = mapped_column(ForeignKey("habits.id", ondelete="CASCADE"), index=True)
    date: Mapped[str] = mapped_column(String(10))
    completed: Mapped[bool] = mapped_column(Boolean, default=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    habit: Mapped["Habit"] = relationship("Habit", back_populates="completion_history")


class PointEntry(Base):
    __tablename__ = "point_entries"
    __table_args__ = (
        Index("ix_point_entries_user_item", "user_id", "item_ref"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    type: Mapped[PointEntryType] = mapped_column(Enum(PointEntryType))
    delta: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(255))
    item_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    date: Mapped[str] = mapped_column(String(10))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class UserPoints(Base):
    __tablename__ = "user_points"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    current_points: Mapped[int] = mapped_column(Integer, default=0)
    total_earned_points: Mapped[int] = mapped_column(Integer, default=0)
    login_streak: Mapped[int] = mapped_column(Integer, default=0)
    max_login_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_login_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    last_login_bonus_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

