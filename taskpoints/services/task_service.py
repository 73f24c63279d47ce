from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from ..db import mark_changed
from ..exceptions import NotFound, ValidationError
from ..feed import TASKS
from ..models import Priority, SubTask, Task, utcnow
from ..schemas import SubTaskProgress, TaskAnalytics, TaskCreate, parse_priority, validate_text
from ..scoring import points_for_priority

SORT_KEYS = ("created", "deadline", "priority", "progress", "alphabetical")
FILTERS = ("all", "active", "completed")
PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}
MAIN_TASK_WEIGHT = 0.3
SUBTASK_WEIGHT = 0.7


def list_tasks(session: Session, user_id: str) -> Sequence[Task]:
    stmt = (
        select(Task)
        .where(Task.user_id == user_id)
        .options(selectinload(Task.subtasks))
        .order_by(Task.order, Task.id)
    )
    return session.scalars(stmt).all()


def get_task(session: Session, user_id: str, task_id: int) -> Task:
    stmt = select(Task).where(Task.user_id == user_id, Task.id == task_id).options(selectinload(Task.subtasks))
    task = session.scalars(stmt).first()
    if task is None:
        raise NotFound("task", task_id)
    return task


def create_task(session: Session, user_id: str, data: TaskCreate) -> Task:
    data = data.validated()
    next_order = session.scalar(select(func.coalesce(func.max(Task.order), 0)).where(Task.user_id == user_id)) + 1
    task = Task(
        user_id=user_id,
        text=data.text,
        priority=data.priority,
        deadline=data.deadline,
        memo=data.memo,
        points=data.points if data.points is not None else points_for_priority(data.priority),
        estimated_minutes=data.estimated_minutes,
        order=next_order,
        completed=False,
        completed_at=None,
        scheduled_for_deletion=False,
        created_at=utcnow(),
    )
    session.add(task)
    session.flush()
    mark_changed(session, user_id, TASKS)
    return task


def delete_task(session: Session, user_id: str, task_id: int) -> None:
    task = get_task(session, user_id, task_id)
    session.delete(task)
    mark_changed(session, user_id, TASKS)


def set_deadline(session: Session, user_id: str, task_id: int, deadline: Optional[date]) -> Task:
    task = get_task(session, user_id, task_id)
    task.deadline = deadline
    mark_changed(session, user_id, TASKS)
    return task


def set_priority(session: Session, user_id: str, task_id: int, priority) -> Task:
    task = get_task(session, user_id, task_id)
    new_priority = parse_priority(priority)
    # points that only mirror the old priority follow the new one
    if not task.points or task.points == points_for_priority(task.priority):
        task.points = points_for_priority(new_priority)
    task.priority = new_priority
    mark_changed(session, user_id, TASKS)
    return task


def update_memo(session: Session, user_id: str, task_id: int, memo: Optional[str]) -> Task:
    task = get_task(session, user_id, task_id)
    task.memo = (memo or "").strip() or None
    mark_changed(session, user_id, TASKS)
    return task


def set_estimate(session: Session, user_id: str, task_id: int, minutes: int) -> Task:
    if minutes < 0:
        raise ValidationError("estimated_minutes", "must not be negative")
    task = get_task(session, user_id, task_id)
    task.estimated_minutes = minutes
    mark_changed(session, user_id, TASKS)
    return task


def add_subtask(session: Session, user_id: str, task_id: int, text: str) -> SubTask:
    task = get_task(session, user_id, task_id)
    order = max((s.order_idx for s in task.subtasks), default=0) + 1
    subtask = SubTask(task=task, text=validate_text("text", text), order_idx=order, completed=False, created_at=utcnow())
    session.add(subtask)
    session.flush()
    mark_changed(session, user_id, TASKS)
    return subtask


def get_subtask(session: Session, user_id: str, task_id: int, subtask_id: int) -> SubTask:
    task = get_task(session, user_id, task_id)
    for subtask in task.subtasks:
        if subtask.id == subtask_id:
            return subtask
    raise NotFound("sub-task", subtask_id)


def remove_subtask(session: Session, user_id: str, task_id: int, subtask_id: int) -> None:
    subtask = get_subtask(session, user_id, task_id, subtask_id)
    task = subtask.task
    task.subtasks.remove(subtask)
    for index, remaining in enumerate(task.subtasks, start=1):
        remaining.order_idx = index
    mark_changed(session, user_id, TASKS)


def reorder_subtasks(session: Session, user_id: str, task_id: int, new_order: List[int]) -> List[SubTask]:
    task = get_task(session, user_id, task_id)
    by_id = {s.id: s for s in task.subtasks}
    requested = set(new_order)
    ordered = [by_id[sid] for sid in new_order if sid in by_id]
    ordered.extend(s for s in task.subtasks if s.id not in requested)
    for index, subtask in enumerate(ordered, start=1):
        subtask.order_idx = index
    mark_changed(session, user_id, TASKS)
    return ordered


def subtask_progress(subtasks: Sequence[SubTask]) -> SubTaskProgress:
    total = len(subtasks)
    completed = sum(1 for s in subtasks if s.completed)
    progress = round(completed * 100 / total) if total else 0
    return SubTaskProgress(total=total, completed=completed, progress=progress)


def total_progress(task: Task) -> int:
    """Progress in percent; sub-tasks weigh 70% when the task has any."""
    main = 100 if task.completed else 0
    if not task.subtasks:
        return main
    return round(main * MAIN_TASK_WEIGHT + subtask_progress(task.subtasks).progress * SUBTASK_WEIGHT)


def filter_tasks(tasks: Sequence[Task], which: str = "all") -> List[Task]:
    if which == "active":
        return [t for t in tasks if not t.completed]
    if which == "completed":
        return [t for t in tasks if t.completed]
    return list(tasks)


def sort_tasks(tasks: Sequence[Task], sort_by: str = "priority", descending: bool = True) -> List[Task]:
    if sort_by not in SORT_KEYS:
        raise ValidationError("sort_by", f"expected one of {', '.join(SORT_KEYS)}")
    # "descending" means most relevant first: higher priority, nearer deadline,
    # newer task, more progress, A before Z
    if sort_by == "priority":
        ordered = sorted(tasks, key=lambda t: -PRIORITY_RANK[t.priority])
    elif sort_by == "deadline":
        ordered = sorted(tasks, key=lambda t: (t.deadline is None, t.deadline or date.max))
    elif sort_by == "created":
        ordered = sorted(tasks, key=lambda t: t.created_at, reverse=True)
    elif sort_by == "progress":
        ordered = sorted(tasks, key=total_progress, reverse=True)
    else:
        ordered = sorted(tasks, key=lambda t: t.text.casefold())
    return ordered if descending else list(reversed(ordered))


def overdue_tasks(tasks: Sequence[Task], today: date) -> List[Task]:
    return [t for t in tasks if not t.completed and t.deadline and t.deadline < today]


def tasks_due_today(tasks: Sequence[Task], today: date) -> List[Task]:
    return [t for t in tasks if not t.completed and t.deadline == today]


def tasks_due_soon(tasks: Sequence[Task], today: date, days: int = 3) -> List[Task]:
    horizon = today + timedelta(days=days)
    return [t for t in tasks if not t.completed and t.deadline and today <= t.deadline <= horizon]


def task_analytics(tasks: Sequence[Task]) -> TaskAnalytics:
    total = len(tasks)
    total_subtasks = sum(len(t.subtasks) for t in tasks)
    return TaskAnalytics(
        total_tasks=total,
        completed_tasks=sum(1 for t in tasks if t.completed),
        total_subtasks=total_subtasks,
        completed_subtasks=sum(1 for t in tasks for s in t.subtasks if s.completed),
        average_subtasks_per_task=total_subtasks / total if total else 0.0,
        tasks_with_memo=sum(1 for t in tasks if t.memo),
        tasks_with_subtasks=sum(1 for t in tasks if t.subtasks),
        estimated_total_minutes=sum(t.estimated_minutes or 0 for t in tasks),
        actual_total_minutes=sum(t.actual_minutes or 0 for t in tasks),
    )
