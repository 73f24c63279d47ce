"""
Completion toggles for tasks, sub-tasks and habits.

Each transition runs in two steps. The item itself is written first with a
compare-and-set on its ``completed`` flag, so a transition into the state the
item is already in changes nothing and awards nothing. Only when that write
changed the row is the ledger touched, in a second transaction. If the ledger
write then fails the item and the ledger disagree; the caller gets a
``PartialUpdateInconsistency`` and nothing is rolled back or retried.

Hooks (sounds, notifications) run after both writes and cannot affect the
outcome.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional

from sqlalchemy import update

from ..clock import Clock
from ..db import Database, mark_changed
from ..exceptions import PartialUpdateInconsistency, TaskPointsError
from ..feed import HABITS, TASKS
from ..models import HabitCompletion, PointEntryType, SubTask, Task
from ..recurrence import parse_day
from ..schemas import ToggleResult
from ..scoring import HABIT_COMPLETION_POINTS, REVERSAL_TYPES, SUBTASK_COMPLETION_POINTS, task_points
from . import habit_service, ledger_service, task_service

log = logging.getLogger(__name__)

REASON_LENGTH = 20


@dataclass
class TransitionEvent:
    kind: str
    user_id: str
    item_id: int
    title: str
    completed: bool
    points_delta: int


Hook = Callable[[TransitionEvent], None]


def _short(text: str, limit: int = REASON_LENGTH) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


class CompletionToggleController:
    def __init__(self, database: Database, clock: Optional[Clock] = None, hooks: Iterable[Hook] = ()) -> None:
        self.database = database
        self.clock = clock or Clock()
        self.hooks: List[Hook] = list(hooks)

    def add_hook(self, hook: Hook) -> None:
        self.hooks.append(hook)

    # tasks

    def set_task_completed(self, user_id: str, task_id: int, completed: bool) -> ToggleResult:
        now = self.clock.utcnow()
        with self.database.session_scope("task update") as session:
            task = task_service.get_task(session, user_id, task_id)
            points, text = task_points(task), task.text
            stmt = (
                update(Task)
                .where(Task.id == task_id, Task.user_id == user_id, Task.completed == (not completed))
                .values(
                    completed=completed,
                    completed_at=now if completed else None,
                    scheduled_for_deletion=completed,
                )
                .execution_options(synchronize_session=False)
            )
            changed = session.execute(stmt).rowcount == 1
            if changed and completed:
                session.execute(
                    update(SubTask)
                    .where(SubTask.task_id == task_id, SubTask.completed.is_(False))
                    .values(completed=True, completed_at=now)
                    .execution_options(synchronize_session=False)
                )
            if changed:
                mark_changed(session, user_id, TASKS)
        if not changed:
            log.debug("Task %s already %s", task_id, "complete" if completed else "incomplete")
            return ToggleResult(changed=False, completed=completed)

        reason = f"{'Task completed' if completed else 'Task completion undone'}: {_short(text)}"
        delta = self._record(user_id, f"task:{task_id}", completed, points, PointEntryType.TASK_COMPLETE, reason)
        self._notify(TransitionEvent("task", user_id, task_id, text, completed, delta))
        return ToggleResult(changed=True, completed=completed, points_delta=delta)

    def toggle_task(self, user_id: str, task_id: int) -> ToggleResult:
        with self.database.session_scope("task read") as session:
            completed = task_service.get_task(session, user_id, task_id).completed
        return self.set_task_completed(user_id, task_id, not completed)

    # sub-tasks

    def set_subtask_completed(self, user_id: str, task_id: int, subtask_id: int, completed: bool) -> ToggleResult:
        now = self.clock.utcnow()
        with self.database.session_scope("sub-task update") as session:
            text = task_service.get_subtask(session, user_id, task_id, subtask_id).text
            stmt = (
                update(SubTask)
                .where(SubTask.id == subtask_id, SubTask.task_id == task_id, SubTask.completed == (not completed))
                .values(completed=completed, completed_at=now if completed else None)
                .execution_options(synchronize_session=False)
            )
            changed = session.execute(stmt).rowcount == 1
            if changed:
                mark_changed(session, user_id, TASKS)
        if not changed:
            return ToggleResult(changed=False, completed=completed)

        reason = f"{'Sub-task completed' if completed else 'Sub-task completion undone'}: {_short(text, 15)}"
        delta = self._record(
            user_id,
            f"subtask:{subtask_id}",
            completed,
            SUBTASK_COMPLETION_POINTS,
            PointEntryType.SUBTASK_COMPLETE,
            reason,
        )
        self._notify(TransitionEvent("subtask", user_id, subtask_id, text, completed, delta))
        return ToggleResult(changed=True, completed=completed, points_delta=delta)

    def toggle_subtask(self, user_id: str, task_id: int, subtask_id: int) -> ToggleResult:
        with self.database.session_scope("sub-task read") as session:
            completed = task_service.get_subtask(session, user_id, task_id, subtask_id).completed
        return self.set_subtask_completed(user_id, task_id, subtask_id, not completed)

    # habits

    def set_habit_completed(self, user_id: str, habit_id: int, completed: bool, day=None) -> ToggleResult:
        target = parse_day(day) or self.clock.today()
        key = target.isoformat()
        now = self.clock.utcnow()
        with self.database.session_scope("habit update") as session:
            habit = habit_service.get_habit(session, user_id, habit_id)
            title = habit.title
            entry = next((e for e in habit.completion_history if e.date == key), None)
            if entry is None:
                changed = completed
                if completed:
                    session.add(HabitCompletion(habit_id=habit.id, date=key, completed=True, completed_at=now))
                    session.flush()
            else:
                stmt = (
                    update(HabitCompletion)
                    .where(HabitCompletion.id == entry.id, HabitCompletion.completed == (not completed))
                    .values(completed=completed, completed_at=now if completed else None)
                    .execution_options(synchronize_session=False)
                )
                changed = session.execute(stmt).rowcount == 1
            if changed:
                mark_changed(session, user_id, HABITS)
        if not changed:
            return ToggleResult(changed=False, completed=completed)

        reason = f"{'Habit completed' if completed else 'Habit completion undone'}: {_short(title)}"
        delta = self._record(
            user_id,
            f"habit:{habit_id}:{key}",
            completed,
            HABIT_COMPLETION_POINTS,
            PointEntryType.HABIT_COMPLETE,
            reason,
            day=target,
        )
        self._notify(TransitionEvent("habit", user_id, habit_id, title, completed, delta))
        return ToggleResult(changed=True, completed=completed, points_delta=delta)

    def toggle_habit(self, user_id: str, habit_id: int, day=None) -> ToggleResult:
        target = parse_day(day) or self.clock.today()
        with self.database.session_scope("habit read") as session:
            habit = habit_service.get_habit(session, user_id, habit_id)
            done = any(e.date == target.isoformat() and e.completed for e in habit.completion_history)
        return self.set_habit_completed(user_id, habit_id, not done, day=target)

    # internals

    def _record(
        self,
        user_id: str,
        item_ref: str,
        completed: bool,
        amount: int,
        earn_type: PointEntryType,
        reason: str,
        day: Optional[date] = None,
    ) -> int:
        now = self.clock.utcnow()
        day = day or self.clock.today()
        try:
            with self.database.session_scope("ledger append") as session:
                if completed:
                    ledger_service.award(session, user_id, earn_type, amount, reason, item_ref=item_ref, now=now, day=day)
                    return amount
                held = ledger_service.outstanding_award(session, user_id, item_ref)
                if held == 0:
                    return 0
                ledger_service.reverse(
                    session, user_id, REVERSAL_TYPES[earn_type], held, reason, item_ref=item_ref, now=now, day=day
                )
                return -held
        except TaskPointsError as exc:
            log.error("Ledger out of step with %s for user %s: %s", item_ref, user_id, exc)
            raise PartialUpdateInconsistency(item_ref, str(exc)) from exc

    def _notify(self, event: TransitionEvent) -> None:
        for hook in list(self.hooks):
            try:
                hook(event)
            except Exception:
                log.exception("Post-transition hook %r failed for %s %s", hook, event.kind, event.item_id)
