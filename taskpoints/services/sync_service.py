from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Union

from ..clock import Clock
from ..db import Database
from ..exceptions import NotAuthenticated, TaskPointsError
from ..feed import HABITS, TASKS
from ..models import Habit, Task
from ..schemas import HabitStats, TaskAnalytics
from . import habit_service, task_service

log = logging.getLogger(__name__)


@dataclass
class TaskSnapshot:
    tasks: List[Task]
    overdue: List[Task]
    due_today: List[Task]
    due_soon: List[Task]
    analytics: TaskAnalytics
    taken_at: datetime


@dataclass
class HabitSnapshot:
    habits: List[Habit]
    today: List[Habit]
    overdue: List[Habit]
    stats: HabitStats
    taken_at: datetime


Snapshot = Union[TaskSnapshot, HabitSnapshot]


@dataclass
class _Subscription:
    user_id: str
    collection: str
    on_change: Callable[[Snapshot], None]
    on_error: Optional[Callable[[TaskPointsError], None]]
    detach: Callable[[], None] = field(default=lambda: None)
    active: bool = True


class RealtimeSync:
    """Keeps one live view per collection for the signed-in user.

    Every change notification triggers a full reload; subscribers receive the
    whole recomputed snapshot, never a diff.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        sort_by: str = "priority",
        descending: bool = True,
        on_task_load: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.database = database
        self.clock = clock
        self.sort_by = sort_by
        self.descending = descending
        self.on_task_load = on_task_load
        self._subscriptions: Dict[str, _Subscription] = {}

    def subscribe(
        self,
        user_id: Optional[str],
        collection: str,
        on_change: Callable[[Snapshot], None],
        on_error: Optional[Callable[[TaskPointsError], None]] = None,
    ) -> Callable[[], None]:
        if not user_id:
            raise NotAuthenticated(f"{collection} subscription")
        if collection not in (TASKS, HABITS):
            raise ValueError(f"cannot subscribe to {collection!r}")
        self._teardown(collection)

        if collection == TASKS and self.on_task_load is not None:
            try:
                self.on_task_load(user_id)
            except TaskPointsError as exc:
                log.error("Task load hook failed for %s: %s", user_id, exc)

        subscription = _Subscription(user_id, collection, on_change, on_error)
        self._subscriptions[collection] = subscription
        subscription.detach = self.database.feed.subscribe(
            user_id,
            collection,
            lambda _user, _collection: self._refresh(subscription),
            lambda exc: self._fail(subscription, exc),
        )
        log.info("Subscribed to %s for %s", collection, user_id)
        self._refresh(subscription)

        def unsubscribe() -> None:
            self._close(subscription)

        return unsubscribe

    def unsubscribe_all(self) -> None:
        for collection in list(self._subscriptions):
            self._teardown(collection)

    def is_subscribed(self, collection: str) -> bool:
        return collection in self._subscriptions

    def load(self, user_id: str, collection: str) -> Snapshot:
        with self.database.session_scope(f"{collection} load") as session:
            if collection == TASKS:
                return self._task_snapshot(list(task_service.list_tasks(session, user_id)))
            return self._habit_snapshot(list(habit_service.list_habits(session, user_id)))

    def _task_snapshot(self, tasks: List[Task]) -> TaskSnapshot:
        today = self.clock.today()
        return TaskSnapshot(
            tasks=task_service.sort_tasks(tasks, self.sort_by, self.descending),
            overdue=task_service.overdue_tasks(tasks, today),
            due_today=task_service.tasks_due_today(tasks, today),
            due_soon=task_service.tasks_due_soon(tasks, today),
            analytics=task_service.task_analytics(tasks),
            taken_at=self.clock.now(),
        )

    def _habit_snapshot(self, habits: List[Habit]) -> HabitSnapshot:
        now = self.clock.now()
        today: date = now.date()
        return HabitSnapshot(
            habits=habits,
            today=habit_service.todays_habits(habits, today),
            overdue=habit_service.overdue_habits(habits, now.replace(tzinfo=None)),
            stats=habit_service.habit_stats(habits, today),
            taken_at=now,
        )

    def _refresh(self, subscription: _Subscription) -> None:
        if not subscription.active:
            return
        try:
            snapshot = self.load(subscription.user_id, subscription.collection)
        except TaskPointsError as exc:
            self._fail(subscription, exc)
            return
        if not subscription.active:
            return
        try:
            subscription.on_change(snapshot)
        except Exception as exc:
            log.exception("%s subscriber for %s raised", subscription.collection, subscription.user_id)
            self._fail(subscription, exc)

    def _fail(self, subscription: _Subscription, exc: Exception) -> None:
        if not subscription.active:
            return
        log.error("%s subscription for %s stopped: %s", subscription.collection, subscription.user_id, exc)
        self._close(subscription)
        if subscription.on_error is not None:
            error = exc if isinstance(exc, TaskPointsError) else TaskPointsError(str(exc))
            subscription.on_error(error)

    def _close(self, subscription: _Subscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        subscription.detach()
        if self._subscriptions.get(subscription.collection) is subscription:
            del self._subscriptions[subscription.collection]
        log.info("Unsubscribed from %s for %s", subscription.collection, subscription.user_id)

    def _teardown(self, collection: str) -> None:
        previous = self._subscriptions.get(collection)
        if previous is not None:
            self._close(previous)
