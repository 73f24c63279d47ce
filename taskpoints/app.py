from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Iterable, List, Optional

from .auth import AuthContext
from .clock import Clock
from .db import Database
from .exceptions import NotAuthenticated, TaskPointsError
from .feed import HABITS, TASKS
from .jobs.scheduler import SweepScheduler
from .models import PointEntryType
from .recurrence import parse_day
from .schemas import HabitCreate, HabitUpdate, Outcome, TaskCreate
from .scoring import GAME_PLAY_COST, current_streak
from .services import habit_service, ledger_service, task_service
from .services.sync_service import RealtimeSync, Snapshot
from .services.toggle_service import CompletionToggleController, Hook
from .settings import Settings, get_settings
from .views import messages

log = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class TaskPointsApp:
    """Entry point for view code.

    Every public method returns an ``Outcome`` whose message can be shown to
    the user directly. Engine errors never escape as exceptions.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
        auth: Optional[AuthContext] = None,
        clock: Optional[Clock] = None,
        scheduler=None,
        hooks: Iterable[Hook] = (),
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock or Clock(self.settings.timezone)
        self._owns_database = database is None
        self.database = database or Database(self.settings.database_url)
        if self._owns_database:
            self.database.create_all()
        self.auth = auth or AuthContext()
        self.toggles = CompletionToggleController(self.database, self.clock, hooks)
        self.sweeper = SweepScheduler(
            self.database,
            self.clock,
            interval_minutes=self.settings.sweep_interval_minutes,
            retention_days=self.settings.retention_days,
            scheduler=scheduler,
        )
        self.sync = RealtimeSync(self.database, self.clock, on_task_load=self.sweeper.run_once)
        self._remove_auth_listener = self.auth.on_change(self._on_auth_change)
        if self.auth.user_id:
            self._start_session(self.auth.user_id)

    # lifecycle

    def init(self, user_id: str) -> Outcome:
        """Sign ``user_id`` in and grant the daily login bonus."""
        self.auth.sign_in(user_id)
        return self.claim_login_bonus()

    def start(self) -> None:
        # the default AsyncIOScheduler needs a running event loop
        self.sweeper.start()

    def dispose(self) -> None:
        self.auth.sign_out()
        self._remove_auth_listener()
        self.sweeper.shutdown()
        if self._owns_database:
            self.database.dispose()

    def _on_auth_change(self, user_id: Optional[str]) -> None:
        if user_id is None:
            self._end_session()
        else:
            self._start_session(user_id)

    def _start_session(self, user_id: str) -> None:
        with self.database.session_scope("session start") as session:
            ledger_service.ensure_user_points(session, user_id)
        self.sweeper.schedule_for(user_id)

    def _end_session(self) -> None:
        self.sync.unsubscribe_all()
        self.sweeper.stop()

    def _user(self, operation: str) -> str:
        user_id = self.auth.user_id
        if not user_id:
            raise NotAuthenticated(operation)
        return user_id

    def _run(self, operation: str, action: Callable[[str], Any], message: Callable[[Any], str]) -> Outcome:
        try:
            value = action(self._user(operation))
        except TaskPointsError as exc:
            log.warning("%s failed: %s", operation, exc)
            return Outcome(ok=False, message=exc.user_message)
        return Outcome(ok=True, message=message(value), value=value)

    # realtime views

    def watch_tasks(self, on_change: Callable[[Snapshot], None], on_error=None) -> Outcome:
        return self._run(
            "watch tasks",
            lambda uid: self.sync.subscribe(uid, TASKS, on_change, on_error),
            lambda _: "Watching tasks.",
        )

    def watch_habits(self, on_change: Callable[[Snapshot], None], on_error=None) -> Outcome:
        return self._run(
            "watch habits",
            lambda uid: self.sync.subscribe(uid, HABITS, on_change, on_error),
            lambda _: "Watching habits.",
        )

    # tasks

    def add_task(
        self,
        text: str,
        priority: str = "medium",
        deadline: Optional[date] = None,
        memo: Optional[str] = None,
        estimated_minutes: Optional[int] = None,
    ) -> Outcome:
        def action(uid: str) -> int:
            data = TaskCreate(text=text, priority=priority, deadline=deadline, memo=memo, estimated_minutes=estimated_minutes)
            with self.database.session_scope("task create") as session:
                return task_service.create_task(session, uid, data).id

        return self._run("add task", action, lambda _: messages.task_created(text.strip()))

    def delete_task(self, task_id: int) -> Outcome:
        def action(uid: str) -> str:
            with self.database.session_scope("task delete") as session:
                text = task_service.get_task(session, uid, task_id).text
                task_service.delete_task(session, uid, task_id)
            return text

        return self._run("delete task", action, messages.task_deleted)

    def set_deadline(self, task_id: int, deadline) -> Outcome:
        def action(uid: str) -> None:
            with self.database.session_scope("task deadline") as session:
                task_service.set_deadline(session, uid, task_id, parse_day(deadline) if deadline else None)

        return self._run("set deadline", action, lambda _: messages.saved())

    def set_priority(self, task_id: int, priority: str) -> Outcome:
        def action(uid: str) -> None:
            with self.database.session_scope("task priority") as session:
                task_service.set_priority(session, uid, task_id, priority)

        return self._run("set priority", action, lambda _: messages.saved())

    def update_memo(self, task_id: int, memo: str) -> Outcome:
        def action(uid: str) -> None:
            with self.database.session_scope("task memo") as session:
                task_service.update_memo(session, uid, task_id, memo)

        return self._run("update memo", action, lambda _: messages.saved())

    def set_estimate(self, task_id: int, minutes: int) -> Outcome:
        def action(uid: str) -> None:
            with self.database.session_scope("task estimate") as session:
                task_service.set_estimate(session, uid, task_id, minutes)

        return self._run("set estimate", action, lambda _: messages.saved())

    def add_subtask(self, task_id: int, text: str) -> Outcome:
        def action(uid: str) -> int:
            with self.database.session_scope("sub-task create") as session:
                return task_service.add_subtask(session, uid, task_id, text).id

        return self._run("add sub-task", action, lambda _: messages.saved())

    def remove_subtask(self, task_id: int, subtask_id: int) -> Outcome:
        def action(uid: str) -> None:
            with self.database.session_scope("sub-task delete") as session:
                task_service.remove_subtask(session, uid, task_id, subtask_id)

        return self._run("remove sub-task", action, lambda _: messages.saved())

    def reorder_subtasks(self, task_id: int, new_order: List[int]) -> Outcome:
        def action(uid: str) -> List[int]:
            with self.database.session_scope("sub-task reorder") as session:
                return [s.id for s in task_service.reorder_subtasks(session, uid, task_id, new_order)]

        return self._run("reorder sub-tasks", action, lambda _: messages.saved())

    def toggle_task(self, task_id: int) -> Outcome:
        def action(uid: str):
            with self.database.session_scope("task read") as session:
                text = task_service.get_task(session, uid, task_id).text
            return text, self.toggles.toggle_task(uid, task_id)

        def message(value) -> str:
            text, result = value
            if not result.changed:
                return messages.already_in_state(result.completed)
            if result.completed:
                return messages.task_completed(text, result.points_delta)
            return messages.task_reopened(text, -result.points_delta)

        outcome = self._run("toggle task", action, message)
        if outcome.ok:
            outcome.value = outcome.value[1]
        return outcome

    def toggle_subtask(self, task_id: int, subtask_id: int) -> Outcome:
        def message(result) -> str:
            if not result.changed:
                return messages.already_in_state(result.completed)
            if result.completed:
                return messages.subtask_completed(result.points_delta)
            return messages.subtask_reopened(-result.points_delta)

        return self._run("toggle sub-task", lambda uid: self.toggles.toggle_subtask(uid, task_id, subtask_id), message)

    def sweep_now(self) -> Outcome:
        return self._run(
            "retention sweep",
            self.sweeper.run_once,
            lambda count: messages.sweep_result(count, self.sweeper.retention),
        )

    # habits

    def add_habit(
        self,
        title: str,
        frequency: str = "daily",
        target_days: Optional[List[int]] = None,
        description: Optional[str] = None,
        reminder_time: Optional[str] = None,
    ) -> Outcome:
        def action(uid: str) -> int:
            data = HabitCreate(
                title=title,
                frequency=frequency,
                target_days=list(target_days or []),
                description=description,
                reminder_time=reminder_time,
            )
            with self.database.session_scope("habit create") as session:
                return habit_service.create_habit(session, uid, data).id

        return self._run("add habit", action, lambda _: messages.habit_created(title.strip()))

    def update_habit(self, habit_id: int, changes: HabitUpdate) -> Outcome:
        def action(uid: str) -> None:
            with self.database.session_scope("habit update") as session:
                habit_service.update_habit(session, uid, habit_id, changes)

        return self._run("update habit", action, lambda _: messages.saved())

    def deactivate_habit(self, habit_id: int) -> Outcome:
        return self.update_habit(habit_id, HabitUpdate(is_active=False))

    def delete_habit(self, habit_id: int) -> Outcome:
        def action(uid: str) -> None:
            with self.database.session_scope("habit delete") as session:
                habit_service.delete_habit(session, uid, habit_id)

        return self._run("delete habit", action, lambda _: messages.saved())

    def toggle_habit(self, habit_id: int, day=None) -> Outcome:
        def action(uid: str):
            with self.database.session_scope("habit read") as session:
                title = habit_service.get_habit(session, uid, habit_id).title
            return title, self.toggles.toggle_habit(uid, habit_id, day)

        def message(value) -> str:
            title, result = value
            if not result.changed:
                return messages.already_in_state(result.completed)
            if result.completed:
                return messages.habit_completed(title, result.points_delta)
            return messages.habit_reopened(title, -result.points_delta)

        outcome = self._run("toggle habit", action, message)
        if outcome.ok:
            outcome.value = outcome.value[1]
        return outcome

    def habit_streak(self, habit_id: int, as_of=None) -> Outcome:
        def action(uid: str) -> int:
            with self.database.session_scope("habit read") as session:
                habit = habit_service.get_habit(session, uid, habit_id)
                return current_streak(habit, as_of or self.clock.today())

        return self._run("habit streak", action, lambda streak: f"{streak} in a row")

    # points

    def claim_login_bonus(self) -> Outcome:
        def action(uid: str):
            with self.database.session_scope("login bonus") as session:
                bonus = ledger_service.award_login_bonus(session, uid, self.clock.today(), now=self.clock.utcnow())
                streak = ledger_service.get_balance(session, uid).login_streak
            return bonus, streak

        def message(value) -> str:
            bonus, streak = value
            return messages.login_bonus(bonus, streak) if bonus else "Login bonus already claimed today."

        outcome = self._run("login bonus", action, message)
        if outcome.ok:
            outcome.value = outcome.value[0]
        return outcome

    def spend_points(
        self, amount: int, reason: str, entry_type: PointEntryType = PointEntryType.SHOP_PURCHASE
    ) -> Outcome:
        def action(uid: str) -> int:
            with self.database.session_scope("points spend") as session:
                ledger_service.spend(
                    session, uid, amount, reason, entry_type, now=self.clock.utcnow(), day=self.clock.today()
                )
                return ledger_service.get_balance(session, uid).current_points

        return self._run("spend points", action, lambda _: messages.points_spent(reason, amount))

    def play_game(self, game_type: str) -> Outcome:
        return self.spend_points(GAME_PLAY_COST, f"Played {game_type}", PointEntryType.GAME_PLAY)

    def purchase_item(self, item_id: str, name: str, price: int) -> Outcome:
        log.info("Purchasing %s for %d points", item_id, price)
        return self.spend_points(price, f"Bought {name}", PointEntryType.SHOP_PURCHASE)

    def points_summary(self) -> Outcome:
        def action(uid: str):
            with self.database.session_scope("points read") as session:
                return ledger_service.summary(session, uid, self.clock.utcnow(), self.clock.today())

        return self._run("points summary", action, lambda s: messages.points_label(s.current_points))

    def point_history(self, limit: int = 50) -> Outcome:
        def action(uid: str):
            with self.database.session_scope("points read") as session:
                return list(ledger_service.list_entries(session, uid, limit))

        return self._run("point history", action, lambda entries: f"{len(entries)} entries")


def build_app(settings: Optional[Settings] = None, **kwargs) -> TaskPointsApp:
    settings = settings or get_settings()
    configure_logging(settings)
    return TaskPointsApp(settings, **kwargs)
