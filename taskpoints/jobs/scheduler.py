from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..clock import Clock
from ..db import Database
from ..exceptions import NotAuthenticated, TaskPointsError
from ..services.retention_service import sweep

log = logging.getLogger(__name__)


class SweepScheduler:
    """Runs the retention sweep on an interval for the signed-in user."""

    def __init__(
        self,
        database: Database,
        clock: Clock,
        interval_minutes: int = 60,
        retention_days: int = 7,
        scheduler: Optional[BaseScheduler] = None,
    ) -> None:
        self.database = database
        self.clock = clock
        self.interval_minutes = interval_minutes
        self.retention = timedelta(days=retention_days)
        self.scheduler = scheduler or AsyncIOScheduler(timezone=str(clock.tz))
        self.user_id: Optional[str] = None

    @staticmethod
    def job_id(user_id: str) -> str:
        return f"retention-sweep:{user_id}"

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self) -> None:
        self.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def run_once(self, user_id: Optional[str]) -> int:
        if not user_id:
            raise NotAuthenticated("retention sweep")
        with self.database.session_scope("retention sweep") as session:
            return sweep(session, self.clock.utcnow(), user_id=user_id, retention=self.retention)

    def schedule_for(self, user_id: str) -> None:
        if not user_id:
            raise NotAuthenticated("retention sweep")
        self.stop()
        self.scheduler.add_job(
            self._sweep_job,
            IntervalTrigger(minutes=self.interval_minutes),
            args=[user_id],
            id=self.job_id(user_id),
            replace_existing=True,
        )
        self.user_id = user_id
        log.info("Retention sweep scheduled every %d min for %s", self.interval_minutes, user_id)

    def stop(self) -> None:
        if self.user_id is None:
            return
        try:
            self.scheduler.remove_job(self.job_id(self.user_id))
        except JobLookupError:
            pass
        log.info("Retention sweep stopped for %s", self.user_id)
        self.user_id = None

    def _sweep_job(self, user_id: str) -> None:
        if user_id != self.user_id:
            return
        try:
            self.run_once(user_id)
        except TaskPointsError as exc:
            log.error("Scheduled retention sweep failed for %s: %s", user_id, exc)
