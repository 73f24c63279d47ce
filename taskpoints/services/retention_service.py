from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db import mark_changed
from ..feed import TASKS
from ..models import SubTask, Task

log = logging.getLogger(__name__)

RETENTION_PERIOD = timedelta(days=7)


def expired_tasks(
    session: Session, now: datetime, user_id: Optional[str] = None, retention: timedelta = RETENTION_PERIOD
) -> Sequence[Task]:
    stmt = select(Task).where(
        Task.completed.is_(True),
        Task.completed_at.is_not(None),
        Task.scheduled_for_deletion.is_(True),
        Task.completed_at < now - retention,
    )
    if user_id is not None:
        stmt = stmt.where(Task.user_id == user_id)
    return session.scalars(stmt).all()


def sweep(session: Session, now: datetime, user_id: Optional[str] = None, retention: timedelta = RETENTION_PERIOD) -> int:
    """Delete tasks completed more than ``retention`` ago, sub-tasks first.

    Runs inside the caller's transaction so the whole batch commits or
    rolls back together.
    """
    tasks = expired_tasks(session, now, user_id=user_id, retention=retention)
    if not tasks:
        return 0
    task_ids: List[int] = [task.id for task in tasks]
    session.execute(delete(SubTask).where(SubTask.task_id.in_(task_ids)).execution_options(synchronize_session=False))
    session.execute(delete(Task).where(Task.id.in_(task_ids)).execution_options(synchronize_session=False))
    for owner in sorted({task.user_id for task in tasks}):
        mark_changed(session, owner, TASKS)
    log.info("Retention sweep removed %d completed task(s)", len(task_ids))
    return len(task_ids)
