import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TZ", "UTC")

from datetime import datetime

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from taskpoints.app import TaskPointsApp
from taskpoints.clock import Clock
from taskpoints.db import Database
from taskpoints.schemas import HabitCreate, TaskCreate
from taskpoints.services import habit_service, ledger_service, task_service
from taskpoints.services.toggle_service import CompletionToggleController
from taskpoints.settings import Settings

# Wednesday
NOW = datetime(2024, 1, 10, 12, 0)


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def clock():
    return Clock("UTC", fixed=NOW)


@pytest.fixture
def controller(database, clock):
    return CompletionToggleController(database, clock)


@pytest.fixture
def scheduler():
    # never started: jobs stay pending and can be inspected
    return BackgroundScheduler(timezone="UTC")


@pytest.fixture
def app(database, clock, scheduler):
    settings = Settings(database_url="sqlite://", timezone="UTC")
    application = TaskPointsApp(settings, database=database, clock=clock, scheduler=scheduler)
    yield application
    application.dispose()


@pytest.fixture
def make_task(database):
    def _make(user_id="u1", text="Write report", priority="medium", **kwargs):
        with database.session_scope("test task") as session:
            return task_service.create_task(session, user_id, TaskCreate(text=text, priority=priority, **kwargs)).id

    return _make


@pytest.fixture
def make_habit(database):
    def _make(user_id="u1", title="Stretch", frequency="daily", target_days=None, **kwargs):
        data = HabitCreate(title=title, frequency=frequency, target_days=target_days or [], **kwargs)
        with database.session_scope("test habit") as session:
            return habit_service.create_habit(session, user_id, data).id

    return _make


@pytest.fixture
def balance(database):
    def _balance(user_id="u1"):
        with database.session_scope("test balance") as session:
            return ledger_service.get_balance(session, user_id).current_points

    return _balance
