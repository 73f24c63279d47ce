from datetime import date

import pytest
from sqlalchemy import func, select

from taskpoints.exceptions import NotFound, ValidationError
from taskpoints.models import HabitCompletion, HabitFrequency
from taskpoints.schemas import HabitCreate, HabitUpdate
from taskpoints.services import habit_service

TODAY = date(2024, 1, 10)


def test_create_normalises_targets(database, make_habit):
    daily = make_habit(title=" Read ", target_days=[1, 2])
    weekly = make_habit(title="Gym", frequency="WEEKLY", target_days=[5, 1, 5])
    with database.session_scope() as session:
        assert habit_service.get_habit(session, "u1", daily).target_days == []
        assert habit_service.get_habit(session, "u1", daily).title == "Read"
        habit = habit_service.get_habit(session, "u1", weekly)
        assert habit.frequency == HabitFrequency.WEEKLY
        assert habit.target_days == [1, 5]


@pytest.mark.parametrize(
    "data",
    [
        HabitCreate(title="Gym", frequency="weekly", target_days=[7]),
        HabitCreate(title="Rent", frequency="monthly", target_days=[0]),
        HabitCreate(title="Rent", frequency="monthly", target_days=[32]),
        HabitCreate(title="Walk", frequency="hourly"),
        HabitCreate(title="Walk", reminder_time="25:00"),
        HabitCreate(title=""),
    ],
)
def test_create_rejects_invalid(database, data):
    with database.session_scope() as session:
        with pytest.raises(ValidationError):
            habit_service.create_habit(session, "u1", data)


def test_update_and_deactivate(database, make_habit):
    habit_id = make_habit()
    with database.session_scope() as session:
        habit_service.update_habit(
            session, "u1", habit_id, HabitUpdate(title="Yoga", frequency="monthly", target_days=[1, 15], reminder_time="07:30")
        )
    with database.session_scope() as session:
        habit = habit_service.get_habit(session, "u1", habit_id)
        assert (habit.title, habit.frequency, habit.target_days, habit.reminder_time) == (
            "Yoga",
            HabitFrequency.MONTHLY,
            [1, 15],
            "07:30",
        )
        assert habit.updated_at is not None
        habit_service.deactivate_habit(session, "u1", habit_id)
    with database.session_scope() as session:
        habits = habit_service.list_habits(session, "u1")
        assert not habits[0].is_active
        assert habit_service.todays_habits(habits, date(2024, 1, 15)) == []


def test_update_rejects_targets_for_new_frequency(database, make_habit):
    habit_id = make_habit(frequency="monthly", target_days=[20])
    with database.session_scope() as session:
        with pytest.raises(ValidationError):
            habit_service.update_habit(session, "u1", habit_id, HabitUpdate(frequency="weekly"))


def test_delete_habit_removes_history(database, make_habit, controller):
    habit_id = make_habit()
    controller.toggle_habit("u1", habit_id)
    with database.session_scope() as session:
        habit_service.delete_habit(session, "u1", habit_id)
    with database.session_scope() as session:
        assert session.scalar(select(func.count()).select_from(HabitCompletion)) == 0
        with pytest.raises(NotFound):
            habit_service.get_habit(session, "u1", habit_id)


def test_habit_stats(database, make_habit, controller):
    read = make_habit(title="Read")
    make_habit(title="Gym", frequency="weekly", target_days=[3])
    make_habit(title="Rent", frequency="monthly", target_days=[1])
    controller.toggle_habit("u1", read, day="2024-01-09")
    controller.toggle_habit("u1", read, day="2024-01-10")
    with database.session_scope() as session:
        habits = habit_service.list_habits(session, "u1")
    stats = habit_service.habit_stats(habits, TODAY)
    assert stats.total_habits == 3
    assert stats.active_habits == 3
    assert stats.completed_today == 1
    assert stats.longest_streak == 2
    assert stats.current_streaks[read] == 2
    assert [h.title for h in habit_service.todays_habits(habits, TODAY)] == ["Read", "Gym"]
