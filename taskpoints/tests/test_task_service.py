from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from taskpoints.exceptions import NotFound, ValidationError
from taskpoints.models import Priority, SubTask
from taskpoints.schemas import TaskCreate
from taskpoints.services import task_service

TODAY = date(2024, 1, 10)


def load(database, user_id="u1"):
    with database.session_scope() as session:
        return list(task_service.list_tasks(session, user_id))


def test_create_task_defaults(database, make_task):
    first = make_task(text="  Report  ", priority="high")
    second = make_task(text="Email")
    with database.session_scope() as session:
        task = task_service.get_task(session, "u1", first)
        assert task.text == "Report"
        assert task.priority == Priority.HIGH
        assert task.points == 15
        assert not task.completed
        assert task_service.get_task(session, "u1", second).order == task.order + 1


def test_create_task_validation(database):
    with database.session_scope() as session:
        with pytest.raises(ValidationError):
            task_service.create_task(session, "u1", TaskCreate(text="   "))
        with pytest.raises(ValidationError):
            task_service.create_task(session, "u1", TaskCreate(text="x", priority="urgent"))
        with pytest.raises(ValidationError):
            task_service.create_task(session, "u1", TaskCreate(text="x", estimated_minutes=-1))


def test_tasks_are_per_user(database, make_task):
    task_id = make_task(user_id="u2")
    assert load(database) == []
    with database.session_scope() as session:
        with pytest.raises(NotFound):
            task_service.get_task(session, "u1", task_id)


def test_delete_task_removes_subtasks(database, make_task):
    task_id = make_task()
    with database.session_scope() as session:
        task_service.add_subtask(session, "u1", task_id, "one")
        task_service.add_subtask(session, "u1", task_id, "two")
    with database.session_scope() as session:
        task_service.delete_task(session, "u1", task_id)
    assert load(database) == []
    with database.session_scope() as session:
        assert session.scalar(select(func.count()).select_from(SubTask)) == 0


def test_subtask_order_after_remove_and_reorder(database, make_task):
    task_id = make_task()
    with database.session_scope() as session:
        ids = [task_service.add_subtask(session, "u1", task_id, text).id for text in ("a", "b", "c")]
    with database.session_scope() as session:
        task_service.remove_subtask(session, "u1", task_id, ids[0])
    with database.session_scope() as session:
        task = task_service.get_task(session, "u1", task_id)
        assert [(s.text, s.order_idx) for s in task.subtasks] == [("b", 1), ("c", 2)]
    with database.session_scope() as session:
        task_service.reorder_subtasks(session, "u1", task_id, [ids[2], ids[1]])
    with database.session_scope() as session:
        task = task_service.get_task(session, "u1", task_id)
        assert [s.text for s in task.subtasks] == ["c", "b"]


def test_progress(database, make_task):
    task_id = make_task()
    with database.session_scope() as session:
        first = task_service.add_subtask(session, "u1", task_id, "a")
        task_service.add_subtask(session, "u1", task_id, "b")
        first.completed = True
    with database.session_scope() as session:
        task = task_service.get_task(session, "u1", task_id)
        progress = task_service.subtask_progress(task.subtasks)
        assert (progress.total, progress.completed, progress.progress) == (2, 1, 50)
        assert task_service.total_progress(task) == 35
        task.completed = True
        assert task_service.total_progress(task) == 65


def test_edit_fields(database, make_task):
    task_id = make_task()
    with database.session_scope() as session:
        task_service.set_deadline(session, "u1", task_id, TODAY)
        task_service.set_priority(session, "u1", task_id, "low")
        task_service.update_memo(session, "u1", task_id, "  bring slides ")
        task_service.set_estimate(session, "u1", task_id, 45)
    with database.session_scope() as session:
        task = task_service.get_task(session, "u1", task_id)
        assert (task.deadline, task.priority, task.memo, task.estimated_minutes) == (TODAY, Priority.LOW, "bring slides", 45)
        with pytest.raises(ValidationError):
            task_service.set_estimate(session, "u1", task_id, -5)


def test_sorting_and_filters(database, make_task):
    make_task(text="beta", priority="low", deadline=TODAY + timedelta(days=2))
    make_task(text="Alpha", priority="high")
    make_task(text="gamma", priority="medium", deadline=TODAY)
    tasks = load(database)
    assert [t.text for t in task_service.sort_tasks(tasks, "priority")] == ["Alpha", "gamma", "beta"]
    assert [t.text for t in task_service.sort_tasks(tasks, "priority", descending=False)] == ["beta", "gamma", "Alpha"]
    assert [t.text for t in task_service.sort_tasks(tasks, "deadline")] == ["gamma", "beta", "Alpha"]
    assert [t.text for t in task_service.sort_tasks(tasks, "alphabetical")] == ["Alpha", "beta", "gamma"]
    with pytest.raises(ValidationError):
        task_service.sort_tasks(tasks, "colour")
    tasks[0].completed = True
    assert len(task_service.filter_tasks(tasks, "active")) == 2
    assert len(task_service.filter_tasks(tasks, "completed")) == 1
    assert len(task_service.filter_tasks(tasks)) == 3


def test_deadline_views(database, make_task):
    make_task(text="late", deadline=TODAY - timedelta(days=1))
    make_task(text="today", deadline=TODAY)
    make_task(text="soon", deadline=TODAY + timedelta(days=3))
    make_task(text="later", deadline=TODAY + timedelta(days=10))
    tasks = load(database)
    assert [t.text for t in task_service.overdue_tasks(tasks, TODAY)] == ["late"]
    assert [t.text for t in task_service.tasks_due_today(tasks, TODAY)] == ["today"]
    assert [t.text for t in task_service.tasks_due_soon(tasks, TODAY)] == ["today", "soon"]


def test_analytics(database, make_task):
    task_id = make_task(memo="note", estimated_minutes=30)
    make_task(estimated_minutes=15)
    with database.session_scope() as session:
        task_service.add_subtask(session, "u1", task_id, "a")
        task_service.add_subtask(session, "u1", task_id, "b")
    stats = task_service.task_analytics(load(database))
    assert stats.total_tasks == 2
    assert stats.total_subtasks == 2
    assert stats.average_subtasks_per_task == 1.0
    assert stats.tasks_with_memo == 1
    assert stats.tasks_with_subtasks == 1
    assert stats.estimated_total_minutes == 45
    assert task_service.task_analytics([]).average_subtasks_per_task == 0.0


def test_created_sort_newest_first(database, make_task):
    old = make_task(text="old")
    new = make_task(text="new")
    with database.session_scope() as session:
        task_service.get_task(session, "u1", old).created_at = datetime(2024, 1, 1)
        task_service.get_task(session, "u1", new).created_at = datetime(2024, 1, 9)
    assert [t.text for t in task_service.sort_tasks(load(database), "created")] == ["new", "old"]


def test_set_priority_updates_default_points(database, make_task):
    task_id = make_task(priority="low")
    with database.session_scope() as session:
        task_service.set_priority(session, "u1", task_id, "high")
    with database.session_scope() as session:
        assert task_service.get_task(session, "u1", task_id).points == 15
