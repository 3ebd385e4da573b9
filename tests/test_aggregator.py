"""Tests for the task-duration aggregator and the post-commit hook bus."""
from datetime import timedelta

import pytest
from bson import ObjectId

from database import TASKS
from models import FocusSessionRecord, SessionType
from services.aggregator import TaskDurationAggregator
from services.hooks import SESSION_SAVED, SessionHooks
from services.stores import FocusSessionStore, TaskStore

from conftest import NOW

USER = "user-a"


@pytest.fixture
def aggregator(db):
    return TaskDurationAggregator(FocusSessionStore(db), TaskStore(db))


def _actual(db, task_id):
    return db[TASKS].find_one({"_id": ObjectId(task_id)})["actual_duration"]


def test_scenario_b_two_work_sessions(manager, make_task, clock, db):
    task_id = make_task(USER)
    assert _actual(db, task_id) == 0

    for seconds in (600, 900):
        manager.start(USER, task_id=task_id)
        clock.advance(seconds)
        manager.end(USER)

    assert _actual(db, task_id) == 25


def test_break_sessions_are_not_counted(manager, make_task, clock, db):
    task_id = make_task(USER)
    manager.start(USER, task_id=task_id, session_type=SessionType.SHORT_BREAK)
    clock.advance(600)
    manager.end(USER)
    assert _actual(db, task_id) == 0


def test_recompute_rounds_to_nearest_minute(aggregator, make_task, add_session, db):
    task_id = make_task(USER)
    add_session(USER, NOW, 89, task_id=task_id)
    assert aggregator.recompute(task_id) == 1
    add_session(USER, NOW, 1, task_id=task_id)
    assert aggregator.recompute(task_id) == 2  # 90s rounds half up
    assert _actual(db, task_id) == 2


def test_aggregate_sum_runs_in_the_database(db, make_task, add_session):
    sessions = FocusSessionStore(db)
    task_id = make_task(USER)
    add_session(USER, NOW, 300, task_id=task_id)
    add_session(USER, NOW + timedelta(hours=1), 120, task_id=task_id)
    add_session(USER, NOW, 999, task_id=task_id, session_type="longBreak")

    sessions.collection = _NoFind(sessions.collection)
    assert sessions.aggregate_sum({"task_id": task_id, "session_type": "work"}, "duration_sec") == 420
    assert sessions.aggregate_sum({"task_id": str(ObjectId())}, "duration_sec") == 0


class _NoFind:
    """Collection proxy that only allows aggregate()."""

    def __init__(self, collection):
        self._collection = collection

    def aggregate(self, pipeline):
        return self._collection.aggregate(pipeline)

    def find(self, *args, **kwargs):
        raise AssertionError("documents should not be pulled into Python")


def test_recompute_is_idempotent(aggregator, make_task, add_session, db):
    task_id = make_task(USER)
    add_session(USER, NOW, 1234, task_id=task_id)
    first = aggregator.recompute(task_id)
    second = aggregator.recompute(task_id)
    assert first == second == _actual(db, task_id)


def test_recompute_overwrites_drifted_value(aggregator, make_task, add_session, db):
    task_id = make_task(USER, actual_duration=999)
    add_session(USER, NOW, 600, task_id=task_id)
    aggregator.recompute(task_id)
    assert _actual(db, task_id) == 10


def test_deleting_work_session_recomputes(manager, aggregator, make_task, add_session, db):
    task_id = make_task(USER)
    keep = add_session(USER, NOW - timedelta(hours=2), 1200, task_id=task_id)
    drop = add_session(USER, NOW - timedelta(hours=1), 600, task_id=task_id)
    aggregator.recompute(task_id)
    before = _actual(db, task_id)

    manager.delete_session(USER, drop)

    after = _actual(db, task_id)
    assert before == 30
    assert after == 20
    assert after <= before
    assert manager.get_session(USER, keep).id == keep


def test_missing_task_is_not_an_error(aggregator):
    assert aggregator.recompute(str(ObjectId())) == 0


def test_hook_failure_does_not_fail_end(manager, hooks, make_task, clock, caplog):
    def broken(record):
        raise RuntimeError("boom")

    hooks.subscribe(SESSION_SAVED, broken)
    task_id = make_task(USER)
    manager.start(USER, task_id=task_id)
    clock.advance(60)

    record = manager.end(USER)

    assert record.duration_sec == 60
    assert "boom" in caplog.text


def test_aggregator_failure_is_swallowed(manager, make_task, clock, monkeypatch, db):
    task_id = make_task(USER)

    def broken_update(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(manager.tasks, "update_by_id", broken_update)
    manager.start(USER, task_id=task_id)
    clock.advance(120)

    record = manager.end(USER)

    assert record.id is not None
    assert _actual(db, task_id) == 0


def test_on_session_changed_only_for_work_with_task(aggregator, monkeypatch):
    calls = []
    monkeypatch.setattr(aggregator, "recompute", calls.append)
    base = dict(user_id=USER, start_at=NOW, end_at=NOW, duration_sec=0)

    aggregator.on_session_changed(FocusSessionRecord(**base))
    aggregator.on_session_changed(FocusSessionRecord(task_id="t1", session_type=SessionType.LONG_BREAK, **base))
    aggregator.on_session_changed(FocusSessionRecord(task_id="t1", **base))

    assert calls == ["t1"]


def test_unknown_hook_event():
    with pytest.raises(ValueError):
        SessionHooks().subscribe("session_started", print)
