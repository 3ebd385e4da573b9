"""Tests for services/focus.py: start/end/active and session history."""
from datetime import timedelta

import pytest
from bson import ObjectId

from database import FOCUS_SESSIONS
from errors import ConflictError, NotFoundError, StoreError, ValidationError
from models import ActiveSession, ActiveState, IdleState, SessionType
from services.hooks import SESSION_DELETED, SESSION_SAVED

from conftest import NOW

USER = "user-a"
OTHER = "user-b"


class TestStart:

    def test_start_registers_active_session(self, manager, registry):
        session = manager.start(USER, estimated_duration=25)
        assert session.user_id == USER
        assert session.session_type == SessionType.WORK
        assert session.estimated_duration == 25
        assert session.start_at == NOW
        assert registry.get(USER).session.id == session.id

    def test_start_does_not_persist_anything(self, manager, db):
        manager.start(USER)
        assert db[FOCUS_SESSIONS].count_documents({}) == 0

    def test_second_start_conflicts_with_existing_attached(self, manager, registry, clock):
        first = manager.start(USER, session_type=SessionType.WORK)
        clock.advance(30)

        with pytest.raises(ConflictError) as exc:
            manager.start(USER, session_type=SessionType.SHORT_BREAK)

        assert exc.value.status_code == 409
        assert exc.value.data["activeSession"].id == first.id
        stored = registry.get(USER).session
        assert stored == first

    def test_start_with_owned_task(self, manager, make_task):
        task_id = make_task(USER)
        session = manager.start(USER, task_id=task_id)
        assert session.task_id == task_id

    def test_start_with_other_users_task(self, manager, make_task, registry):
        task_id = make_task(OTHER)
        with pytest.raises(NotFoundError):
            manager.start(USER, task_id=task_id)
        assert isinstance(registry.get(USER), IdleState)

    def test_start_with_missing_task(self, manager):
        with pytest.raises(NotFoundError):
            manager.start(USER, task_id=str(ObjectId()))

    def test_start_with_malformed_task_id(self, manager):
        with pytest.raises(ValidationError):
            manager.start(USER, task_id="not-an-id")

    def test_lost_race_is_rejected_and_logged(self, manager, registry, caplog):
        # Another request fills the slot between the idle check and the write
        original_get = registry.get
        winner = {}

        def racing_get(user_id):
            state = original_get(user_id)
            if not winner:
                winner["session"] = ActiveSession(id=str(ObjectId()), user_id=user_id, start_at=NOW)
                registry.put_if_absent(user_id, winner["session"])
            return state

        registry.get = racing_get
        with pytest.raises(ConflictError) as exc:
            manager.start(USER)

        assert exc.value.data["activeSession"].id == winner["session"].id
        assert original_get(USER).session.id == winner["session"].id
        assert "Concurrent start" in caplog.text


class TestEnd:

    def test_scenario_a_work_session_without_task(self, manager, registry, clock, db):
        manager.start(USER, session_type=SessionType.WORK, estimated_duration=25)
        clock.advance(1500)

        record = manager.end(USER, interrupted=False)

        assert record.duration_sec == 1500
        assert record.session_type == SessionType.WORK
        assert record.interrupted is False
        assert record.task_id is None
        assert isinstance(registry.get(USER), IdleState)
        doc = db[FOCUS_SESSIONS].find_one({"_id": ObjectId(record.id)})
        assert doc["duration_sec"] == 1500
        assert doc["user_id"] == USER

    def test_duration_is_floor_of_elapsed_seconds(self, manager, clock):
        session = manager.start(USER)
        clock.advance(61.999)
        record = manager.end(USER, session_id=session.id)
        assert record.duration_sec == 61
        assert record.duration_sec == (record.end_at - record.start_at) // timedelta(seconds=1)
        assert record.end_at >= record.start_at

    def test_end_keeps_notes_and_flags(self, manager, clock):
        manager.start(USER, session_type=SessionType.SHORT_BREAK)
        clock.advance(300)
        record = manager.end(USER, interrupted=True, notes="phone call")
        assert record.interrupted is True
        assert record.notes == "phone call"
        assert record.session_type == SessionType.SHORT_BREAK

    def test_end_without_active_session(self, manager):
        with pytest.raises(NotFoundError):
            manager.end(USER)

    def test_scenario_d_foreign_session_id(self, manager, registry, clock):
        own = manager.start(USER)
        theirs = manager.start(OTHER)
        clock.advance(60)

        with pytest.raises(NotFoundError):
            manager.end(USER, session_id=theirs.id)

        assert registry.get(USER).session.id == own.id
        assert registry.get(OTHER).session.id == theirs.id

    def test_foreign_session_id_while_idle(self, manager, registry):
        theirs = manager.start(OTHER)
        with pytest.raises(NotFoundError):
            manager.end(USER, session_id=theirs.id)
        assert registry.get(OTHER).session.id == theirs.id

    def test_malformed_session_id(self, manager):
        manager.start(USER)
        with pytest.raises(ValidationError):
            manager.end(USER, session_id="abc")

    def test_insert_failure_restores_active_session(self, manager, registry, monkeypatch):
        session = manager.start(USER)

        def broken_insert(record):
            raise StoreError("Database error")

        monkeypatch.setattr(manager.sessions, "insert", broken_insert)
        with pytest.raises(StoreError):
            manager.end(USER)
        assert registry.get(USER).session.id == session.id

    def test_end_emits_saved_hook(self, manager, hooks, clock):
        seen = []
        hooks.subscribe(SESSION_SAVED, seen.append)
        manager.start(USER)
        clock.advance(10)
        record = manager.end(USER)
        assert [r.id for r in seen] == [record.id]

    def test_can_start_again_after_end(self, manager, clock):
        manager.start(USER)
        clock.advance(10)
        manager.end(USER)
        assert manager.start(USER) is not None


class TestActive:

    def test_idle(self, manager):
        state, snapshot = manager.active(USER)
        assert isinstance(state, IdleState)
        assert snapshot is None

    def test_elapsed_is_computed_without_mutation(self, manager, registry, clock):
        session = manager.start(USER)
        clock.advance(90.5)

        state, snapshot = manager.active(USER)

        assert isinstance(state, ActiveState)
        assert snapshot.elapsed == 90
        assert snapshot.id == session.id
        assert registry.get(USER).session == session


class TestHistory:

    def test_list_sorted_newest_first_with_pagination(self, manager, add_session):
        for i in range(5):
            add_session(USER, NOW - timedelta(days=i), 600)
        add_session(OTHER, NOW, 600)

        sessions, pagination = manager.list_sessions(USER, page=1, limit=2)

        assert [s.start_at for s in sessions] == [NOW, NOW - timedelta(days=1)]
        assert pagination.total_count == 5
        assert pagination.total_pages == 3
        assert pagination.has_next_page is True
        assert pagination.has_prev_page is False

        last_page, pagination = manager.list_sessions(USER, page=3, limit=2)
        assert len(last_page) == 1
        assert pagination.has_next_page is False
        assert pagination.has_prev_page is True

    def test_limit_is_capped(self, manager):
        _, pagination = manager.list_sessions(USER, limit=500)
        assert pagination.limit == 100

    def test_filters(self, manager, add_session, make_task):
        task_id = make_task(USER)
        add_session(USER, NOW - timedelta(days=10), 600, task_id=task_id)
        add_session(USER, NOW - timedelta(days=2), 600, task_id=task_id)
        add_session(USER, NOW - timedelta(days=1), 300, session_type="shortBreak")

        by_task, _ = manager.list_sessions(USER, task_id=task_id)
        assert len(by_task) == 2
        assert by_task[0].task.title == "Write report"

        by_type, _ = manager.list_sessions(USER, session_type=SessionType.SHORT_BREAK)
        assert len(by_type) == 1

        by_range, _ = manager.list_sessions(
            USER, start_date=NOW - timedelta(days=3), end_date=NOW - timedelta(days=2)
        )
        assert len(by_range) == 1

    def test_get_session_respects_ownership(self, manager, add_session):
        session_id = add_session(OTHER, NOW, 600)
        with pytest.raises(NotFoundError):
            manager.get_session(USER, session_id)
        assert manager.get_session(OTHER, session_id).id == session_id

    def test_get_session_malformed_id(self, manager):
        with pytest.raises(ValidationError):
            manager.get_session(USER, "123")

    def test_delete_session(self, manager, add_session, hooks, db):
        deleted = []
        hooks.subscribe(SESSION_DELETED, deleted.append)
        session_id = add_session(USER, NOW, 600)

        manager.delete_session(USER, session_id)

        assert db[FOCUS_SESSIONS].count_documents({}) == 0
        assert [r.id for r in deleted] == [session_id]

    def test_delete_other_users_session(self, manager, add_session, db):
        session_id = add_session(OTHER, NOW, 600)
        with pytest.raises(NotFoundError):
            manager.delete_session(USER, session_id)
        assert db[FOCUS_SESSIONS].count_documents({}) == 1
