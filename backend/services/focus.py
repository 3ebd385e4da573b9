"""专注会话生命周期

每个用户只有两个状态：Idle -> Active -> Idle。
开始时只写注册表；结束时才生成带真实时长的持久化记录。
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from bson import ObjectId

from config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from errors import ConflictError, NotFoundError, ValidationError
from models import (
    ActiveSession, ActiveSessionSnapshot, ActiveState, FocusSessionRecord, Pagination,
    SessionState, SessionType, TaskRef,
)
from services.hooks import SESSION_DELETED, SESSION_SAVED, SessionHooks
from services.registry import ActiveSessionRegistry
from services.stores import FocusSessionStore, TaskStore
from timeutils import utc_now, whole_seconds

logger = logging.getLogger(__name__)


def _require_object_id(value: str, label: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label} ID")
    return value


class FocusSessionManager:
    def __init__(
        self,
        sessions: FocusSessionStore,
        tasks: TaskStore,
        registry: ActiveSessionRegistry,
        hooks: SessionHooks,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sessions = sessions
        self.tasks = tasks
        self.registry = registry
        self.hooks = hooks
        self.clock = clock

    # ---- 生命周期 ----

    def start(
        self,
        user_id: str,
        task_id: Optional[str] = None,
        session_type: SessionType = SessionType.WORK,
        estimated_duration: Optional[int] = None,
    ) -> ActiveSession:
        state = self.registry.get(user_id)
        if isinstance(state, ActiveState):
            raise self._conflict(state)

        if task_id:
            _require_object_id(task_id, "task")
            if self.tasks.find_by_id(task_id, user_id) is None:
                raise NotFoundError("Task not found")

        session = ActiveSession(
            id=str(ObjectId()),
            user_id=user_id,
            task_id=task_id or None,
            session_type=session_type,
            estimated_duration=estimated_duration,
            start_at=self.clock(),
        )

        existing = self.registry.put_if_absent(user_id, session)
        if isinstance(existing, ActiveState):
            logger.warning(
                f"Concurrent start for user {user_id} rejected; "
                f"session {existing.session.id} is already active"
            )
            raise self._conflict(existing)

        logger.info(f"Focus session {session.id} started for user {user_id} ({session.session_type.value})")
        return session

    def end(
        self,
        user_id: str,
        session_id: Optional[str] = None,
        interrupted: bool = False,
        notes: Optional[str] = None,
    ) -> FocusSessionRecord:
        if session_id:
            _require_object_id(session_id, "session")

        active = self.registry.take(user_id, session_id or None)
        if active is None:
            # 不区分"没有进行中的会话"和"ID不属于当前用户"
            raise NotFoundError("No active session found")

        end_at = max(self.clock(), active.start_at)
        record = FocusSessionRecord(
            user_id=user_id,
            task_id=active.task_id,
            session_type=active.session_type,
            start_at=active.start_at,
            end_at=end_at,
            duration_sec=whole_seconds(active.start_at, end_at),
            interrupted=interrupted,
            notes=notes or None,
            created_at=end_at,
        )

        try:
            record = self.sessions.insert(record)
        except Exception:
            # 写入失败时把会话放回去，客户端可以重试
            self.registry.put_if_absent(user_id, active)
            raise

        logger.info(f"Focus session {record.id} ended for user {user_id}: {record.duration_sec}s")
        self.hooks.emit(SESSION_SAVED, record)
        return record

    def active(self, user_id: str) -> Tuple[SessionState, Optional[ActiveSessionSnapshot]]:
        """返回当前状态；进行中时附带 elapsed，不修改存储的状态"""
        state = self.registry.get(user_id)
        if not isinstance(state, ActiveState):
            return state, None
        session = state.session
        elapsed = max(0, whole_seconds(session.start_at, self.clock()))
        return state, ActiveSessionSnapshot(**session.model_dump(), elapsed=elapsed)

    # ---- 历史记录 ----

    def list_sessions(
        self,
        user_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        task_id: Optional[str] = None,
        session_type: Optional[SessionType] = None,
    ) -> Tuple[List[FocusSessionRecord], Pagination]:
        if page < 1:
            raise ValidationError("Page must be a positive integer")
        limit = max(1, min(limit, MAX_PAGE_LIMIT))

        query = {"user_id": user_id}
        if start_date or end_date:
            query["start_at"] = {}
            if start_date:
                query["start_at"]["$gte"] = start_date
            if end_date:
                query["start_at"]["$lte"] = end_date
        if task_id:
            query["task_id"] = _require_object_id(task_id, "task")
        if session_type:
            query["session_type"] = SessionType(session_type).value

        records = self.sessions.find(query, sort=[("start_at", -1)], skip=(page - 1) * limit, limit=limit)
        total_count = self.sessions.count(query)
        return self._with_tasks(records), Pagination.build(page, limit, total_count)

    def get_session(self, user_id: str, session_id: str) -> FocusSessionRecord:
        _require_object_id(session_id, "session")
        record = self.sessions.find_by_id(session_id, user_id)
        if record is None:
            raise NotFoundError("Session not found")
        return self._with_tasks([record])[0]

    def delete_session(self, user_id: str, session_id: str) -> FocusSessionRecord:
        _require_object_id(session_id, "session")
        record = self.sessions.delete_by_id(session_id, user_id)
        if record is None:
            raise NotFoundError("Session not found")
        logger.info(f"Focus session {session_id} deleted by user {user_id}")
        self.hooks.emit(SESSION_DELETED, record)
        return record

    # ---- helpers ----

    @staticmethod
    def _conflict(state: ActiveState) -> ConflictError:
        return ConflictError(
            "You already have an active session. Please end it first.",
            data={"activeSession": state.session},
        )

    def _with_tasks(self, records: List[FocusSessionRecord]) -> List[FocusSessionRecord]:
        tasks = self.tasks.find_many_by_ids({r.task_id for r in records if r.task_id})
        result = []
        for r in records:
            task = tasks.get(r.task_id) if r.task_id else None
            if task:
                r = r.model_copy(update={
                    "task": TaskRef(id=str(task["_id"]), title=task.get("title", ""), category=task.get("category"))
                })
            result.append(r)
        return result
