import logging

from models import FocusSessionRecord, SessionType
from services.hooks import SESSION_DELETED, SESSION_SAVED, SessionHooks
from services.stores import FocusSessionStore, TaskStore
from timeutils import seconds_to_minutes

logger = logging.getLogger(__name__)


class TaskDurationAggregator:
    """维护 Task.actual_duration = round(该任务所有work会话秒数之和 / 60)"""

    def __init__(self, sessions: FocusSessionStore, tasks: TaskStore):
        self.sessions = sessions
        self.tasks = tasks

    def recompute(self, task_id: str) -> int:
        """从头重新计算（不做增量加减，避免累计误差）；任务不存在时不报错"""
        total_seconds = self.sessions.aggregate_sum(
            {"task_id": task_id, "session_type": SessionType.WORK.value}, "duration_sec"
        )
        minutes = seconds_to_minutes(total_seconds)
        updated = self.tasks.update_by_id(task_id, {"actual_duration": minutes})
        if updated is None:
            logger.info(f"Task {task_id} no longer exists, skipped duration update")
        else:
            logger.info(f"Task {task_id} actual duration recomputed: {minutes} min")
        return minutes

    def on_session_changed(self, record: FocusSessionRecord):
        if record.task_id and record.is_work:
            self.recompute(record.task_id)

    def attach(self, hooks: SessionHooks) -> SessionHooks:
        hooks.subscribe(SESSION_SAVED, self.on_session_changed)
        hooks.subscribe(SESSION_DELETED, self.on_session_changed)
        return hooks
