"""会话持久化后的钩子

订阅者在数据库写入完成后同步执行。订阅者抛出的异常只记录日志，
不会影响触发它的创建/删除操作。
"""
import logging
from typing import Callable, Dict, List

from models import FocusSessionRecord

logger = logging.getLogger(__name__)

SESSION_SAVED = "session_saved"
SESSION_DELETED = "session_deleted"

Subscriber = Callable[[FocusSessionRecord], None]


class SessionHooks:
    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {SESSION_SAVED: [], SESSION_DELETED: []}

    def subscribe(self, event: str, callback: Subscriber):
        if event not in self._subscribers:
            raise ValueError(f"Unknown session event: {event}")
        self._subscribers[event].append(callback)

    def emit(self, event: str, record: FocusSessionRecord):
        for callback in self._subscribers[event]:
            try:
                callback(record)
            except Exception:
                logger.exception(f"{event} hook {getattr(callback, '__qualname__', callback)!r} failed for session {record.id}")
