"""进行中专注会话的注册表

每个用户最多一个进行中的会话。接口是抽象的，可以在内存实现（进程重启即丢失）
和 MongoDB 实现（跨重启保留）之间切换，由 ACTIVE_SESSION_STORE 配置决定。
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from errors import store_errors
from models import IDLE, ActiveSession, ActiveState, SessionState

logger = logging.getLogger(__name__)


class ActiveSessionRegistry(ABC):

    @abstractmethod
    def get(self, user_id: str) -> SessionState:
        ...

    @abstractmethod
    def put(self, user_id: str, session: ActiveSession) -> None:
        """无条件覆盖"""

    @abstractmethod
    def put_if_absent(self, user_id: str, session: ActiveSession) -> SessionState:
        """原子写入：成功返回 IDLE，否则返回已占用者的状态"""

    @abstractmethod
    def take(self, user_id: str, session_id: Optional[str] = None) -> Optional[ActiveSession]:
        """原子取出并移除；指定 session_id 时只有ID匹配才移除"""

    @abstractmethod
    def remove(self, user_id: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryActiveSessionRegistry(ActiveSessionRegistry):
    """进程内实现；FastAPI的同步接口跑在线程池里，所以每个操作都加锁"""

    def __init__(self):
        self._sessions: Dict[str, ActiveSession] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> SessionState:
        with self._lock:
            session = self._sessions.get(user_id)
        return ActiveState(session=session) if session else IDLE

    def put(self, user_id: str, session: ActiveSession) -> None:
        with self._lock:
            self._sessions[user_id] = session

    def put_if_absent(self, user_id: str, session: ActiveSession) -> SessionState:
        with self._lock:
            existing = self._sessions.get(user_id)
            if existing is not None:
                return ActiveState(session=existing)
            self._sessions[user_id] = session
        return IDLE

    def take(self, user_id: str, session_id: Optional[str] = None) -> Optional[ActiveSession]:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None or (session_id is not None and session.id != session_id):
                return None
            return self._sessions.pop(user_id)

    def remove(self, user_id: str) -> None:
        with self._lock:
            self._sessions.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
        logger.info(f"Cleared {count} active session(s) from memory registry")


class MongoActiveSessionRegistry(ActiveSessionRegistry):
    """以 user_id 作为 _id，一个用户一个文档"""

    def __init__(self, collection: Collection):
        self.collection = collection

    @staticmethod
    def _to_doc(user_id: str, session: ActiveSession) -> dict:
        doc = session.model_dump()
        doc["session_type"] = session.session_type.value
        doc["_id"] = user_id
        return doc

    @staticmethod
    def _from_doc(doc: dict) -> ActiveSession:
        doc = dict(doc)
        doc.pop("_id", None)
        return ActiveSession(**doc)

    def get(self, user_id: str) -> SessionState:
        with store_errors("read active session"):
            doc = self.collection.find_one({"_id": user_id})
        return ActiveState(session=self._from_doc(doc)) if doc else IDLE

    def put(self, user_id: str, session: ActiveSession) -> None:
        with store_errors("write active session"):
            self.collection.replace_one({"_id": user_id}, self._to_doc(user_id, session), upsert=True)

    def put_if_absent(self, user_id: str, session: ActiveSession) -> SessionState:
        with store_errors("write active session"):
            while True:
                try:
                    self.collection.insert_one(self._to_doc(user_id, session))
                    return IDLE
                except DuplicateKeyError:
                    doc = self.collection.find_one({"_id": user_id})
                    if doc:
                        return ActiveState(session=self._from_doc(doc))
                    # 占用者刚好被移除，重新写入

    def take(self, user_id: str, session_id: Optional[str] = None) -> Optional[ActiveSession]:
        query = {"_id": user_id}
        if session_id is not None:
            query["id"] = session_id
        with store_errors("take active session"):
            doc = self.collection.find_one_and_delete(query)
        return self._from_doc(doc) if doc else None

    def remove(self, user_id: str) -> None:
        with store_errors("remove active session"):
            self.collection.delete_one({"_id": user_id})

    def clear(self) -> None:
        with store_errors("clear active sessions"):
            result = self.collection.delete_many({})
        logger.info(f"Cleared {result.deleted_count} active session(s) from mongo registry")
