"""FastAPI 依赖注入

数据库、注册表和时钟都通过依赖获取，测试中可以用 app.dependency_overrides 替换。
"""
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, Header
from pymongo.database import Database

from config import ACTIVE_SESSION_STORE
from database import ACTIVE_SESSIONS, get_database
from errors import AuthError
from security import verify_token
from services.aggregator import TaskDurationAggregator
from services.analytics import AnalyticsEngine
from services.focus import FocusSessionManager
from services.hooks import SessionHooks
from services.registry import ActiveSessionRegistry, InMemoryActiveSessionRegistry, MongoActiveSessionRegistry
from services.stores import FocusSessionStore, TaskStore, UserStore
from timeutils import utc_now

# 内存注册表在整个进程内共享
memory_registry = InMemoryActiveSessionRegistry()


def build_registry(db: Database, store: str = ACTIVE_SESSION_STORE) -> ActiveSessionRegistry:
    if store == "mongo":
        return MongoActiveSessionRegistry(db[ACTIVE_SESSIONS])
    if store != "memory":
        raise ValueError(f"Unknown ACTIVE_SESSION_STORE: {store}")
    return memory_registry


def get_registry(db: Database = Depends(get_database)) -> ActiveSessionRegistry:
    return build_registry(db)


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    db: Database = Depends(get_database),
) -> str:
    """从Header获取用户ID"""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Access token is required")
    user_id = verify_token(authorization[7:])
    if UserStore(db).find_by_id(user_id) is None:
        raise AuthError("User no longer exists")
    return user_id


def get_focus_manager(
    db: Database = Depends(get_database),
    registry: ActiveSessionRegistry = Depends(get_registry),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> FocusSessionManager:
    sessions = FocusSessionStore(db)
    tasks = TaskStore(db)
    hooks = TaskDurationAggregator(sessions, tasks).attach(SessionHooks())
    return FocusSessionManager(sessions, tasks, registry, hooks, clock=clock)


def get_analytics_engine(db: Database = Depends(get_database)) -> AnalyticsEngine:
    return AnalyticsEngine(FocusSessionStore(db), TaskStore(db))
