from functools import lru_cache

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import MONGODB_URL, DATABASE_NAME

# 集合
USERS = "users"
TASKS = "tasks"
FOCUS_SESSIONS = "focus_sessions"
ACTIVE_SESSIONS = "active_sessions"


@lru_cache
def get_client() -> MongoClient:
    return MongoClient(MONGODB_URL)


def get_database() -> Database:
    return get_client()[DATABASE_NAME]


def ensure_indexes(db: Database):
    """创建索引（启动时调用）"""
    db[USERS].create_index("email", unique=True)

    db[TASKS].create_index([("user_id", ASCENDING), ("completed", ASCENDING), ("archived", ASCENDING)])
    db[TASKS].create_index([("user_id", ASCENDING), ("due_date", ASCENDING)])

    db[FOCUS_SESSIONS].create_index([("user_id", ASCENDING), ("start_at", DESCENDING)])
    db[FOCUS_SESSIONS].create_index([("user_id", ASCENDING), ("task_id", ASCENDING), ("start_at", DESCENDING)])
    db[FOCUS_SESSIONS].create_index([("task_id", ASCENDING), ("start_at", DESCENDING)])
