"""MongoDB 数据访问层

所有ID在接口层都是字符串，这里负责和 ObjectId 互相转换。
user_id / task_id 在文档中以字符串保存。
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import FOCUS_SESSIONS, TASKS, USERS
from errors import store_errors
from models import FocusSessionRecord


def to_object_id(value: Optional[str]) -> Optional[ObjectId]:
    """无效ID返回None"""
    if value and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def _page(cursor, skip: int, limit: int):
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return cursor


class UserStore:
    def __init__(self, db: Database):
        self.collection = db[USERS]

    def insert(self, doc: dict) -> dict:
        with store_errors("insert user"):
            result = self.collection.insert_one(doc)
        return {**doc, "_id": result.inserted_id}

    def find_by_email(self, email: str) -> Optional[dict]:
        with store_errors("find user"):
            return self.collection.find_one({"email": email})

    def find_by_id(self, user_id: str) -> Optional[dict]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        with store_errors("find user"):
            return self.collection.find_one({"_id": oid})

    def update_by_id(self, user_id: str, fields: dict) -> Optional[dict]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        with store_errors("update user"):
            return self.collection.find_one_and_update(
                {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER
            )


class TaskStore:
    def __init__(self, db: Database):
        self.collection = db[TASKS]

    def insert(self, doc: dict) -> dict:
        with store_errors("insert task"):
            result = self.collection.insert_one(doc)
        return {**doc, "_id": result.inserted_id}

    def find_by_id(self, task_id: str, user_id: Optional[str] = None) -> Optional[dict]:
        oid = to_object_id(task_id)
        if oid is None:
            return None
        query: Dict[str, Any] = {"_id": oid}
        if user_id is not None:
            query["user_id"] = user_id
        with store_errors("find task"):
            return self.collection.find_one(query)

    def find_many_by_ids(self, task_ids: Iterable[str]) -> Dict[str, dict]:
        oids = [oid for oid in (to_object_id(t) for t in task_ids) if oid is not None]
        if not oids:
            return {}
        with store_errors("find tasks"):
            return {str(t["_id"]): t for t in self.collection.find({"_id": {"$in": oids}})}

    def find(self, query: dict, sort=None, skip: int = 0, limit: int = 0) -> List[dict]:
        with store_errors("list tasks"):
            cursor = self.collection.find(query).sort(sort or [("created_at", DESCENDING)])
            return list(_page(cursor, skip, limit))

    def aggregate(self, pipeline: List[dict]) -> List[dict]:
        with store_errors("aggregate tasks"):
            return list(self.collection.aggregate(pipeline))

    def update_many(self, task_ids: List[str], fields: dict, user_id: str) -> Tuple[int, int]:
        """返回 (matched, modified)"""
        oids = [to_object_id(t) for t in task_ids]
        with store_errors("bulk update tasks"):
            result = self.collection.update_many({"_id": {"$in": oids}, "user_id": user_id}, {"$set": fields})
        return result.matched_count, result.modified_count

    def count(self, query: dict) -> int:
        with store_errors("count tasks"):
            return self.collection.count_documents(query)

    def update_by_id(self, task_id: str, fields: dict, user_id: Optional[str] = None) -> Optional[dict]:
        oid = to_object_id(task_id)
        if oid is None:
            return None
        query: Dict[str, Any] = {"_id": oid}
        if user_id is not None:
            query["user_id"] = user_id
        with store_errors("update task"):
            return self.collection.find_one_and_update(
                query, {"$set": fields}, return_document=ReturnDocument.AFTER
            )

    def delete_by_id(self, task_id: str, user_id: str) -> Optional[dict]:
        oid = to_object_id(task_id)
        if oid is None:
            return None
        with store_errors("delete task"):
            return self.collection.find_one_and_delete({"_id": oid, "user_id": user_id})


class FocusSessionStore:
    def __init__(self, db: Database):
        self.collection = db[FOCUS_SESSIONS]

    def insert(self, record: FocusSessionRecord) -> FocusSessionRecord:
        with store_errors("insert focus session"):
            result = self.collection.insert_one(record.to_doc())
        return record.model_copy(update={"id": str(result.inserted_id)})

    def find_by_id(self, session_id: str, user_id: str) -> Optional[FocusSessionRecord]:
        oid = to_object_id(session_id)
        if oid is None:
            return None
        with store_errors("find focus session"):
            doc = self.collection.find_one({"_id": oid, "user_id": user_id})
        return FocusSessionRecord.from_doc(doc) if doc else None

    def find(self, query: dict, sort=None, skip: int = 0, limit: int = 0) -> List[FocusSessionRecord]:
        cursor = self.collection.find(query)
        if sort:
            cursor = cursor.sort(sort)
        with store_errors("list focus sessions"):
            docs = list(_page(cursor, skip, limit))
        return [FocusSessionRecord.from_doc(d) for d in docs]

    def count(self, query: dict) -> int:
        with store_errors("count focus sessions"):
            return self.collection.count_documents(query)

    def delete_by_id(self, session_id: str, user_id: str) -> Optional[FocusSessionRecord]:
        oid = to_object_id(session_id)
        if oid is None:
            return None
        with store_errors("delete focus session"):
            doc = self.collection.find_one_and_delete({"_id": oid, "user_id": user_id})
        return FocusSessionRecord.from_doc(doc) if doc else None

    def aggregate_sum(self, query: dict, field: str) -> int:
        pipeline = [
            {"$match": query},
            {"$group": {"_id": None, "total": {"$sum": "$" + field}}},
        ]
        with store_errors("sum focus sessions"):
            result = list(self.collection.aggregate(pipeline))
        return result[0]["total"] if result else 0

    def in_window(self, user_id: str, start: datetime, end: Optional[datetime] = None, **extra) -> List[FocusSessionRecord]:
        """start_at 落在 [start, end] 内的会话，按开始时间升序"""
        window: Dict[str, Any] = {"$gte": start}
        if end is not None:
            window["$lte"] = end
        query = {"user_id": user_id, "start_at": window, **extra}
        return self.find(query, sort=[("start_at", 1)])
