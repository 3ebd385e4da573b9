import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from config import CATEGORY_STATS_LIMIT, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from database import get_database
from dependencies import get_clock, get_current_user_id
from errors import NotFoundError, ValidationError
from models import (
    BulkUpdateRequest, CategoryStat, Pagination, PriorityStat, TaskCreate, TaskOut, TaskStats,
    TaskStatsOverview, TaskUpdate, ok,
)
from services.stores import TaskStore, to_object_id
from timeutils import day_start

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])

# 接口字段 -> 文档字段
SORT_FIELDS = {
    "title": "title",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "dueDate": "due_date",
    "priority": "priority",
}
SORT_PATTERN = r"^(title|createdAt|updatedAt|dueDate|priority):(asc|desc)$"

DueDateFilter = Literal["today", "overdue", "upcoming", "this_week"]


def _check_id(task_id: str):
    if to_object_id(task_id) is None:
        raise ValidationError("Invalid task ID")


def _with_completion(fields: dict, now: datetime) -> dict:
    """completed 变化时同步 completed_at"""
    if "completed" in fields:
        fields["completed_at"] = now if fields["completed"] else None
    fields["updated_at"] = now
    return fields


def _due_date_query(due: str, now: datetime) -> dict:
    today = day_start(now.date())
    tomorrow = today + timedelta(days=1)
    if due == "today":
        return {"due_date": {"$gte": today, "$lt": tomorrow}}
    if due == "overdue":
        return {"due_date": {"$lt": today}, "completed": False}
    if due == "upcoming":
        return {"due_date": {"$gte": tomorrow}}
    return {"due_date": {"$gte": today, "$lt": today + timedelta(days=7)}}


def _task_stats(store: TaskStore, user_id: str, now: datetime) -> TaskStats:
    totals = store.aggregate([
        {"$match": {"user_id": user_id}},
        {"$group": {
            "_id": None,
            "total": {"$sum": 1},
            "completed": {"$sum": {"$cond": ["$completed", 1, 0]}},
            "archived": {"$sum": {"$cond": ["$archived", 1, 0]}},
        }},
    ])
    total = totals[0]["total"] if totals else 0
    completed = totals[0]["completed"] if totals else 0
    overview = TaskStatsOverview(
        total_tasks=total,
        completed_tasks=completed,
        pending_tasks=total - completed,
        archived_tasks=totals[0]["archived"] if totals else 0,
        overdue_tasks=store.count({
            "user_id": user_id,
            "completed": False,
            "due_date": {"$ne": None, "$lt": now},
        }),
    )

    categories = store.aggregate([
        {"$match": {"user_id": user_id, "archived": False}},
        {"$group": {
            "_id": "$category",
            "count": {"$sum": 1},
            "completed": {"$sum": {"$cond": ["$completed", 1, 0]}},
        }},
        {"$sort": {"count": DESCENDING}},
        {"$limit": CATEGORY_STATS_LIMIT},
    ])
    priorities = store.aggregate([
        {"$match": {"user_id": user_id, "archived": False, "completed": False}},
        {"$group": {"_id": "$priority", "count": {"$sum": 1}}},
        {"$sort": {"_id": DESCENDING}},
    ])
    return TaskStats(
        overview=overview,
        by_category=[CategoryStat(category=c["_id"], count=c["count"], completed=c["completed"]) for c in categories],
        by_priority=[PriorityStat(priority=p["_id"], count=p["count"]) for p in priorities],
    )


@router.post("", status_code=201)
def create_task(
    request: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    now = clock()
    doc = {
        **request.model_dump(),
        "user_id": user_id,
        "completed": False,
        "completed_at": None,
        "archived": False,
        "actual_duration": 0,
        "created_at": now,
        "updated_at": now,
    }
    task = TaskStore(db).insert(doc)
    logger.info(f"Task {task['_id']} created for user {user_id}")
    return ok({"task": TaskOut.from_doc(task)}, "Task created")


@router.get("")
def list_tasks(
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1),
    completed: Optional[bool] = Query(default=None),
    archived: bool = Query(default=False),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    priority: Optional[List[int]] = Query(default=None),
    due_date: Optional[DueDateFilter] = Query(default=None, alias="dueDate"),
    tags: Optional[List[str]] = Query(default=None),
    sort: str = Query(default="createdAt:desc", pattern=SORT_PATTERN),
):
    """获取任务列表"""
    limit = min(limit, MAX_PAGE_LIMIT)
    query = {"user_id": user_id, "archived": archived}
    if completed is not None:
        query["completed"] = completed
    if category:
        query["category"] = {"$regex": re.escape(category), "$options": "i"}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"description": pattern}]
    if priority:
        if any(p < 1 or p > 5 for p in priority):
            raise ValidationError("Priority must be between 1 and 5")
        query["priority"] = {"$in": priority}
    if due_date:
        query.update(_due_date_query(due_date, clock()))
    if tags:
        query["tags"] = {"$in": tags}

    field, direction = sort.split(":")
    order = [(SORT_FIELDS[field], DESCENDING if direction == "desc" else ASCENDING)]

    store = TaskStore(db)
    tasks = store.find(query, sort=order, skip=(page - 1) * limit, limit=limit)
    total_count = store.count(query)
    return ok({
        "tasks": [TaskOut.from_doc(t) for t in tasks],
        "pagination": Pagination.build(page, limit, total_count),
    })


@router.get("/stats")
def get_task_stats(
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """任务统计：总览、按分类、按优先级"""
    return ok(_task_stats(TaskStore(db), user_id, clock()))


@router.post("/bulk-update")
def bulk_update(
    request: BulkUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    if any(to_object_id(t) is None for t in request.task_ids):
        raise ValidationError("Invalid task IDs found")
    fields = _with_completion(request.updates.to_fields(), clock())
    matched, modified = TaskStore(db).update_many(request.task_ids, fields, user_id)
    logger.info(f"Bulk update by user {user_id}: {modified}/{matched} tasks modified")
    return ok(
        {"matchedCount": matched, "modifiedCount": modified},
        f"{modified} tasks updated successfully",
    )


@router.get("/{task_id}")
def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    _check_id(task_id)
    task = TaskStore(db).find_by_id(task_id, user_id)
    if not task:
        raise NotFoundError("Task not found")
    return ok({"task": TaskOut.from_doc(task)})


@router.put("/{task_id}")
def update_task(
    task_id: str,
    request: TaskUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    _check_id(task_id)
    fields = _with_completion(request.to_fields(), clock())
    task = TaskStore(db).update_by_id(task_id, fields, user_id=user_id)
    if not task:
        raise NotFoundError("Task not found")
    return ok({"task": TaskOut.from_doc(task)}, "Task updated")


@router.post("/{task_id}/toggle")
def toggle_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """切换完成状态"""
    _check_id(task_id)
    store = TaskStore(db)
    task = store.find_by_id(task_id, user_id)
    if not task:
        raise NotFoundError("Task not found")
    fields = _with_completion({"completed": not task.get("completed", False)}, clock())
    task = store.update_by_id(task_id, fields, user_id=user_id)
    if not task:
        raise NotFoundError("Task not found")
    state = "completed" if task["completed"] else "incomplete"
    return ok({"task": TaskOut.from_doc(task)}, f"Task marked as {state}")


@router.post("/{task_id}/archive")
def archive_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    _check_id(task_id)
    task = TaskStore(db).update_by_id(task_id, {"archived": True, "updated_at": clock()}, user_id=user_id)
    if not task:
        raise NotFoundError("Task not found")
    return ok({"task": TaskOut.from_doc(task)}, "Task archived successfully")


@router.delete("/{task_id}")
def delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    _check_id(task_id)
    if not TaskStore(db).delete_by_id(task_id, user_id):
        raise NotFoundError("Task not found")
    logger.info(f"Task {task_id} deleted by user {user_id}")
    return ok(message="Task deleted successfully")
