from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from config import DEFAULT_PAGE_LIMIT
from database import get_database
from dependencies import get_analytics_engine, get_clock, get_current_user_id, get_focus_manager
from models import EndSessionRequest, SessionDuration, SessionType, StartSessionRequest, UserSettings, ok
from services.analytics import AnalyticsEngine
from services.focus import FocusSessionManager
from services.stores import UserStore
from timeutils import parse_iso_datetime, seconds_to_minutes

router = APIRouter(prefix="/focus", tags=["focus"])


@router.post("/start")
def start_session(
    request: Optional[StartSessionRequest] = None,
    user_id: str = Depends(get_current_user_id),
    manager: FocusSessionManager = Depends(get_focus_manager),
    db: Database = Depends(get_database),
):
    """开始专注 - 开始时间由服务器决定"""
    request = request or StartSessionRequest()
    estimated = request.estimated_duration
    if estimated is None:
        # 未指定时使用用户设置中该类型的默认时长
        user = UserStore(db).find_by_id(user_id)
        settings = UserSettings.from_doc(user.get("settings") if user else None)
        estimated = settings.focus_defaults.minutes_for(request.session_type)
    session = manager.start(
        user_id,
        task_id=request.task_id,
        session_type=request.session_type,
        estimated_duration=estimated,
    )
    return ok({"session": session}, "Focus session started")


@router.post("/end")
def end_session(
    request: Optional[EndSessionRequest] = None,
    user_id: str = Depends(get_current_user_id),
    manager: FocusSessionManager = Depends(get_focus_manager),
):
    """结束专注 - 时长由服务器计算"""
    request = request or EndSessionRequest()
    record = manager.end(
        user_id,
        session_id=request.session_id,
        interrupted=request.interrupted,
        notes=request.notes,
    )
    duration = SessionDuration(seconds=record.duration_sec, minutes=seconds_to_minutes(record.duration_sec))
    return ok({"session": record, "duration": duration}, "Focus session ended")


@router.get("/active")
def get_active_session(
    user_id: str = Depends(get_current_user_id),
    manager: FocusSessionManager = Depends(get_focus_manager),
):
    state, snapshot = manager.active(user_id)
    return ok({"state": state.state, "session": snapshot})


@router.get("/sessions")
def get_sessions(
    user_id: str = Depends(get_current_user_id),
    manager: FocusSessionManager = Depends(get_focus_manager),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    task_id: Optional[str] = Query(default=None, alias="taskId"),
    session_type: Optional[SessionType] = Query(default=None, alias="sessionType"),
):
    """获取专注记录"""
    sessions, pagination = manager.list_sessions(
        user_id,
        page=page,
        limit=limit,
        start_date=parse_iso_datetime(start_date, "Start date"),
        end_date=parse_iso_datetime(end_date, "End date"),
        task_id=task_id,
        session_type=session_type,
    )
    return ok({"sessions": sessions, "pagination": pagination})


@router.get("/sessions/{session_id}")
def get_session_by_id(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: FocusSessionManager = Depends(get_focus_manager),
):
    return ok({"session": manager.get_session(user_id, session_id)})


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: FocusSessionManager = Depends(get_focus_manager),
):
    manager.delete_session(user_id, session_id)
    return ok(message="Session deleted successfully")


@router.get("/analytics")
def get_analytics(
    user_id: str = Depends(get_current_user_id),
    engine: AnalyticsEngine = Depends(get_analytics_engine),
    clock: Callable[[], datetime] = Depends(get_clock),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    period: Optional[str] = Query(default=None, description="1d, 7d, 30d, 90d, 1y"),
):
    """获取专注统计"""
    report = engine.report(
        user_id,
        start=parse_iso_datetime(start_date, "Start date"),
        end=parse_iso_datetime(end_date, "End date"),
        period=period,
        now=clock(),
    )
    return ok(report)
