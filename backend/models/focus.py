from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, StringConstraints

from config import MAX_ESTIMATED_DURATION, MAX_NOTES_LENGTH
from models.common import ApiModel, UtcDatetime


class SessionType(str, Enum):
    WORK = "work"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"


class StartSessionRequest(ApiModel):
    task_id: Optional[str] = None
    session_type: SessionType = SessionType.WORK
    estimated_duration: Optional[int] = Field(default=None, ge=1, le=MAX_ESTIMATED_DURATION, description="预计时长（分钟）")


class EndSessionRequest(ApiModel):
    session_id: Optional[str] = None
    interrupted: bool = False
    notes: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=MAX_NOTES_LENGTH)]] = None


class ActiveSession(ApiModel):
    """进行中的专注会话，只存在于注册表中"""
    id: str
    user_id: str
    task_id: Optional[str] = None
    session_type: SessionType = SessionType.WORK
    estimated_duration: Optional[int] = None  # 分钟
    start_at: UtcDatetime


class ActiveSessionSnapshot(ActiveSession):
    elapsed: int  # 秒


class IdleState(ApiModel):
    state: Literal["idle"] = "idle"


class ActiveState(ApiModel):
    state: Literal["active"] = "active"
    session: ActiveSession


SessionState = Union[IdleState, ActiveState]

IDLE = IdleState()


class TaskRef(ApiModel):
    id: str
    title: str
    category: Optional[str] = None


class FocusSessionRecord(ApiModel):
    id: Optional[str] = None
    user_id: str
    task_id: Optional[str] = None
    session_type: SessionType = SessionType.WORK
    start_at: UtcDatetime
    end_at: UtcDatetime
    duration_sec: int = Field(ge=0)  # 秒，由 end_at - start_at 推导
    interrupted: bool = False
    notes: Optional[str] = None
    created_at: Optional[UtcDatetime] = None
    task: Optional[TaskRef] = None

    @property
    def is_work(self) -> bool:
        return self.session_type == SessionType.WORK

    @classmethod
    def from_doc(cls, doc: dict) -> "FocusSessionRecord":
        return cls(
            id=str(doc["_id"]),
            user_id=doc["user_id"],
            task_id=doc.get("task_id"),
            session_type=doc.get("session_type", SessionType.WORK),
            start_at=doc["start_at"],
            end_at=doc["end_at"],
            duration_sec=doc["duration_sec"],
            interrupted=doc.get("interrupted", False),
            notes=doc.get("notes"),
            created_at=doc.get("created_at"),
        )

    def to_doc(self) -> dict:
        return {
            "user_id": self.user_id,
            "task_id": self.task_id,
            "session_type": self.session_type.value,
            "start_at": self.start_at,
            "end_at": self.end_at,
            "duration_sec": self.duration_sec,
            "interrupted": self.interrupted,
            "notes": self.notes,
            "created_at": self.created_at,
        }


class SessionDuration(ApiModel):
    seconds: int
    minutes: int
