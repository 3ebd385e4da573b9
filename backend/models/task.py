from typing import Annotated, List, Optional

from pydantic import Field, StringConstraints, ValidationInfo, field_validator

from models.common import ApiModel, UtcDatetime

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]
Category = Annotated[str, StringConstraints(strip_whitespace=True, max_length=50)]
Tag = Annotated[str, StringConstraints(strip_whitespace=True, max_length=30)]


class TaskCreate(ApiModel):
    title: Title
    description: Optional[Description] = None
    category: Optional[Category] = None
    priority: int = Field(default=3, ge=1, le=5)
    due_date: Optional[UtcDatetime] = None
    tags: List[Tag] = Field(default_factory=list)
    estimated_duration: Optional[int] = Field(default=None, ge=0, description="预计时长（分钟）")


class TaskUpdate(ApiModel):
    """部分更新；actual_duration 由专注会话推导，不允许修改

    description / category / due_date / estimated_duration 可以显式置为null，其余字段不行。
    """
    title: Optional[Title] = None
    description: Optional[Description] = None
    category: Optional[Category] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    due_date: Optional[UtcDatetime] = None
    tags: Optional[List[Tag]] = None
    completed: Optional[bool] = None
    archived: Optional[bool] = None
    estimated_duration: Optional[int] = Field(default=None, ge=0)

    @field_validator("title", "priority", "tags", "completed", "archived", mode="before")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    def to_fields(self) -> dict:
        """只包含请求中出现的字段"""
        return self.model_dump(exclude_unset=True)


class BulkUpdateRequest(ApiModel):
    task_ids: List[str] = Field(min_length=1, max_length=100)
    updates: TaskUpdate


class TaskOut(ApiModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    priority: int = 3
    due_date: Optional[UtcDatetime] = None
    tags: List[str] = Field(default_factory=list)
    completed: bool = False
    completed_at: Optional[UtcDatetime] = None
    archived: bool = False
    estimated_duration: Optional[int] = None
    actual_duration: int = 0  # 分钟
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "TaskOut":
        return cls(id=str(doc["_id"]), **{k: v for k, v in doc.items() if k != "_id"})


class TaskStatsOverview(ApiModel):
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0
    archived_tasks: int = 0
    overdue_tasks: int = 0


class CategoryStat(ApiModel):
    category: Optional[str] = None
    count: int
    completed: int


class PriorityStat(ApiModel):
    priority: Optional[int] = None
    count: int


class TaskStats(ApiModel):
    overview: TaskStatsOverview
    by_category: List[CategoryStat]
    by_priority: List[PriorityStat]
