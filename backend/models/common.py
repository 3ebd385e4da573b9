from datetime import datetime
from math import ceil
from typing import Annotated, Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import AfterValidator, BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from timeutils import as_utc, to_millis, to_utc_naive

# 入库前统一为无时区UTC（毫秒精度），输出时带上UTC时区
UtcDatetime = Annotated[
    datetime,
    AfterValidator(lambda d: to_millis(to_utc_naive(d))),
    PlainSerializer(lambda d: as_utc(d).isoformat(), when_used="json"),
]


class ApiModel(BaseModel):
    """接口模型：JSON字段使用camelCase，请求体同时接受snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pagination(ApiModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool
    limit: int

    @classmethod
    def build(cls, page: int, limit: int, total_count: int) -> "Pagination":
        total_pages = ceil(total_count / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_count=total_count,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
            limit=limit,
        )


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    """统一成功响应 {success, message?, data?}"""
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data, by_alias=True)
    return body


def fail(message: str, data: Any = None) -> dict:
    body = {"success": False, "message": message}
    if data is not None:
        body["data"] = jsonable_encoder(data, by_alias=True)
    return body
