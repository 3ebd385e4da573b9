"""应用错误类型

每个错误都带有HTTP状态码和可选的附加数据，
由 main.py 统一转换为 ``{success: false, message, data}``。
"""
import logging
from contextlib import contextmanager
from typing import Any, Optional

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data


class ValidationError(AppError):
    status_code = 400


class AuthError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class StoreError(AppError):
    status_code = 500


@contextmanager
def store_errors(action: str):
    """将数据库驱动异常转换为 StoreError，不向调用方暴露细节"""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"Database error during {action}: {e}")
        raise StoreError("Database error") from e
