import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from config import API_PREFIX, CORS_ORIGINS, RESET_ACTIVE_SESSIONS_ON_STARTUP, configure_logging
from database import ensure_indexes, get_database
from dependencies import build_registry
from errors import AppError
from models import fail
from routers import auth_router, tasks_router, focus_router

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = get_database()
    ensure_indexes(db)
    if RESET_ACTIVE_SESSIONS_ON_STARTUP:
        # 内存中的进行中会话在重启后本来就不存在，这里保证状态干净
        build_registry(db).clear()
    logger.info("TaskMate API started")
    yield


app = FastAPI(
    title="TaskMate API",
    description="任务管理、专注计时与专注统计的后端服务",
    version="1.0.0",
    lifespan=lifespan,
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(f"{request.method} {request.url.path} {response.status_code} - {duration_ms}ms")
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=fail(exc.message, exc.data))


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content=fail(str(exc.detail)))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]) or str(err["loc"][0]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=fail("Validation errors", {"errors": errors}))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=fail("Internal Server Error"))


# 注册路由
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(tasks_router, prefix=API_PREFIX)
app.include_router(focus_router, prefix=API_PREFIX)


@app.get("/")
def root():
    return {"success": True, "message": "TaskMate API is running", "data": {"version": "1.0.0"}}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
