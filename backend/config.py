import logging
import os
from dotenv import load_dotenv

load_dotenv()

# MongoDB配置
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "taskmate")

# JWT配置
JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", 24 * 7))  # 7天过期

# 密码哈希
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# 服务器配置
API_PREFIX = "/api"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Active session registry: "memory" (lost on restart) or "mongo"
ACTIVE_SESSION_STORE = os.getenv("ACTIVE_SESSION_STORE", "memory").lower()
RESET_ACTIVE_SESSIONS_ON_STARTUP = os.getenv("RESET_ACTIVE_SESSIONS_ON_STARTUP", "true").lower() in ("1", "true", "yes")

# Focus session limits
MAX_PAGE_LIMIT = 100
DEFAULT_PAGE_LIMIT = 20
MAX_NOTES_LENGTH = 500
MAX_ESTIMATED_DURATION = 240  # 分钟
STREAK_LOOKBACK_DAYS = 365
TOP_TASKS_LIMIT = 10

# 用户默认设置
DEFAULT_FOCUS_MINUTES = {"work": 25, "short_break": 5, "long_break": 15}
DEFAULT_TIMEZONE = "UTC"
DEFAULT_THEME = "auto"

# 任务统计
CATEGORY_STATS_LIMIT = 10


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("pymongo").setLevel(logging.WARNING)
