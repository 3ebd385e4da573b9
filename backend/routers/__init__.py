# Routers package
from .auth import router as auth_router
from .tasks import router as tasks_router
from .focus import router as focus_router
