# Models package
from .common import ApiModel, Pagination, ok, fail
from .focus import (
    SessionType, StartSessionRequest, EndSessionRequest, ActiveSession, ActiveSessionSnapshot,
    IdleState, ActiveState, SessionState, IDLE, TaskRef, FocusSessionRecord, SessionDuration,
)
from .user import (
    RegisterRequest, LoginRequest, FocusDefaults, UserSettings, ProfileUpdate, UserOut, AuthResponse,
)
from .task import (
    TaskCreate, TaskUpdate, TaskOut, BulkUpdateRequest, TaskStatsOverview, CategoryStat, PriorityStat, TaskStats,
)
from .analytics import Overview, DailyStat, TopTask, HeatmapDay, PeriodInfo, AnalyticsReport
