from pydantic import Field, StringConstraints, field_validator
from typing import Annotated, Literal, Optional

from config import DEFAULT_FOCUS_MINUTES, DEFAULT_THEME, DEFAULT_TIMEZONE
from models.common import ApiModel, UtcDatetime
from models.focus import SessionType

Email = Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
Theme = Literal["light", "dark", "auto"]


class RegisterRequest(ApiModel):
    email: Email
    password: str = Field(min_length=6, max_length=72)
    name: Name

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        # bcrypt 只处理前72字节
        if len(v.encode()) > 72:
            raise ValueError("Password cannot exceed 72 bytes")
        return v


class LoginRequest(ApiModel):
    email: Email
    password: str


class FocusDefaults(ApiModel):
    """各类型专注的默认时长（分钟）"""
    work: int = Field(default=DEFAULT_FOCUS_MINUTES["work"], ge=1, le=180)
    short_break: int = Field(default=DEFAULT_FOCUS_MINUTES["short_break"], ge=1, le=60)
    long_break: int = Field(default=DEFAULT_FOCUS_MINUTES["long_break"], ge=1, le=60)

    def minutes_for(self, session_type: SessionType) -> int:
        return {
            SessionType.WORK: self.work,
            SessionType.SHORT_BREAK: self.short_break,
            SessionType.LONG_BREAK: self.long_break,
        }[SessionType(session_type)]


class UserSettings(ApiModel):
    timezone: str = DEFAULT_TIMEZONE
    focus_defaults: FocusDefaults = Field(default_factory=FocusDefaults)
    theme: Theme = DEFAULT_THEME

    @classmethod
    def from_doc(cls, doc: Optional[dict]) -> "UserSettings":
        return cls.model_validate(doc or {})

    def to_doc(self) -> dict:
        return self.model_dump()


class FocusDefaultsUpdate(ApiModel):
    work: Optional[int] = Field(default=None, ge=1, le=180)
    short_break: Optional[int] = Field(default=None, ge=1, le=60)
    long_break: Optional[int] = Field(default=None, ge=1, le=60)


class SettingsUpdate(ApiModel):
    timezone: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]] = None
    focus_defaults: Optional[FocusDefaultsUpdate] = None
    theme: Optional[Theme] = None


class ProfileUpdate(ApiModel):
    """部分更新；为null的字段视为未提供"""
    name: Optional[Name] = None
    settings: Optional[SettingsUpdate] = None

    def merged_settings(self, current: UserSettings) -> UserSettings:
        """把提交的设置合并到现有设置上，focus_defaults 按字段合并"""
        merged = current.model_dump()
        if self.settings is not None:
            changes = self.settings.model_dump(exclude_none=True)
            focus_changes = changes.pop("focus_defaults", {})
            merged.update(changes)
            merged["focus_defaults"].update(focus_changes)
        return UserSettings.model_validate(merged)


class UserOut(ApiModel):
    id: str
    email: str
    name: str
    settings: UserSettings = Field(default_factory=UserSettings)
    created_at: Optional[UtcDatetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "UserOut":
        return cls(
            id=str(doc["_id"]),
            email=doc["email"],
            name=doc.get("name", ""),
            settings=UserSettings.from_doc(doc.get("settings")),
            created_at=doc.get("created_at"),
        )


class AuthResponse(ApiModel):
    token: str
    user: UserOut
