from pydantic import BaseModel, EmailStr, field_validator
from datetime import datetime
from typing import Optional

from dashboard.core.security import is_valid_password, PASSWORD_RULE_MESSAGE
from dashboard.models.user import USER_ROLES

SIDEBAR_MIN_WIDTH = 200
SIDEBAR_MAX_WIDTH = 400

class UserCreate(BaseModel):
    email: EmailStr
    password: str
    display_name: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not is_valid_password(v):
            raise ValueError(PASSWORD_RULE_MESSAGE)
        return v

class Token(BaseModel):
    access_token: str
    token_type: str

class UserResponse(BaseModel):
    id: int
    email: str
    display_name: Optional[str] = None
    role: str
    is_admin: bool
    theme: str
    font: str
    fg_brightness_light: float
    bg_brightness_light: float
    fg_brightness_dark: float
    bg_brightness_dark: float
    sidebar_width: int
    news_last_seen_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str

class ProfileUpdate(BaseModel):
    """Profile preferences. Brightness values are percentages."""
    display_name: Optional[str] = None
    theme: Optional[str] = None
    font: Optional[str] = None
    fg_brightness_light: Optional[float] = None
    bg_brightness_light: Optional[float] = None
    fg_brightness_dark: Optional[float] = None
    bg_brightness_dark: Optional[float] = None

class SidebarWidthUpdate(BaseModel):
    width: int

class RoleUpdate(BaseModel):
    role: str

    @field_validator('role')
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in USER_ROLES:
            raise ValueError(f'Role must be one of: {list(USER_ROLES)}')
        return v
