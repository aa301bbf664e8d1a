from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Dict, Optional

class ThemeCreate(BaseModel):
    name: str
    light_variables: Dict[str, str] = {}
    dark_variables: Dict[str, str] = {}

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Theme name is required')
        return v

class ThemeUpdate(BaseModel):
    name: Optional[str] = None
    light_variables: Optional[Dict[str, str]] = None
    dark_variables: Optional[Dict[str, str]] = None

class ThemeResponse(BaseModel):
    id: int
    user_id: int
    name: str
    light_variables: Dict[str, str]
    dark_variables: Dict[str, str]
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ActiveThemeRequest(BaseModel):
    theme_id: Optional[int] = None

class ColorConversion(BaseModel):
    value: str

class ColorConversionResult(BaseModel):
    hex: Optional[str] = None
    oklch: Optional[str] = None
