from pydantic import BaseModel, Field
from typing import List, Optional, Literal, Dict, Any
from datetime import datetime

NewsCategory = Literal["tech", "general", "ai", "dev"]

class NewsSourceCreate(BaseModel):
    url: str
    name: str
    category: NewsCategory = "general"
    icon_name: str = "blocks"
    brand_color: str = "gray"
    is_active: bool = True

class NewsSourceUpdate(BaseModel):
    url: Optional[str] = None
    name: Optional[str] = None
    category: Optional[NewsCategory] = None
    icon_name: Optional[str] = None
    brand_color: Optional[str] = None
    is_active: Optional[bool] = None

class NewsSourceResponse(BaseModel):
    id: int
    url: str
    name: str
    category: str
    icon_name: str
    brand_color: str
    is_active: bool
    created_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True

class NewsSourceWithExclusion(BaseModel):
    id: int
    name: str
    icon_name: str
    brand_color: str
    category: str
    is_excluded: bool

class NewsItemSource(BaseModel):
    id: int
    name: str
    icon_name: str
    brand_color: str
    category: str

class NewsItemResponse(BaseModel):
    id: int
    title: str
    summary: Optional[str] = None
    url: str
    image_url: Optional[str] = None
    published_at: datetime
    source: NewsItemSource

class UnreadCount(BaseModel):
    count: int

class FetcherSettings(BaseModel):
    fetch_interval_minutes: int = Field(30, ge=1)
    notification_retention_days: int = Field(30, ge=1)
    last_fetch_at: Optional[datetime] = None

class FetcherSettingsUpdate(BaseModel):
    fetch_interval_minutes: Optional[int] = Field(None, ge=1)
    notification_retention_days: Optional[int] = Field(None, ge=1)

class FetchNewsResult(BaseModel):
    success: bool
    sources_processed: int = 0
    total_new_items: int = 0
    notifications_created: int = 0
    notifications_deleted: int = 0
    errors: List[str] = []
    duration_ms: int = 0

class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: Optional[str] = None
    meta_data: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
