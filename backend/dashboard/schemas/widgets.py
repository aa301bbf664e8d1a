from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional

WidgetId = Literal["pull-requests", "news", "expenditures", "timers", "mail"]
LayoutMode = Literal["manual", "auto"]

class WidgetDefinition(BaseModel):
    id: WidgetId
    name: str
    description: str
    requires_admin: bool = False
    default_enabled: bool = True
    min_width: int = 1
    min_height: int = 1
    default_width: int = 1
    default_height: int = 1

class WidgetSetting(BaseModel):
    id: WidgetId
    enabled: bool
    order: int
    width: Optional[int] = Field(default=None, ge=1, le=6)
    height: Optional[int] = Field(default=None, ge=1, le=6)

class WidgetSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    widgets: List[WidgetSetting] = []
    layout_mode: Optional[LayoutMode] = Field(default=None, alias="layoutMode")

class ResolvedWidget(WidgetSetting):
    width: int
    height: int
    min_width: int
    min_height: int
    colspan: int
    rowspan: int

class RowWidget(ResolvedWidget):
    calculated_width: int

class WidgetRow(BaseModel):
    height: int
    widgets: List[RowWidget]

class WidgetSettingsResponse(BaseModel):
    settings: WidgetSettings
    available: List[WidgetDefinition]
    is_admin: bool

class WidgetToggle(BaseModel):
    widget_id: WidgetId
    enabled: bool

class WidgetReorder(BaseModel):
    order: List[WidgetId]

class WidgetResize(BaseModel):
    widget_id: WidgetId
    width: int = Field(ge=1, le=6)
    height: int = Field(ge=1, le=6)

class LayoutModeUpdate(BaseModel):
    layout_mode: LayoutMode
