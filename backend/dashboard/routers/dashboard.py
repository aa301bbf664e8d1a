from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.widgets import (
    LayoutModeUpdate,
    WidgetReorder,
    WidgetResize,
    WidgetRow,
    WidgetSettings,
    WidgetSettingsResponse,
    WidgetToggle,
)
from dashboard.services.widgets import (
    WIDGET_REGISTRY,
    available_widgets,
    dump_widget_settings,
    enabled_widgets,
    load_widget_settings,
    organize_widgets_into_rows,
    reorder_widgets,
    resolve_widget_size,
    toggle_widget,
    update_layout_mode,
    update_widget_size,
)

router = APIRouter(prefix="/dashboard/widgets", tags=["dashboard"])


def _settings_response(settings: WidgetSettings, user: User) -> WidgetSettingsResponse:
    return WidgetSettingsResponse(settings=settings, available=available_widgets(user.is_admin), is_admin=user.is_admin)


async def _save(db: AsyncSession, user: User, settings: WidgetSettings) -> WidgetSettingsResponse:
    user.widget_settings = dump_widget_settings(settings)
    await db.commit()
    return _settings_response(settings, user)


def _ensure_known(settings: WidgetSettings, widget_id: str) -> None:
    if widget_id not in {w.id for w in settings.widgets}:
        raise HTTPException(status_code=404, detail="Widget not found")


@router.get("", response_model=WidgetSettingsResponse)
async def get_widget_settings(current_user: User = Depends(get_current_user)):
    return _settings_response(load_widget_settings(current_user.widget_settings, current_user.is_admin), current_user)

@router.get("/layout", response_model=List[WidgetRow])
async def get_widget_layout(columns: int = Query(2, ge=1, le=6), current_user: User = Depends(get_current_user)):
    settings = load_widget_settings(current_user.widget_settings, current_user.is_admin)
    resolved = [resolve_widget_size(w, WIDGET_REGISTRY.get(w.id)) for w in enabled_widgets(settings)]
    return organize_widgets_into_rows(resolved, columns, settings.layout_mode or "manual")

@router.post("/toggle", response_model=WidgetSettingsResponse)
async def post_toggle(data: WidgetToggle, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    settings = load_widget_settings(current_user.widget_settings, current_user.is_admin)
    _ensure_known(settings, data.widget_id)
    return await _save(db, current_user, toggle_widget(settings, data.widget_id, data.enabled))

@router.post("/reorder", response_model=WidgetSettingsResponse)
async def post_reorder(data: WidgetReorder, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    settings = load_widget_settings(current_user.widget_settings, current_user.is_admin)
    return await _save(db, current_user, reorder_widgets(settings, data.order))

@router.post("/resize", response_model=WidgetSettingsResponse)
async def post_resize(data: WidgetResize, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    settings = load_widget_settings(current_user.widget_settings, current_user.is_admin)
    _ensure_known(settings, data.widget_id)
    definition = WIDGET_REGISTRY[data.widget_id]
    width = max(data.width, definition.min_width)
    height = max(data.height, definition.min_height)
    return await _save(db, current_user, update_widget_size(settings, data.widget_id, width, height))

@router.put("/layout-mode", response_model=WidgetSettingsResponse)
async def put_layout_mode(data: LayoutModeUpdate, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    settings = load_widget_settings(current_user.widget_settings, current_user.is_admin)
    return await _save(db, current_user, update_layout_mode(settings, data.layout_mode))
