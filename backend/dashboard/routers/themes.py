from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.theme import (
    ActiveThemeRequest,
    ColorConversion,
    ColorConversionResult,
    ThemeCreate,
    ThemeResponse,
    ThemeUpdate,
)
from dashboard.services.themes.color import hex_to_oklch, is_valid_hex, is_valid_oklch, oklch_to_hex
from dashboard.services.themes.theme_service import (
    THEME_VARIABLE_GROUPS,
    THEME_VARIABLE_LABELS,
    ThemeService,
    custom_theme_ref,
    default_theme_variables,
    parse_custom_theme_ref,
)

router = APIRouter(prefix="/api/themes", tags=["themes"])

@router.get("", response_model=List[ThemeResponse])
async def list_themes(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await ThemeService(db, current_user.id).get_themes()

@router.get("/variables")
async def theme_variables():
    return {
        "groups": THEME_VARIABLE_GROUPS,
        "labels": THEME_VARIABLE_LABELS,
        "defaults": default_theme_variables(),
    }

@router.post("/convert", response_model=ColorConversionResult)
async def convert_color(data: ColorConversion):
    """Converts between hex and OKLCH, whichever the value is given in."""
    if is_valid_hex(data.value):
        return ColorConversionResult(hex=data.value if data.value.startswith("#") else f"#{data.value}", oklch=hex_to_oklch(data.value))
    if is_valid_oklch(data.value):
        return ColorConversionResult(hex=oklch_to_hex(data.value), oklch=data.value)
    raise HTTPException(status_code=400, detail="Invalid color value")

@router.get("/active", response_model=Optional[ThemeResponse])
async def get_active_theme(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await ThemeService(db, current_user.id).get_active_theme()

@router.put("/active", response_model=Optional[ThemeResponse])
async def set_active_theme(
    data: ActiveThemeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        theme = await ThemeService(db, current_user.id).set_active_theme(data.theme_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if theme:
        current_user.theme = custom_theme_ref(theme.id)
    elif parse_custom_theme_ref(current_user.theme) is not None:
        current_user.theme = "default"
    await db.commit()
    return theme

@router.get("/{theme_id}", response_model=ThemeResponse)
async def get_theme(theme_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    theme = await ThemeService(db, current_user.id).get_theme(theme_id)
    if not theme:
        raise HTTPException(status_code=404, detail="Theme not found")
    return theme

@router.post("", response_model=ThemeResponse)
async def create_theme(data: ThemeCreate, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await ThemeService(db, current_user.id).create_theme(data.name, data.light_variables, data.dark_variables)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.patch("/{theme_id}", response_model=ThemeResponse)
async def update_theme(
    theme_id: int,
    data: ThemeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await ThemeService(db, current_user.id).update_theme(
            theme_id, data.name, data.light_variables, data.dark_variables
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/{theme_id}")
async def delete_theme(theme_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        await ThemeService(db, current_user.id).delete_theme(theme_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if current_user.theme == custom_theme_ref(theme_id):
        current_user.theme = "default"
        await db.commit()
    return {"success": True}
