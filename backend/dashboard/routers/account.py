from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.core.database import get_db
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user, get_current_admin_user
from dashboard.schemas.account import ProfileUpdate, RoleUpdate, SidebarWidthUpdate, UserResponse
from dashboard.services.account import set_user_role, update_profile, update_sidebar_width

router = APIRouter(prefix="/api/account", tags=["account"])

@router.patch("/profile", response_model=UserResponse)
async def patch_profile(data: ProfileUpdate, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await update_profile(db, current_user, data)

@router.put("/sidebar-width")
async def put_sidebar_width(data: SidebarWidthUpdate, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return {"width": await update_sidebar_width(db, current_user, data.width)}

@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def patch_user_role(
    user_id: int,
    data: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin_user),
):
    user = await set_user_role(db, user_id, data.role)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
