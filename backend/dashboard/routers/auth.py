from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError
import logging

from dashboard.core.database import get_db
from dashboard.core.security import create_access_token, decode_access_token, oauth2_scheme
from dashboard.models.user import User
from dashboard.schemas.account import UserCreate, Token, UserResponse, PasswordChangeRequest
from dashboard.services.account import authenticate_user, change_password, get_user_by_email, register_user

logger = logging.getLogger("uvicorn.error")
router = APIRouter(prefix="/auth", tags=["auth"])

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

async def get_current_user(token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)) -> User:
    try:
        payload = decode_access_token(token)
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    # purpose-scoped tokens (OAuth state) are not session tokens
    email = None if payload.get("purpose") else payload.get("sub")

    user = await get_user_by_email(db, email) if email else None
    if user is None:
        raise _unauthorized("Could not validate credentials")
    return user

async def get_current_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized")
    return current_user

@router.post("/register", response_model=UserResponse)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await register_user(db, user_data)
    except ValueError as e:
        logger.warning(f"Registration rejected for {user_data.email}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/login", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, form_data.username, form_data.password)
    if not user:
        logger.warning(f"Login failed for: {form_data.username}")
        raise _unauthorized("Incorrect username or password")

    return Token(access_token=create_access_token(data={"sub": user.email}), token_type="bearer")

@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user

@router.post("/change-password")
async def post_change_password(
    passwords: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        await change_password(db, current_user, passwords)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"detail": "Password updated successfully"}
