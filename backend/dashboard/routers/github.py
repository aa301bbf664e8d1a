from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import timedelta
from typing import List, Optional
from urllib.parse import urlencode
from jose import JWTError
import httpx
import logging

from dashboard.core.config import get_settings
from dashboard.core.database import get_db
from dashboard.core.security import create_access_token, decode_access_token
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.github import AccountLabelUpdate, FetchPRsResult, GitHubAccountResponse
from dashboard.services.github_client import GitHubAuthService, GitHubClient
from dashboard.services.github_service import GitHubService

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/github", tags=["github"])

STATE_PURPOSE = "github_connect"
STATE_TTL = timedelta(minutes=10)


def _account_redirect(**params) -> RedirectResponse:
    return RedirectResponse(f"{settings.SITE_URL.rstrip('/')}/account/github?{urlencode(params)}")


def _user_id_from_state(state: Optional[str]) -> Optional[int]:
    if not state:
        return None
    try:
        payload = decode_access_token(state)
    except JWTError:
        return None
    if payload.get("purpose") != STATE_PURPOSE:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None


@router.get("/login")
async def login(request: Request, current_user: User = Depends(get_current_user)):
    """Starts the GitHub connect flow; the signed state links the callback to this user."""
    state = create_access_token({"sub": str(current_user.id), "purpose": STATE_PURPOSE}, STATE_TTL)
    try:
        auth_url = GitHubAuthService.get_authorization_url(state)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if request.query_params.get("redirect") == "true":
        return RedirectResponse(auth_url)
    return {"url": auth_url}


@router.get("/callback")
async def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    if error:
        return _account_redirect(error=error)
    if not code:
        return _account_redirect(error="missing_code")
    user_id = _user_id_from_state(state)
    if user_id is None:
        return _account_redirect(error="not_authenticated")

    try:
        token_data = await GitHubAuthService.exchange_code_for_token(code)
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"GitHub token exchange failed: {e}")
        return _account_redirect(error="token_exchange_failed")

    if token_data.get("error"):
        return _account_redirect(error=token_data["error"])
    access_token = token_data.get("access_token")
    if not access_token:
        return _account_redirect(error="token_exchange_failed")

    try:
        github_user = await GitHubClient(access_token).get_user()
    except httpx.HTTPError as e:
        logger.error(f"GitHub user fetch failed: {e}")
        return _account_redirect(error="github_user_fetch_failed")

    try:
        await GitHubService(db, user_id).upsert_account(github_user, access_token)
    except Exception as e:
        logger.exception(f"Failed to store GitHub account for user {user_id}: {e}")
        await db.rollback()
        return _account_redirect(error="database_error")

    return _account_redirect(success="connected")


@router.get("/accounts", response_model=List[GitHubAccountResponse])
async def list_accounts(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await GitHubService(db, current_user.id).get_accounts()


@router.patch("/accounts/{account_id}", response_model=GitHubAccountResponse)
async def update_account_label(
    account_id: int,
    data: AccountLabelUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await GitHubService(db, current_user.id).update_label(account_id, data.label)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/accounts/{account_id}")
async def disconnect_account(account_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        await GitHubService(db, current_user.id).delete_account(account_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}


@router.get("/prs", response_model=FetchPRsResult)
async def get_pull_requests(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await GitHubService(db, current_user.id).get_pull_requests()
