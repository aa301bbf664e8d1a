from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
import httpx
import logging

from dashboard.core.config import get_settings
from dashboard.core.database import get_db
from dashboard.models.mail import MailAccount
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.mail import (
    BulkActionRequest,
    BulkActionResult,
    EmptyFolderResult,
    ImapCredentials,
    MailAccountCreate,
    MailAccountResponse,
    MailAccountUpdate,
    MailFolder,
    MailSummary,
    MessagesResponse,
    SearchRequest,
)
from dashboard.services.mail.mail_service import MailService, EMPTYABLE_FOLDERS
from dashboard.services.mail.oauth import OAUTH_SERVICES, encode_state, decode_state
from dashboard.services.mail.rate_limiter import rate_limiter, rate_limit_key
from dashboard.services.mail.token_manager import expires_at_from

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/mail", tags=["mail"])

MAIL_SETTINGS_PATH = "/mail/settings"


def _callback_uri(provider: str) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/api/mail/oauth/callback?provider={provider}"


def _settings_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.SITE_URL.rstrip('/')}{MAIL_SETTINGS_PATH}?{query}")


def _check_rate_limit(operation: str, user_id: int, account_id: int) -> None:
    allowed, _ = rate_limiter.check(rate_limit_key(operation, user_id, account_id))
    if not allowed:
        raise HTTPException(status_code=429, detail="Rate limit exceeded")


async def _get_owned_account(service: MailService, account_id: int) -> MailAccount:
    account = await service.get_account(account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found or access denied")
    return account

# Accounts

@router.get("/accounts", response_model=List[MailAccountResponse])
async def list_accounts(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await MailService(db, current_user.id).get_accounts()

@router.post("/accounts", response_model=MailAccountResponse)
async def create_account(
    data: MailAccountCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await MailService(db, current_user.id).create_account(data)

@router.patch("/accounts/{account_id}", response_model=MailAccountResponse)
async def update_account(
    account_id: int,
    data: MailAccountUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await MailService(db, current_user.id).update_account(account_id, data)
    except ValueError:
        raise HTTPException(status_code=404, detail="Account not found or access denied")

@router.delete("/accounts/{account_id}")
async def delete_account(account_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        await MailService(db, current_user.id).delete_account(account_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Account not found or access denied")
    return {"success": True}

@router.put("/accounts/{account_id}/credentials")
async def store_imap_credentials(
    account_id: int,
    credentials: ImapCredentials,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service = MailService(db, current_user.id)
    account = await _get_owned_account(service, account_id)
    if account.provider != "imap":
        raise HTTPException(status_code=400, detail="Credentials can only be stored for IMAP accounts")
    await service.store_credentials(account.id, credentials.password)
    return {"success": True}

# Messages

@router.get("/messages", response_model=MessagesResponse)
async def get_messages(
    accountId: Optional[int] = None,
    folder: str = "inbox",
    maxResults: int = 50,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not accountId:
        raise HTTPException(status_code=400, detail="Missing accountId parameter")

    _check_rate_limit("messages", current_user.id, accountId)

    service = MailService(db, current_user.id)
    account = await _get_owned_account(service, accountId)

    try:
        messages = await service.get_messages(account, folder, maxResults)
        return MessagesResponse(messages=messages, has_more=len(messages) >= maxResults)
    except Exception as e:
        logger.exception(f"Error fetching messages for account {accountId}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/folders", response_model=List[MailFolder])
async def get_folders(
    accountId: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not accountId:
        raise HTTPException(status_code=400, detail="Missing accountId parameter")

    _check_rate_limit("folders", current_user.id, accountId)

    service = MailService(db, current_user.id)
    account = await _get_owned_account(service, accountId)

    try:
        return await service.get_folders(account)
    except Exception as e:
        logger.exception(f"Error listing folders for account {accountId}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("/bulk-action", response_model=BulkActionResult)
async def bulk_action(
    request: BulkActionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not request.accountId or not request.messageIds or not request.action:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    _check_rate_limit("bulk-action", current_user.id, request.accountId)

    service = MailService(db, current_user.id)
    account = await _get_owned_account(service, request.accountId)

    try:
        processed = await service.bulk_action(account, request.messageIds, request.action)
        return BulkActionResult(
            success=True,
            processedCount=processed,
            failedCount=len(request.messageIds) - processed,
        )
    except Exception as e:
        logger.exception(f"Error in bulk action {request.action} for account {request.accountId}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.delete("/empty-folder", response_model=EmptyFolderResult)
async def empty_folder(
    accountId: Optional[int] = None,
    folder: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not accountId or not folder:
        raise HTTPException(status_code=400, detail="Missing required parameters")
    if folder not in EMPTYABLE_FOLDERS:
        raise HTTPException(status_code=400, detail="Only junk and trash folders can be emptied")

    _check_rate_limit("empty-folder", current_user.id, accountId)

    service = MailService(db, current_user.id)
    account = await _get_owned_account(service, accountId)

    try:
        deleted = await service.empty_folder(account, folder)
        return EmptyFolderResult(success=True, deletedCount=deleted)
    except Exception as e:
        logger.exception(f"Error emptying {folder} for account {accountId}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("/search", response_model=MessagesResponse)
async def search(
    request: SearchRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not request.accountId or not request.query:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    _check_rate_limit("search", current_user.id, request.accountId)

    service = MailService(db, current_user.id)
    account = await _get_owned_account(service, request.accountId)

    try:
        messages = await service.search(account, request.query, request.folder, request.maxResults)
        return MessagesResponse(messages=messages, has_more=len(messages) >= request.maxResults)
    except Exception as e:
        logger.exception(f"Error searching account {request.accountId}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/summary", response_model=MailSummary)
async def summary(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await MailService(db, current_user.id).get_summary()
    except Exception as e:
        logger.exception(f"Error building mail summary: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

# OAuth

@router.get("/oauth/authorize")
async def authorize(
    request: Request,
    accountId: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Returns the provider consent URL for a Gmail or Outlook account."""
    service = MailService(db, current_user.id)
    account = await _get_owned_account(service, accountId)

    auth_service = OAUTH_SERVICES.get(account.provider)
    if not auth_service:
        raise HTTPException(status_code=400, detail="Account provider does not use OAuth")

    try:
        auth_url = auth_service.get_authorization_url(
            encode_state(account.id, current_user.id, account.provider), _callback_uri(account.provider)
        )
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if request.query_params.get("redirect") == "true":
        return RedirectResponse(auth_url)
    return {"url": auth_url}

@router.get("/oauth/callback")
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    provider: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Exchanges the authorization code and stores encrypted tokens. Always redirects."""
    try:
        if not code or not state or not provider:
            return _settings_redirect("error=missing_parameters")

        if provider not in OAUTH_SERVICES:
            return _settings_redirect("error=invalid_provider")

        decoded = decode_state(state)
        if not decoded or decoded.provider != provider:
            return _settings_redirect("error=invalid_state")
        account_id, user_id = decoded.account_id, decoded.user_id

        result = await db.execute(
            select(MailAccount).where(
                MailAccount.id == account_id,
                MailAccount.user_id == user_id,
                MailAccount.provider == provider,
            )
        )
        if not result.scalar_one_or_none():
            return _settings_redirect("error=account_not_found")

        try:
            token_data = await OAUTH_SERVICES[provider].exchange_code_for_token(code, _callback_uri(provider))
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Mail token exchange failed for account {account_id}: {e}")
            return _settings_redirect("error=token_exchange_failed")

        if not token_data.get("access_token") or not token_data.get("refresh_token"):
            return _settings_redirect("error=invalid_token_response")

        expires_in = token_data.get("expires_in")
        await MailService(db, user_id).store_credentials(
            account_id,
            token_data["access_token"],
            token_data["refresh_token"],
            expires_at_from(expires_in if isinstance(expires_in, int) else None),
        )
        logger.info(f"Connected {provider} mail account {account_id}")
        return _settings_redirect("success=account_connected")
    except Exception as e:
        logger.exception(f"Error in mail OAuth callback: {e}")
        return _settings_redirect("error=internal_error")
