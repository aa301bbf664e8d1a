import httpx
from datetime import timedelta
from urllib.parse import urlencode
from typing import Dict, Any, NamedTuple, Optional
from jose import JWTError

from dashboard.core.config import get_settings
from dashboard.core.security import create_access_token, decode_access_token

settings = get_settings()

STATE_PURPOSE = "mail_connect"
STATE_TTL = timedelta(minutes=10)


class OAuthState(NamedTuple):
    account_id: int
    user_id: int
    provider: str


def encode_state(account_id: int, user_id: int, provider: str) -> str:
    """Signed, short-lived state binding the consent flow to one user's account."""
    return create_access_token(
        {"sub": str(user_id), "accountId": account_id, "provider": provider, "purpose": STATE_PURPOSE},
        STATE_TTL,
    )


def decode_state(state: str) -> Optional[OAuthState]:
    """The state's claims, or None when it is forged, expired or issued for another flow."""
    try:
        payload = decode_access_token(state)
    except JWTError:
        return None
    if payload.get("purpose") != STATE_PURPOSE:
        return None
    try:
        return OAuthState(int(payload["accountId"]), int(payload["sub"]), str(payload["provider"]))
    except (KeyError, TypeError, ValueError):
        return None


class GmailAuthService:
    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    SCOPES = [
        "https://www.googleapis.com/auth/gmail.modify",
        "https://www.googleapis.com/auth/userinfo.email",
        "openid",
    ]

    @classmethod
    def get_authorization_url(cls, state: str, redirect_uri: str) -> str:
        if not settings.GOOGLE_CLIENT_ID:
            raise ValueError("Google Client ID must be configured.")

        params = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(cls.SCOPES),
            "access_type": "offline",  # refresh token
            "prompt": "consent",
            "state": state,
        }
        return f"{cls.GOOGLE_AUTH_URL}?{urlencode(params)}"

    @classmethod
    async def exchange_code_for_token(cls, code: str, redirect_uri: str) -> Dict[str, Any]:
        if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
            raise ValueError("Google Client ID and Secret must be configured.")

        data = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        async with httpx.AsyncClient() as client:
            response = await client.post(cls.GOOGLE_TOKEN_URL, data=data)
            response.raise_for_status()
            return response.json()

    @classmethod
    async def refresh_access_token(cls, refresh_token: str) -> Dict[str, Any]:
        if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
            raise ValueError("Google Client ID and Secret must be configured.")

        data = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        async with httpx.AsyncClient() as client:
            response = await client.post(cls.GOOGLE_TOKEN_URL, data=data)
            response.raise_for_status()
            return response.json()


class OutlookAuthService:
    MICROSOFT_AUTH_BASE = "https://login.microsoftonline.com"
    SCOPES = [
        "openid",
        "offline_access",
        "User.Read",
        "Mail.ReadWrite",
    ]

    @classmethod
    def _token_url(cls) -> str:
        return f"{cls.MICROSOFT_AUTH_BASE}/{settings.MICROSOFT_TENANT_ID or 'common'}/oauth2/v2.0/token"

    @classmethod
    def get_authorization_url(cls, state: str, redirect_uri: str) -> str:
        if not settings.MICROSOFT_CLIENT_ID:
            raise ValueError("Microsoft Client ID must be configured.")

        tenant = settings.MICROSOFT_TENANT_ID or "common"
        params = {
            "client_id": settings.MICROSOFT_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "response_mode": "query",
            "scope": " ".join(cls.SCOPES),
            "state": state,
        }
        return f"{cls.MICROSOFT_AUTH_BASE}/{tenant}/oauth2/v2.0/authorize?{urlencode(params)}"

    @classmethod
    async def exchange_code_for_token(cls, code: str, redirect_uri: str) -> Dict[str, Any]:
        if not settings.MICROSOFT_CLIENT_ID or not settings.MICROSOFT_CLIENT_SECRET:
            raise ValueError("Microsoft Client ID and Secret must be configured.")

        data = {
            "client_id": settings.MICROSOFT_CLIENT_ID,
            "client_secret": settings.MICROSOFT_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
            "scope": " ".join(cls.SCOPES),
        }
        async with httpx.AsyncClient() as client:
            response = await client.post(cls._token_url(), data=data)
            response.raise_for_status()
            return response.json()

    @classmethod
    async def refresh_access_token(cls, refresh_token: str) -> Dict[str, Any]:
        if not settings.MICROSOFT_CLIENT_ID or not settings.MICROSOFT_CLIENT_SECRET:
            raise ValueError("Microsoft Client ID and Secret must be configured.")

        data = {
            "client_id": settings.MICROSOFT_CLIENT_ID,
            "client_secret": settings.MICROSOFT_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": " ".join(cls.SCOPES),
        }
        async with httpx.AsyncClient() as client:
            response = await client.post(cls._token_url(), data=data)
            response.raise_for_status()
            return response.json()


OAUTH_SERVICES = {
    "gmail": GmailAuthService,
    "outlook": OutlookAuthService,
}
