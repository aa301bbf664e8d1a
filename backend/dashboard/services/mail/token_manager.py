from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.core.crypto import encrypt, decrypt
from dashboard.models.mail import MailAccount, MailOAuthToken
from dashboard.services.mail.oauth import OAUTH_SERVICES
from dashboard.utils.logger import get_logger

logger = get_logger("mail.tokens")

EXPIRY_BUFFER = timedelta(minutes=5)
DEFAULT_EXPIRES_IN = 3600


@dataclass
class DecryptedToken:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]


def expires_at_from(expires_in: Optional[int]) -> datetime:
    """Absolute expiry for an OAuth ``expires_in``; missing or non-positive values mean one hour."""
    if not expires_in or expires_in <= 0:
        expires_in = DEFAULT_EXPIRES_IN
    return datetime.utcnow() + timedelta(seconds=expires_in)


def is_token_expired(expires_at: Optional[datetime]) -> bool:
    if expires_at is None:
        return False
    return datetime.utcnow() >= expires_at - EXPIRY_BUFFER


class TokenManager:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def store_token(
        self,
        account_id: int,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> MailOAuthToken:
        """Encrypts and upserts the credentials for an account."""
        access = encrypt(access_token)
        refresh = encrypt(refresh_token) if refresh_token else None

        result = await self.db.execute(select(MailOAuthToken).where(MailOAuthToken.account_id == account_id))
        token = result.scalar_one_or_none()
        if not token:
            token = MailOAuthToken(account_id=account_id)
            self.db.add(token)

        token.encrypted_access_token = access.encrypted
        token.iv = access.iv
        token.auth_tag = access.auth_tag
        token.encrypted_refresh_token = refresh.encrypted if refresh else None
        token.refresh_token_iv = refresh.iv if refresh else None
        token.refresh_token_auth_tag = refresh.auth_tag if refresh else None
        token.token_expires_at = expires_at

        await self.db.commit()
        await self.db.refresh(token)
        return token

    async def get_token(self, account_id: int) -> Optional[DecryptedToken]:
        result = await self.db.execute(select(MailOAuthToken).where(MailOAuthToken.account_id == account_id))
        token = result.scalar_one_or_none()
        if not token:
            return None

        access_token = decrypt(token.encrypted_access_token, token.iv, token.auth_tag)
        refresh_token = None
        if token.encrypted_refresh_token and token.refresh_token_iv and token.refresh_token_auth_tag:
            refresh_token = decrypt(
                token.encrypted_refresh_token, token.refresh_token_iv, token.refresh_token_auth_tag
            )
        return DecryptedToken(access_token=access_token, refresh_token=refresh_token, expires_at=token.token_expires_at)

    async def delete_token(self, account_id: int) -> None:
        await self.db.execute(delete(MailOAuthToken).where(MailOAuthToken.account_id == account_id))
        await self.db.commit()

    async def get_valid_access_token(self, account: MailAccount) -> str:
        """
        Returns a usable access token, refreshing it through the provider when it is
        about to expire. IMAP accounts store their password here and never expire.
        """
        token = await self.get_token(account.id)
        if not token:
            raise ValueError("No credentials stored for this account")

        if not is_token_expired(token.expires_at):
            return token.access_token

        service = OAUTH_SERVICES.get(account.provider)
        if not service or not token.refresh_token:
            raise ValueError("Token expired and cannot be refreshed")

        logger.info(f"Refreshing {account.provider} token for mail account {account.id}")
        data = await service.refresh_access_token(token.refresh_token)
        access_token = data.get("access_token")
        if not access_token:
            raise ValueError("Token refresh returned no access token")

        await self.store_token(
            account.id,
            access_token,
            data.get("refresh_token") or token.refresh_token,
            expires_at_from(data.get("expires_in")),
        )
        return access_token
