import asyncio
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.mail import MailAccount
from dashboard.schemas.mail import (
    MailAccountCreate,
    MailAccountSummary,
    MailAccountUpdate,
    MailFolder,
    MailMessage,
    MailSummary,
)
from dashboard.services.mail import cache as mail_cache
from dashboard.services.mail.base import MailClient
from dashboard.services.mail.gmail_client import GmailClient
from dashboard.services.mail.imap_client import ImapClient
from dashboard.services.mail.outlook_client import OutlookClient
from dashboard.services.mail.token_manager import TokenManager
from dashboard.utils.cache import cache
from dashboard.utils.logger import get_logger

logger = get_logger("mail")

EMPTYABLE_FOLDERS = ("junk", "trash")


class MailService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id
        self.tokens = TokenManager(db)

    async def get_accounts(self) -> List[MailAccount]:
        result = await self.db.execute(
            select(MailAccount)
            .where(MailAccount.user_id == self.user_id)
            .order_by(MailAccount.created_at, MailAccount.id)
        )
        return list(result.scalars().all())

    async def get_account(self, account_id: int) -> Optional[MailAccount]:
        """The account when it belongs to the current user, else None."""
        result = await self.db.execute(
            select(MailAccount).where(MailAccount.id == account_id, MailAccount.user_id == self.user_id)
        )
        return result.scalar_one_or_none()

    async def _invalidate_all(self) -> None:
        accounts = await self.get_accounts()
        await mail_cache.invalidate_all_user_caches(self.user_id, [a.id for a in accounts])

    async def create_account(self, data: MailAccountCreate) -> MailAccount:
        account = MailAccount(user_id=self.user_id, **data.model_dump())
        self.db.add(account)
        await self.db.commit()
        await self.db.refresh(account)
        await self._invalidate_all()
        logger.info(f"Created {account.provider} mail account {account.id} for user {self.user_id}")
        return account

    async def update_account(self, account_id: int, data: MailAccountUpdate) -> MailAccount:
        account = await self.get_account(account_id)
        if not account:
            raise ValueError("Account not found")
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(account, field, value)
        await self.db.commit()
        await self.db.refresh(account)
        await mail_cache.invalidate_summary(self.user_id)
        await mail_cache.invalidate_messages(account_id)
        return account

    async def delete_account(self, account_id: int) -> None:
        account = await self.get_account(account_id)
        if not account:
            raise ValueError("Account not found")
        await self.tokens.delete_token(account_id)
        await self.db.delete(account)
        await self.db.commit()
        await mail_cache.invalidate_summary(self.user_id)
        await mail_cache.invalidate_account(account_id)

    async def store_credentials(
        self,
        account_id: int,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> None:
        await self.tokens.store_token(account_id, access_token, refresh_token, expires_at)
        await mail_cache.invalidate_summary(self.user_id)
        await mail_cache.invalidate_messages(account_id)

    async def get_client(self, account: MailAccount) -> MailClient:
        access_token = await self.tokens.get_valid_access_token(account)
        if account.provider == "gmail":
            return GmailClient(account.id, access_token)
        if account.provider == "outlook":
            return OutlookClient(account.id, access_token)
        if account.provider == "imap":
            return ImapClient(account.id, access_token, account.email_address)
        raise ValueError(f"Unsupported mail provider: {account.provider}")

    async def _account_summary(self, account: MailAccount) -> MailAccountSummary:
        unread_count = 0
        try:
            client = await self.get_client(account)
            unread_count = await client.get_unread_count()
        except Exception as e:
            logger.error(f"Error fetching unread count for account {account.id}: {e}")

        return MailAccountSummary(
            account_id=account.id,
            account_name=account.account_name,
            provider=account.provider,
            email_address=account.email_address,
            unread_count=unread_count,
            total_count=0,
            last_synced_at=datetime.utcnow(),
        )

    async def get_summary(self) -> MailSummary:
        key = mail_cache.summary_key(self.user_id)
        cached = await cache.get(key)
        if cached is not None:
            return MailSummary(**cached)

        enabled = [a for a in await self.get_accounts() if a.is_enabled]
        summaries = list(await asyncio.gather(*(self._account_summary(a) for a in enabled)))
        summary = MailSummary(accounts=summaries, total_unread=sum(s.unread_count for s in summaries))

        await cache.set(key, summary.model_dump(), ttl=mail_cache.SUMMARY_TTL)
        return summary

    async def get_messages(self, account: MailAccount, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        key = mail_cache.messages_key(account.id, folder)
        cached = await cache.get(key)
        if cached is not None:
            return [MailMessage(**m) for m in cached]

        client = await self.get_client(account)
        messages = await client.fetch_messages(folder, max_results)
        await cache.set(key, [m.model_dump(by_alias=True) for m in messages], ttl=mail_cache.MESSAGES_TTL)

        account.last_synced_at = datetime.utcnow()
        await self.db.commit()
        return messages

    async def get_folders(self, account: MailAccount) -> List[MailFolder]:
        key = mail_cache.account_key(account.id)
        cached = await cache.get(key)
        if cached is not None:
            return [MailFolder(**f) for f in cached]

        client = await self.get_client(account)
        folders = await client.get_folders()
        await cache.set(key, [f.model_dump() for f in folders], ttl=mail_cache.ACCOUNT_TTL)
        return folders

    async def bulk_action(self, account: MailAccount, message_ids: List[str], action: str) -> int:
        client = await self.get_client(account)
        if action == "markRead":
            processed = await client.mark_as_read(message_ids)
        elif action == "markUnread":
            processed = await client.mark_as_unread(message_ids)
        elif action == "moveToJunk":
            processed = await client.move_to_junk(message_ids)
        elif action == "delete":
            processed = await client.delete_messages(message_ids)
        else:
            raise ValueError(f"Unknown action: {action}")

        await mail_cache.invalidate_messages(account.id)
        await mail_cache.invalidate_summary(self.user_id)
        return processed

    async def empty_folder(self, account: MailAccount, folder: str) -> int:
        if folder not in EMPTYABLE_FOLDERS:
            raise ValueError("Only junk and trash folders can be emptied")
        client = await self.get_client(account)
        deleted = await client.empty_folder(folder)
        await mail_cache.invalidate_messages(account.id)
        await mail_cache.invalidate_summary(self.user_id)
        return deleted

    async def search(self, account: MailAccount, query: str, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        client = await self.get_client(account)
        return await client.search_messages(query, folder, max_results)
