import asyncio
from typing import List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.github_account import GitHubAccount
from dashboard.schemas.github import (
    AccountError,
    FetchPRsResult,
    GitHubAccountResponse,
    GitHubAccountWithPRs,
    PRCategoryData,
)
from dashboard.services.github_client import GitHubClient
from dashboard.utils.logger import get_logger

logger = get_logger("github")

CATEGORY_LABELS = {
    "review-requested": "Waiting For My Review",
    "created": "Created By Me",
    "all-open": "All Open",
}


def default_account_label(existing_count: int) -> str:
    return "Personal" if existing_count == 0 else f"Account {existing_count + 1}"


class GitHubService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def get_accounts(self) -> List[GitHubAccount]:
        result = await self.db.execute(
            select(GitHubAccount)
            .where(GitHubAccount.user_id == self.user_id)
            .order_by(GitHubAccount.created_at, GitHubAccount.id)
        )
        return list(result.scalars().all())

    async def _get_owned(self, account_id: int) -> GitHubAccount:
        result = await self.db.execute(
            select(GitHubAccount).where(GitHubAccount.id == account_id, GitHubAccount.user_id == self.user_id)
        )
        account = result.scalar_one_or_none()
        if not account:
            raise ValueError("GitHub account not found")
        return account

    async def upsert_account(self, github_user: Dict[str, Any], access_token: str) -> GitHubAccount:
        """Refreshes a reconnected account or adds a new one with the next default label."""
        result = await self.db.execute(
            select(GitHubAccount).where(
                GitHubAccount.user_id == self.user_id,
                GitHubAccount.github_user_id == github_user["id"],
            )
        )
        account = result.scalar_one_or_none()

        if account:
            account.github_username = github_user["login"]
            account.avatar_url = github_user.get("avatar_url")
            account.access_token = access_token
        else:
            count = await self.db.scalar(
                select(func.count()).select_from(GitHubAccount).where(GitHubAccount.user_id == self.user_id)
            )
            account = GitHubAccount(
                user_id=self.user_id,
                github_user_id=github_user["id"],
                github_username=github_user["login"],
                avatar_url=github_user.get("avatar_url"),
                account_label=default_account_label(count or 0),
                access_token=access_token,
            )
            self.db.add(account)

        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def update_label(self, account_id: int, label: str) -> GitHubAccount:
        account = await self._get_owned(account_id)
        account.account_label = label
        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def delete_account(self, account_id: int) -> None:
        account = await self._get_owned(account_id)
        await self.db.delete(account)
        await self.db.commit()

    async def get_pull_requests(self) -> FetchPRsResult:
        """PRs per connected account; a failing account is reported in ``errors`` and skipped."""
        result = FetchPRsResult()
        for account in await self.get_accounts():
            if not account.access_token:
                result.errors.append(AccountError(account_id=account.id, message="Failed to retrieve access token"))
                continue

            client = GitHubClient(account.access_token)
            try:
                review_requested, created, all_open = await asyncio.gather(
                    client.review_requested(account.github_username),
                    client.created(account.github_username),
                    client.all_open(account.github_username),
                )
            except Exception as e:
                logger.error(f"Error fetching PRs for GitHub account {account.id}: {e}")
                result.errors.append(AccountError(account_id=account.id, message=str(e) or "Unknown error"))
                continue

            result.accounts.append(GitHubAccountWithPRs(
                account=GitHubAccountResponse.model_validate(account),
                categories=[
                    PRCategoryData(category="review-requested", label=CATEGORY_LABELS["review-requested"], items=review_requested),
                    PRCategoryData(category="created", label=CATEGORY_LABELS["created"], items=created),
                    PRCategoryData(category="all-open", label=CATEGORY_LABELS["all-open"], items=all_open),
                ],
            ))
        return result
