from typing import Iterable

from dashboard.utils.cache import cache

SUMMARY_TTL = 300
MESSAGES_TTL = 300
ACCOUNT_TTL = 600


def summary_key(user_id: int) -> str:
    return f"mail:summary:{user_id}"


def messages_key(account_id: int, folder: str) -> str:
    return f"mail:messages:{account_id}:{folder}"


def account_key(account_id: int) -> str:
    return f"mail:account:{account_id}"


async def invalidate_summary(user_id: int) -> None:
    await cache.delete(summary_key(user_id))


async def invalidate_messages(account_id: int) -> int:
    return await cache.delete_pattern(f"mail:messages:{account_id}:*")


async def invalidate_account(account_id: int) -> None:
    await cache.delete(account_key(account_id))
    await invalidate_messages(account_id)


async def invalidate_all_user_caches(user_id: int, account_ids: Iterable[int]) -> None:
    await invalidate_summary(user_id)
    for account_id in account_ids:
        await invalidate_account(account_id)
