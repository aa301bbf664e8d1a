import asyncio
import logging
from datetime import datetime

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select

from dashboard.core.config import get_settings
from dashboard.core.database import SessionLocal
from dashboard.models.billing import Subscription, UserCredits
from dashboard.models.user import User
from dashboard.services.billing.credits import CreditsService, format_credits
from dashboard.services.billing.subscription import PAID_TIERS, get_tier_credits
from dashboard.services.news.fetcher import fetch_news, get_fetcher_settings
from dashboard.utils.email import send_email

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("worker")

settings = get_settings()
timezone = pytz.timezone(settings.WORKER_TIMEZONE)
scheduler = AsyncIOScheduler(timezone=timezone)

NEWS_JOB_ID = "fetch-news"

TRIAL_ENDED_SUBJECT = "Your Dashboard trial has ended"


def trial_ended_html(display_name: str, free_credits_cents: int) -> str:
    return (
        f"<p>Hi {display_name},</p>"
        f"<p>Your free trial has ended. Your account is now on the Free plan with "
        f"{format_credits(free_credits_cents)} in AI credits each month.</p>"
        f"<p>Upgrade any time from <a href=\"{settings.SITE_URL.rstrip('/')}/pricing\">the pricing page</a>.</p>"
    )


async def reset_monthly_credits_for_paid_users():
    logger.info("Starting monthly credit reset...")
    async with SessionLocal() as db:
        result = await db.execute(
            select(Subscription.user_id).where(
                Subscription.tier.in_(PAID_TIERS),
                Subscription.status == "active",
            )
        )
        user_ids = list(result.scalars().all())

        credits = CreditsService(db)
        for user_id in user_ids:
            try:
                await credits.reset_monthly_credits(user_id)
            except Exception as e:
                logger.error(f"Monthly credit reset failed for user {user_id}: {e}")
                await db.rollback()
    logger.info(f"Monthly credit reset finished for {len(user_ids)} users")


async def expire_trials():
    """Ends every trial whose end date has passed and emails the user."""
    logger.info("Checking for expired trials...")
    async with SessionLocal() as db:
        # plain rows: a rollback expires ORM instances
        result = await db.execute(
            select(User.id, User.email, User.display_name)
            .join(UserCredits, UserCredits.user_id == User.id)
            .where(UserCredits.trial_ends_at.is_not(None), UserCredits.trial_ends_at <= datetime.utcnow())
            .order_by(User.id)
        )
        users = result.all()

        credits = CreditsService(db)
        expired = 0
        for user_id, email, display_name in users:
            try:
                await credits.handle_trial_expiry(user_id)
            except Exception as e:
                logger.error(f"Trial expiry failed for user {user_id}: {e}")
                await db.rollback()
                continue
            expired += 1

            try:
                await send_email(
                    to=email,
                    subject=TRIAL_ENDED_SUBJECT,
                    html=trial_ended_html(display_name or email, get_tier_credits("free")),
                )
            except Exception as e:
                logger.error(f"Trial expiry email failed for user {user_id}: {e}")
    logger.info(f"Expired {expired} of {len(users)} trials")


async def run_news_fetch():
    async with SessionLocal() as db:
        try:
            result = await fetch_news(db)
            logger.info(
                f"News fetch: {result.sources_processed} sources, {result.total_new_items} new items, "
                f"{result.notifications_created} notifications in {result.duration_ms}ms"
            )
        except Exception as e:
            logger.error(f"Error in news fetch job: {e}")


async def schedule_news_fetch():
    async with SessionLocal() as db:
        fetcher_settings = await get_fetcher_settings(db)
    scheduler.add_job(
        run_news_fetch,
        IntervalTrigger(minutes=fetcher_settings.fetch_interval_minutes, timezone=timezone),
        id=NEWS_JOB_ID,
        replace_existing=True,
    )
    logger.info(f"News fetch scheduled every {fetcher_settings.fetch_interval_minutes} minutes")


async def main_async():
    logger.info("Initializing Worker...")

    scheduler.add_job(reset_monthly_credits_for_paid_users, CronTrigger(day=1, hour=0, minute=0, timezone=timezone))
    scheduler.add_job(expire_trials, CronTrigger(hour=0, minute=15, timezone=timezone))
    await schedule_news_fetch()

    scheduler.start()
    logger.info("Worker started. Press Ctrl+C to exit.")

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass


def main():
    try:
        asyncio.run(main_async())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Worker stopped.")


if __name__ == "__main__":
    main()
