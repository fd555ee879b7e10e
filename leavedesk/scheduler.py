"""Background jobs (APScheduler), started from the app lifespan."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from leavedesk.config import settings
from leavedesk.database import async_session_factory
from leavedesk.leave.reaper import reconcile_expired_cover_requests
from leavedesk.leave.schemas import ReconciliationSummary

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


async def expire_cover_requests_job(session_factory=async_session_factory) -> ReconciliationSummary:
    """One reaper run in its own session and transaction."""
    async with session_factory() as session:
        try:
            summary = await reconcile_expired_cover_requests(session)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Scheduled cover expiry run failed")
            raise
    if summary.total_expired:
        logger.info(
            "Scheduled cover expiry: cleaned %d of %d (errors=%d)",
            summary.cleaned, summary.total_expired, summary.errors,
        )
    return summary


def configure_scheduler() -> AsyncIOScheduler:
    if scheduler.get_job("expire_cover_requests") is None:
        scheduler.add_job(
            expire_cover_requests_job,
            "interval",
            minutes=settings.REAPER_INTERVAL_MINUTES,
            id="expire_cover_requests",
            max_instances=1,
            coalesce=True,
        )
    return scheduler
