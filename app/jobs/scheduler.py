from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.jobs.tasks import close_expired_cycles, complete_past_bookings


def start_scheduler(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        close_expired_cycles,
        IntervalTrigger(minutes=15),
        args=[session_factory],
        id="close_expired_cycles",
        replace_existing=True,
    )
    scheduler.add_job(
        complete_past_bookings,
        IntervalTrigger(minutes=30),
        args=[session_factory],
        id="complete_past_bookings",
        replace_existing=True,
    )
    scheduler.start()
    return scheduler
