from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.datetime_utils import utc_now_naive
from app.models.cycle import RecCycle
from app.services import slots as slot_service

logger = logging.getLogger("abg.jobs")


async def close_expired_cycles(session_factory: async_sessionmaker[AsyncSession]) -> int:
    now = utc_now_naive()
    async with session_factory() as session:
        result = await session.execute(
            update(RecCycle)
            .where(RecCycle.is_active.is_(True), RecCycle.portal_close_at <= now)
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    closed = result.rowcount or 0
    if closed:
        logger.info("cycles_closed", extra={"count": closed})
    return closed


async def complete_past_bookings(session_factory: async_sessionmaker[AsyncSession]) -> int:
    async with session_factory() as session:
        completed = await slot_service.complete_past_bookings(session)
    if completed:
        logger.info("bookings_completed", extra={"count": completed})
    return completed
