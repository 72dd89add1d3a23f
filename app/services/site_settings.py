from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict
from app.models.site_setting import SiteSetting
from app.services.activity import log_activity, publish_activity

MAINTENANCE_MODE_KEY = "maintenance_mode"
MAINTENANCE_MESSAGE_KEY = "maintenance_message"
MAINTENANCE_EXEMPT_PATHS_KEY = "maintenance_exempt_paths"

# Settings anonymous visitors may read.
PUBLIC_SETTING_KEYS = frozenset({MAINTENANCE_MODE_KEY, MAINTENANCE_MESSAGE_KEY, "site_banner", "contact_email"})


async def get_setting(session: AsyncSession, key: str) -> SiteSetting | None:
    return (await session.execute(select(SiteSetting).where(SiteSetting.key == key))).scalars().first()


async def get_setting_value(session: AsyncSession, key: str, default: str | None = None) -> str | None:
    setting = await get_setting(session, key)
    return setting.value if setting else default


async def list_settings(session: AsyncSession) -> list[SiteSetting]:
    rows = await session.execute(select(SiteSetting).order_by(SiteSetting.key.asc()))
    return list(rows.scalars().all())


async def upsert_setting(
    session: AsyncSession, *, key: str, value: str, type: str = "TEXT", actor_email: str | None = None
) -> SiteSetting:
    key = key.strip()
    setting = await get_setting(session, key)
    previous = setting.value if setting else None
    if setting is None:
        setting = SiteSetting(key=key, value=value, type=type)
        session.add(setting)
    else:
        setting.value = value
        setting.type = type
        setting.updated_at = utc_now_naive()
    try:
        await session.flush()
    except IntegrityError:
        # Lost an insert race on the unique key; update the winner's row instead.
        await session.rollback()
        setting = await get_setting(session, key)
        if setting is None:
            raise Conflict("Setting could not be saved; retry")
        previous = setting.value
        setting.value = value
        setting.type = type
        setting.updated_at = utc_now_naive()
    event = await log_activity(
        session,
        entity_type="setting",
        entity_id=key,
        action_type="setting_updated",
        from_status=previous,
        to_status=value if len(value) <= 50 else None,
        performed_by_email=actor_email,
    )
    await session.commit()
    await publish_activity(event)
    return setting
