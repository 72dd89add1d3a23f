from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import split_csv
from app.models.site_setting import SiteSetting
from app.services.site_settings import MAINTENANCE_EXEMPT_PATHS_KEY, MAINTENANCE_MESSAGE_KEY, MAINTENANCE_MODE_KEY

logger = logging.getLogger("abg.maintenance")

DEFAULT_MAINTENANCE_MESSAGE = "We are currently performing maintenance. Please check back soon."


@dataclass(frozen=True)
class MaintenanceStatus:
    enabled: bool
    message: str = DEFAULT_MAINTENANCE_MESSAGE
    exempt_paths: list[str] = field(default_factory=list)


async def read_maintenance_status(session: AsyncSession) -> MaintenanceStatus:
    rows = (
        await session.execute(
            select(SiteSetting.key, SiteSetting.value).where(
                SiteSetting.key.in_((MAINTENANCE_MODE_KEY, MAINTENANCE_MESSAGE_KEY, MAINTENANCE_EXEMPT_PATHS_KEY))
            )
        )
    ).all()
    values = {key: value for key, value in rows}
    return MaintenanceStatus(
        enabled=(values.get(MAINTENANCE_MODE_KEY) or "").strip() == "true",
        message=values.get(MAINTENANCE_MESSAGE_KEY) or DEFAULT_MAINTENANCE_MESSAGE,
        exempt_paths=split_csv(values.get(MAINTENANCE_EXEMPT_PATHS_KEY)),
    )


async def get_maintenance_status(session_factory: async_sessionmaker[AsyncSession] | None) -> MaintenanceStatus:
    """The gate is advisory: any failure to read it means maintenance is off."""
    if session_factory is None:
        return MaintenanceStatus(enabled=False)
    try:
        async with session_factory() as session:
            return await read_maintenance_status(session)
    except Exception:
        logger.warning("maintenance_status_unavailable", exc_info=True)
        return MaintenanceStatus(enabled=False)


def is_exempt_path(path: str, prefixes: list[str], redirect_path: str) -> bool:
    if path == redirect_path or path.startswith(redirect_path.rstrip("/") + "/"):
        return True
    # Static assets (favicon.ico, /_next/..., images) always load.
    last_segment = path.rsplit("/", 1)[-1]
    if "." in last_segment:
        return True
    for prefix in prefixes:
        normalized = prefix.rstrip("/") or "/"
        if normalized == "/":
            return True
        if path == normalized or path.startswith(normalized + "/"):
            return True
    return False
