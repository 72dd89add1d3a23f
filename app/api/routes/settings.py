from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.db.session import session_factory_from
from app.schemas.settings import MaintenanceStatusOut, PublicSettingsOut, SettingOut, SettingUpsert
from app.schemas.user import UserContext
from app.services import site_settings as settings_service
from app.services.maintenance import get_maintenance_status

router = APIRouter(prefix="/api/admin/settings", tags=["settings"])
public_router = APIRouter(prefix="/api/public", tags=["public"])
maintenance_router = APIRouter(tags=["maintenance"])


@router.get("", response_model=list[SettingOut])
async def list_settings(
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await settings_service.list_settings(session)


@router.put("", response_model=SettingOut)
async def upsert_setting(
    payload: SettingUpsert,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await settings_service.upsert_setting(
        session, key=payload.key, value=payload.value, type=payload.type, actor_email=str(user.email)
    )


@public_router.get("/settings", response_model=PublicSettingsOut)
async def public_settings(request: Request, session: AsyncSession = Depends(deps.get_db_session)):
    status = await get_maintenance_status(session_factory_from(request.app))
    rows = await settings_service.list_settings(session)
    return PublicSettingsOut(
        maintenance=MaintenanceStatusOut(enabled=status.enabled, message=status.message),
        settings={row.key: row.value for row in rows if row.key in settings_service.PUBLIC_SETTING_KEYS},
    )


@maintenance_router.get("/maintenance", response_model=MaintenanceStatusOut, response_model_exclude_none=True)
async def maintenance(request: Request):
    status = await get_maintenance_status(session_factory_from(request.app))
    return MaintenanceStatusOut(enabled=status.enabled, message=status.message)
