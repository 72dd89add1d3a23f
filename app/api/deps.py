from typing import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.db.session import get_session
from app.models.cycle import RecCycle
from app.schemas.user import UserContext
from app.services.cycles import require_active_cycle


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    async for session in get_session(request):
        yield session


async def get_user(user: UserContext = Depends(get_current_user)) -> UserContext:
    return user


async def get_active_cycle(session: AsyncSession = Depends(get_db_session)) -> RecCycle:
    return await require_active_cycle(session)
