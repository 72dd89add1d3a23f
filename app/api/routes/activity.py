import asyncio
import json

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import StreamingResponse

from app.api import deps
from app.core.auth import require_admin
from app.schemas.activity import ActivityEventOut
from app.schemas.user import UserContext
from app.services.activity import list_recent_activity
from app.services.event_bus import event_bus

router = APIRouter(prefix="/api/admin/recruitment/activity", tags=["activity"])


@router.get("", response_model=list[ActivityEventOut])
async def list_activity(
    cycle_id: int | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    rows = await list_recent_activity(session, cycle_id=cycle_id, entity_type=entity_type, limit=limit)
    out: list[ActivityEventOut] = []
    for event in rows:
        meta = None
        if event.meta_json:
            try:
                meta = json.loads(event.meta_json)
            except json.JSONDecodeError:
                meta = {"raw": event.meta_json}
        out.append(
            ActivityEventOut(
                activity_event_id=event.activity_event_id,
                cycle_id=event.cycle_id,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                action_type=event.action_type,
                from_status=event.from_status,
                to_status=event.to_status,
                performed_by_email=event.performed_by_email,
                meta_json=meta,
                created_at=event.created_at,
            )
        )
    return out


@router.get("/stream")
async def stream_activity(
    request: Request,
    _user: UserContext = Depends(require_admin()),
):
    queue = await event_bus.subscribe()

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=15)
                    yield f"data: {data}\n\n"
                except asyncio.TimeoutError:
                    yield "event: ping\ndata: {}\n\n"
        finally:
            await event_bus.unsubscribe(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
