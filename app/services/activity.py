from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import RecActivityEvent
from app.services.event_bus import event_bus


async def log_activity(
    session: AsyncSession,
    *,
    entity_type: str,
    entity_id: int | str | None,
    action_type: str,
    cycle_id: int | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    performed_by_email: str | None = None,
    meta_json: Dict[str, Any] | None = None,
) -> RecActivityEvent:
    meta_text: Optional[str] = None
    if meta_json is not None:
        meta_text = json.dumps(meta_json, ensure_ascii=False, separators=(",", ":"), default=str)

    event = RecActivityEvent(
        cycle_id=cycle_id,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        action_type=action_type,
        from_status=from_status,
        to_status=to_status,
        performed_by_email=performed_by_email,
        meta_json=meta_text,
    )
    session.add(event)
    await session.flush()
    return event


async def publish_activity(event: RecActivityEvent) -> None:
    """Announce a logged event once the transaction that wrote it has committed."""
    await event_bus.publish(
        {
            "event_id": event.activity_event_id,
            "cycle_id": event.cycle_id,
            "entity_type": event.entity_type,
            "entity_id": event.entity_id,
            "action_type": event.action_type,
            "to_status": event.to_status,
        }
    )


async def list_recent_activity(
    session: AsyncSession,
    *,
    cycle_id: int | None = None,
    entity_type: str | None = None,
    limit: int = 100,
) -> list[RecActivityEvent]:
    query = select(RecActivityEvent).order_by(RecActivityEvent.created_at.desc(), RecActivityEvent.activity_event_id.desc())
    if cycle_id is not None:
        query = query.where(RecActivityEvent.cycle_id == cycle_id)
    if entity_type:
        query = query.where(RecActivityEvent.entity_type == entity_type)
    return list((await session.execute(query.limit(limit))).scalars().all())
