from __future__ import annotations

import copy
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import NotFound, ValidationError
from app.models.content import RecContentRecord

MEMBER_LEVELS = "member_levels"
RECRUITMENT_TIMELINE = "recruitment_timeline"

DEFAULT_CONTENT: dict[str, dict[str, Any]] = {
    MEMBER_LEVELS: {
        "hero_title": "Member Levels",
        "general_title": "General Member",
        "general_bullets": [
            "Attend general meetings and social events",
            "Join workshops on AI and business fundamentals",
            "Access the member newsletter and job board",
        ],
        "project_title": "Project Team Member",
        "project_bullets": [
            "Work on a semester-long client or research project",
            "Receive mentorship from senior members",
            "Commit roughly 6-8 hours per week",
        ],
        "footer_lines": [
            "Project team members are selected through the recruitment process.",
            "General membership is open to all students.",
        ],
    },
    RECRUITMENT_TIMELINE: {
        "hero_title": "Recruitment Timeline",
        "open_round_title": "Open Round",
        "open_items": [
            "Mass meeting",
            "Coffee chats",
            "Application due",
        ],
        "closed_round_title": "Closed Round",
        "closed_items": [
            "First round interviews",
            "Second round interviews",
            "Final decisions",
        ],
    },
}


class ContentStore:
    """Persisted page content with built-in defaults until an admin saves a version."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in DEFAULT_CONTENT:
            raise NotFound(f"Unknown content key: {key}")

    async def get(self, key: str) -> dict[str, Any]:
        self._check_key(key)
        record = await self.session.get(RecContentRecord, key)
        if record is None:
            return {**copy.deepcopy(DEFAULT_CONTENT[key]), "last_updated": None}
        return {**copy.deepcopy(DEFAULT_CONTENT[key]), **(record.data or {}), "last_updated": record.updated_at}

    async def update(self, key: str, partial: dict[str, Any], *, actor_email: str | None = None) -> dict[str, Any]:
        self._check_key(key)
        unknown = set(partial) - set(DEFAULT_CONTENT[key])
        if unknown:
            raise ValidationError(f"Unknown content fields: {', '.join(sorted(unknown))}")
        now = utc_now_naive()
        record = await self.session.get(RecContentRecord, key)
        if record is None:
            record = RecContentRecord(key=key, data={**copy.deepcopy(DEFAULT_CONTENT[key]), **partial})
            self.session.add(record)
        else:
            # Reassign so the JSON column is flagged dirty.
            record.data = {**(record.data or {}), **partial}
        record.updated_by = actor_email
        record.updated_at = now
        await self.session.commit()
        return {**copy.deepcopy(DEFAULT_CONTENT[key]), **record.data, "last_updated": now}
