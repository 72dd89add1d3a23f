from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class MemberLevelsContent(BaseModel):
    hero_title: str
    general_title: str
    general_bullets: List[str]
    project_title: str
    project_bullets: List[str]
    footer_lines: List[str]
    last_updated: Optional[datetime] = None


class MemberLevelsUpdate(BaseModel):
    hero_title: Optional[str] = None
    general_title: Optional[str] = None
    general_bullets: Optional[List[str]] = None
    project_title: Optional[str] = None
    project_bullets: Optional[List[str]] = None
    footer_lines: Optional[List[str]] = None


class RecruitmentTimelineContent(BaseModel):
    hero_title: str
    open_round_title: str
    open_items: List[str]
    closed_round_title: str
    closed_items: List[str]
    last_updated: Optional[datetime] = None


class RecruitmentTimelineUpdate(BaseModel):
    hero_title: Optional[str] = None
    open_round_title: Optional[str] = None
    open_items: Optional[List[str]] = None
    closed_round_title: Optional[str] = None
    closed_items: Optional[List[str]] = None
