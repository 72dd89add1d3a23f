from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SettingUpsert(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    value: str
    type: str = "TEXT"


class SettingOut(BaseModel):
    key: str
    value: str
    type: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MaintenanceStatusOut(BaseModel):
    enabled: bool
    message: str
    exempt_paths: Optional[List[str]] = None


class PublicSettingsOut(BaseModel):
    maintenance: MaintenanceStatusOut
    settings: Dict[str, str]
