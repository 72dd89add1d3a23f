from typing import List, Optional

from pydantic import BaseModel, EmailStr

from app.core.roles import Role, is_admin


class UserContext(BaseModel):
    user_id: str
    email: EmailStr
    roles: List[Role]
    full_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return is_admin(self.roles)


class MeOut(BaseModel):
    user_id: str
    email: EmailStr
    roles: List[Role]
    full_name: Optional[str] = None
    is_admin: bool = False
    active_cycle_id: Optional[int] = None
    application_stage: Optional[str] = None
