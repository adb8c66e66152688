# db/schemas/user.py
import uuid
from typing import Optional
from contest_pulse.db.schemas._base import OrmModel
from contest_pulse.db.enums import UserRole
from contest_pulse.utils.sentinels import Missing

class UserBase(OrmModel):
    username: str
    display_name: Optional[str] = None
    tg_id: Optional[int] = None
    role: UserRole = UserRole.PARTICIPANT

class UserCreate(UserBase): ...

class UserUpdate(OrmModel):
    id: uuid.UUID
    display_name: str | Missing | None = Missing()
    tg_id: int | Missing | None = Missing()
    role: UserRole | Missing = Missing()

class UserRead(UserBase):
    id: uuid.UUID

class JuryAssignmentRead(OrmModel):
    id: uuid.UUID
    user_id: uuid.UUID
    contest_id: uuid.UUID
