# db/schemas/contest.py
import uuid
from datetime import datetime
from typing import Optional
from pydantic import model_validator
from contest_pulse.db.enums import ProblemCategory
from contest_pulse.db.schemas._base import OrmModel

class ContestBase(OrmModel):
    title: str
    slug: str
    start_at: datetime
    end_at: datetime
    is_active: bool = True

class ContestCreate(ContestBase):
    @model_validator(mode="after")
    def _check_window(self) -> "ContestCreate":
        if self.end_at < self.start_at:
            raise ValueError("end_at must not be earlier than start_at")
        return self

class ContestRead(ContestBase):
    id: uuid.UUID
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    frozen_at: Optional[datetime] = None

    @property
    def is_frozen(self) -> bool:
        return self.frozen_at is not None

class ContestExtensionRead(OrmModel):
    id: uuid.UUID
    contest_id: uuid.UUID
    minutes: int
    operation_id: Optional[str] = None
    actor_id: Optional[uuid.UUID] = None
    previous_end_at: datetime
    new_end_at: datetime
    created_at: datetime

class ProblemBase(OrmModel):
    title: str
    contest_id: uuid.UUID
    category: ProblemCategory = ProblemCategory.CORE
    points: int = 100
    order_index: int = 0

class ProblemCreate(ProblemBase): ...
class ProblemRead(ProblemBase):
    id: uuid.UUID
