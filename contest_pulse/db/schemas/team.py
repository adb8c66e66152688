# db/schemas/team.py
import uuid
from contest_pulse.db.enums import ProblemCategory
from contest_pulse.db.schemas._base import OrmModel

class TeamBase(OrmModel):
    title: str
    slug: str
    contest_id: uuid.UUID
    category: ProblemCategory = ProblemCategory.CORE

class TeamCreate(TeamBase): ...
class TeamRead(TeamBase):
    id: uuid.UUID
    is_blocked: bool = False
