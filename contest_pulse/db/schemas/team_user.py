# db/schemas/team_user.py
import uuid
from contest_pulse.db.schemas._base import OrmModel
from contest_pulse.db.enums import ContestantRole


class TeamUserBase(OrmModel):
    role: ContestantRole = ContestantRole.MEMBER
    user_id: uuid.UUID
    team_id: uuid.UUID

class TeamUserCreate(TeamUserBase): ...

class TeamUserRead(TeamUserBase):
    id: uuid.UUID

    def __hash__(self) -> int:
        return hash(self.id)
