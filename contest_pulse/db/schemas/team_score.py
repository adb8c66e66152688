# db/schemas/team_score.py
import uuid
from datetime import datetime
from contest_pulse.db.schemas._base import OrmModel

class TeamScoreRead(OrmModel):
    id: int
    team_id: uuid.UUID
    contest_id: uuid.UUID
    solved_count: int = 0
    total_penalty: int = 0
    updated_at: datetime | None = None

class LeaderboardRow(OrmModel):
    rank: int
    team_id: uuid.UUID
    team_title: str
    solved_count: int = 0
    total_penalty: int = 0

class Leaderboard(OrmModel):
    contest_id: uuid.UUID
    is_frozen: bool = False
    rows: list[LeaderboardRow] = []
