import uuid
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base
from contest_pulse.utils.clock import utc_now

class TeamScore(Base):
    """Materialized (team, contest) aggregate. A cache over submission history."""

    __tablename__ = "team_score"
    __table_args__ = (UniqueConstraint("team_id", "contest_id", name="uq_team_score_team_contest"),)

    # autoincrement id doubles as the stable insertion order for ranking ties
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("team.id", ondelete="CASCADE"), nullable=False)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False, index=True)
    solved_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_penalty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utc_now, onupdate=utc_now)

    team = relationship("Team")
