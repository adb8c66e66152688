import uuid
from datetime import datetime
from typing import List
from sqlalchemy import Boolean, Enum as SAEnum, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base
from contest_pulse.db.enums import ProblemCategory
from contest_pulse.utils.clock import utc_now

class Team(Base):
    __tablename__ = "team"
    __table_args__ = (UniqueConstraint("contest_id", "slug", name="uq_team_contest_slug"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[ProblemCategory] = mapped_column(
        SAEnum(ProblemCategory, name="problem_category"), nullable=False, default=ProblemCategory.CORE
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utc_now)
    # blocked teams cannot submit
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    contest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False, index=True
    )

    contest: Mapped["Contest"] = relationship(back_populates="teams")
    team_users: Mapped[List["TeamUser"]] = relationship(
        back_populates="team", cascade="all, delete-orphan", passive_deletes=True
    )
