import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base
from contest_pulse.db.enums import SubmissionStatus
from contest_pulse.utils.clock import utc_now

class Submission(Base):
    __tablename__ = "submission"
    __table_args__ = (Index("ix_submission_team_problem", "team_id", "problem_id", "submitted_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("team.id", ondelete="CASCADE"), nullable=False)
    problem_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("problem.id", ondelete="CASCADE"), nullable=False)
    submitted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utc_now)

    status: Mapped[SubmissionStatus] = mapped_column(
        SAEnum(SubmissionStatus, name="submission_status"),
        nullable=False,
        default=SubmissionStatus.PENDING,
    )
    auto_score: Mapped[Optional[float]] = mapped_column(Numeric(10, 4, asdecimal=False), nullable=True)
    final_score: Mapped[Optional[float]] = mapped_column(Numeric(10, 4, asdecimal=False), nullable=True)
    penalty_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    jury_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    judged_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    judged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    can_retry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    retry_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    retry_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    retry_granted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    team = relationship("Team")
    problem = relationship("Problem")
