import uuid
from sqlalchemy import ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base

class JuryAssignment(Base):
    __tablename__ = "jury_assignment"
    __table_args__ = (UniqueConstraint("user_id", "contest_id", name="uq_jury_assignment"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False)

    user = relationship("User", back_populates="jury_assignments")
