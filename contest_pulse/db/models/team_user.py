import uuid
from sqlalchemy import Enum as SAEnum, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base
from contest_pulse.db.enums import ContestantRole

class TeamUser(Base):
    __tablename__ = "team_user"
    __table_args__ = (UniqueConstraint("user_id", "team_id", name="uq_team_user"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role: Mapped[ContestantRole] = mapped_column(SAEnum(ContestantRole, name="contestant_role"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("team.id", ondelete="CASCADE"), nullable=False)

    user = relationship("User", back_populates="memberships")
    team = relationship("Team", back_populates="team_users")
