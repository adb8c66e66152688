import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from contest_pulse.db.models._base import Base
from contest_pulse.utils.clock import utc_now

class ContestExtension(Base):
    __tablename__ = "contest_extension"
    __table_args__ = (UniqueConstraint("contest_id", "operation_id", name="uq_contest_extension_operation"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False, index=True)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    operation_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    previous_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    new_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utc_now)
