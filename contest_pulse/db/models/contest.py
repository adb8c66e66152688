import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import Boolean, CheckConstraint, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base

class Contest(Base):
    __tablename__ = "contest"
    __table_args__ = (CheckConstraint("end_at >= start_at", name="ck_contest_window"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    # presence means the public leaderboard is frozen
    frozen_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    problems: Mapped[List["Problem"]] = relationship(back_populates="contest", cascade="all, delete-orphan", passive_deletes=True)
    teams: Mapped[List["Team"]] = relationship(back_populates="contest", cascade="all, delete-orphan", passive_deletes=True)
