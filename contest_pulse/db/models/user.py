import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import Enum as SAEnum, String, BigInteger, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base
from contest_pulse.db.enums import UserRole
from contest_pulse.utils.clock import utc_now

class User(Base):
    __tablename__ = "user"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    tg_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, unique=True)
    role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name="user_role"), nullable=False, default=UserRole.PARTICIPANT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utc_now)

    memberships: Mapped[List["TeamUser"]] = relationship(back_populates="user", passive_deletes=True)
    jury_assignments: Mapped[List["JuryAssignment"]] = relationship(back_populates="user", passive_deletes=True)
    audit_logs: Mapped[List["AuditLog"]] = relationship(back_populates="actor", passive_deletes=True)
