import uuid
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contest_pulse.db.models._base import Base
from contest_pulse.db.enums import ProblemCategory

class Problem(Base):
    __tablename__ = "problem"
    __table_args__ = (CheckConstraint("points >= 0", name="ck_problem_points"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    category: Mapped[ProblemCategory] = mapped_column(
        SAEnum(ProblemCategory, name="problem_category"), nullable=False, default=ProblemCategory.CORE
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    contest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False, index=True
    )

    contest: Mapped["Contest"] = relationship(back_populates="problems")
