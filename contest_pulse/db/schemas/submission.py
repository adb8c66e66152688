# db/schemas/submission.py
import uuid
from datetime import datetime
from typing import Optional
from contest_pulse.db.schemas._base import OrmModel
from contest_pulse.db.enums import SubmissionStatus

class SubmissionBase(OrmModel):
    team_id: uuid.UUID
    problem_id: uuid.UUID
    file_path: str
    submitted_by_id: Optional[uuid.UUID] = None
    auto_score: float | None = None

class SubmissionCreate(SubmissionBase):
    submitted_at: datetime | None = None

class SubmissionRead(SubmissionBase):
    id: uuid.UUID
    submitted_at: datetime
    status: SubmissionStatus = SubmissionStatus.PENDING
    final_score: float | None = None
    penalty_minutes: int = 0
    jury_comment: str | None = None
    judged_by_id: Optional[uuid.UUID] = None
    judged_at: datetime | None = None
    can_retry: bool = False
    retry_requested: bool = False
    retry_reason: str | None = None
    retry_requested_at: datetime | None = None
    retry_granted_by_id: Optional[uuid.UUID] = None

class GradeResult(OrmModel):
    """Outcome of one committed grading transaction."""

    submission: SubmissionRead
    contest_id: uuid.UUID
    previous_status: SubmissionStatus
    solved_count: int
    total_penalty: int
    solved_delta: int = 0
    penalty_delta: int = 0
