# db/schemas/event.py
import uuid
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field
from contest_pulse.db.enums import ContestAction, EventType, SubmissionStatus
from contest_pulse.utils.clock import utc_now

class ContestEvent(BaseModel):
    """A freshness notification delivered to every subscriber of a contest room."""

    type: EventType
    contest_id: uuid.UUID
    payload: dict[str, Any] = Field(default_factory=dict)
    seq: Optional[int] = None
    emitted_at: datetime = Field(default_factory=utc_now)

    def wire(self) -> dict[str, Any]:
        """JSON-ready ``{type, payload, timestamp}`` message."""
        body = {"contestId": str(self.contest_id), **self.payload}
        return {
            "type": self.type.value,
            "payload": body,
            "seq": self.seq,
            "timestamp": self.emitted_at.isoformat(),
        }


def submission_created(contest_id: uuid.UUID, team_id: uuid.UUID, team_name: str, problem_id: uuid.UUID, submission_id: uuid.UUID) -> ContestEvent:
    return ContestEvent(
        type=EventType.SUBMISSION_CREATED,
        contest_id=contest_id,
        payload={
            "teamId": str(team_id),
            "teamName": team_name,
            "problemId": str(problem_id),
            "submissionId": str(submission_id),
        },
    )


def submission_graded(contest_id: uuid.UUID, team_id: uuid.UUID, problem_id: uuid.UUID, submission_id: uuid.UUID, verdict: SubmissionStatus) -> ContestEvent:
    return ContestEvent(
        type=EventType.SUBMISSION_GRADED,
        contest_id=contest_id,
        payload={
            "teamId": str(team_id),
            "problemId": str(problem_id),
            "submissionId": str(submission_id),
            "verdict": verdict.name,
        },
    )


def retry_requested(contest_id: uuid.UUID, submission_id: uuid.UUID, team_id: uuid.UUID, team_name: str, problem_title: str) -> ContestEvent:
    return ContestEvent(
        type=EventType.RETRY_REQUESTED,
        contest_id=contest_id,
        payload={
            "submissionId": str(submission_id),
            "teamId": str(team_id),
            "teamName": team_name,
            "problemTitle": problem_title,
        },
    )


def retry_granted(contest_id: uuid.UUID, submission_id: uuid.UUID, team_id: uuid.UUID) -> ContestEvent:
    return ContestEvent(
        type=EventType.RETRY_GRANTED,
        contest_id=contest_id,
        payload={"submissionId": str(submission_id), "teamId": str(team_id)},
    )


def leaderboard_score(contest_id: uuid.UUID, team_id: uuid.UUID, solved_count: int, total_penalty: int) -> ContestEvent:
    return ContestEvent(
        type=EventType.LEADERBOARD_UPDATE,
        contest_id=contest_id,
        payload={"teamId": str(team_id), "solvedCount": solved_count, "totalPenalty": total_penalty},
    )


def leaderboard_freeze(contest_id: uuid.UUID, is_frozen: bool) -> ContestEvent:
    return ContestEvent(type=EventType.LEADERBOARD_UPDATE, contest_id=contest_id, payload={"isFrozen": is_frozen})


def status_update(contest_id: uuid.UUID, is_paused: bool | None = None, end_at: datetime | None = None, is_active: bool | None = None) -> ContestEvent:
    payload: dict[str, Any] = {}
    if is_paused is not None:
        payload["isPaused"] = is_paused
    if end_at is not None:
        payload["endTime"] = end_at.isoformat()
    if is_active is not None:
        payload["isActive"] = is_active
    return ContestEvent(type=EventType.STATUS_UPDATE, contest_id=contest_id, payload=payload)


def contest_update(contest_id: uuid.UUID, action: ContestAction, **extra: Any) -> ContestEvent:
    return ContestEvent(type=EventType.CONTEST_UPDATE, contest_id=contest_id, payload={"action": action.value, **extra})


def team_status(contest_id: uuid.UUID, team_id: uuid.UUID, is_blocked: bool) -> ContestEvent:
    return ContestEvent(
        type=EventType.TEAM_STATUS_UPDATE,
        contest_id=contest_id,
        payload={"teamId": str(team_id), "isBlocked": is_blocked},
    )
