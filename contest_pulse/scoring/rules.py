"""Scoring rules (pure, no I/O).

Everything in here is deterministic and side-effect free so it can be used
both by the incremental grading path and by the full rebuild of the
``team_score`` cache:

- ``compute_score`` turns a verdict into the submission's final score,
- ``compute_penalty`` is the default ICPC penalty rule
  (elapsed minutes + fixed cost per rejected attempt before the accepted one),
- ``problem_contribution`` derives what one (team, problem) pair contributes
  to the aggregate from its submission history,
- ``compare_teams`` / ``rank_teams`` order the leaderboard:
  solved count desc, total penalty asc, ties keep their input order.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, Protocol, Sequence, TypeVar
from uuid import UUID

from contest_pulse.db.enums import SubmissionStatus
from contest_pulse.errors import InvalidScore, InvalidTransition

DEFAULT_PENALTY_PER_REJECTION = 20


@dataclass(frozen=True)
class Contribution:
    """What one (team, problem) pair adds to the team aggregate."""

    solved: int = 0
    penalty: int = 0

    def __sub__(self, other: "Contribution") -> "Contribution":
        return Contribution(self.solved - other.solved, self.penalty - other.penalty)


NO_CONTRIBUTION = Contribution()


@dataclass(frozen=True)
class Attempt:
    """Minimal view of a submission needed to replay a problem's history."""

    id: UUID
    submitted_at: datetime
    status: SubmissionStatus


class PenaltyRule(Protocol):
    def __call__(self, elapsed_minutes: int, prior_rejections: int) -> int: ...


class Standing(Protocol):
    solved_count: int
    total_penalty: int


T = TypeVar("T", bound=Standing)


def validate_manual_score(problem_points: float, manual_score: float | None) -> None:
    if manual_score is None:
        return
    if isinstance(manual_score, bool) or not isinstance(manual_score, (int, float)):
        raise InvalidScore("Manual score must be a number", score=manual_score, points=problem_points)
    if math.isnan(manual_score) or manual_score < 0 or manual_score > problem_points:
        raise InvalidScore(
            f"Manual score {manual_score} is outside [0, {problem_points}]",
            score=manual_score,
            points=problem_points,
        )


def compute_score(
    problem_points: float,
    verdict: SubmissionStatus,
    manual_override: float | None = None,
    base_score: float | None = None,
) -> float | None:
    """
    Final score of a submission.

    ACCEPTED takes the manual override when present, otherwise the grader's
    base score (the problem's full points when the grader gave none).
    REJECTED always scores 0; PENDING has no score yet.
    """
    validate_manual_score(problem_points, manual_override)
    if verdict == SubmissionStatus.ACCEPTED:
        if manual_override is not None:
            return float(manual_override)
        if base_score is not None:
            return float(min(max(base_score, 0), problem_points))
        return float(problem_points)
    if verdict == SubmissionStatus.REJECTED:
        return 0.0
    return None


def elapsed_minutes(start_at: datetime, submitted_at: datetime) -> int:
    seconds = (submitted_at - start_at).total_seconds()
    return max(0, int(seconds // 60))


def compute_penalty(
    elapsed: int,
    prior_rejections: int = 0,
    per_rejection: int = DEFAULT_PENALTY_PER_REJECTION,
) -> int:
    if elapsed < 0 or prior_rejections < 0:
        raise InvalidTransition("Penalty inputs must not be negative")
    return int(elapsed) + int(per_rejection) * int(prior_rejections)


def make_penalty_rule(per_rejection: int = DEFAULT_PENALTY_PER_REJECTION) -> PenaltyRule:
    def _rule(elapsed: int, prior_rejections: int) -> int:
        return compute_penalty(elapsed, prior_rejections, per_rejection)

    return _rule


def problem_contribution(
    attempts: Iterable[Attempt],
    contest_start: datetime,
    penalty_rule: PenaltyRule,
) -> Contribution:
    """
    Replay one (team, problem) history: the first ACCEPTED attempt counts,
    penalised by the rejections submitted before it. Later attempts after the
    accepted one never change the contribution.
    """
    ordered = sorted(attempts, key=lambda a: (a.submitted_at, str(a.id)))
    rejections = 0
    for attempt in ordered:
        if attempt.status == SubmissionStatus.ACCEPTED:
            penalty = penalty_rule(elapsed_minutes(contest_start, attempt.submitted_at), rejections)
            return Contribution(solved=1, penalty=penalty)
        if attempt.status == SubmissionStatus.REJECTED:
            rejections += 1
    return NO_CONTRIBUTION


def attempt_penalty(
    attempts: Iterable[Attempt],
    target_id: UUID,
    contest_start: datetime,
    penalty_rule: PenaltyRule,
) -> int:
    """Penalty minutes shown on a single accepted submission."""
    ordered = sorted(attempts, key=lambda a: (a.submitted_at, str(a.id)))
    rejections = 0
    for attempt in ordered:
        if attempt.id == target_id:
            if attempt.status != SubmissionStatus.ACCEPTED:
                return 0
            return penalty_rule(elapsed_minutes(contest_start, attempt.submitted_at), rejections)
        if attempt.status == SubmissionStatus.REJECTED:
            rejections += 1
    return 0


def apply_delta(solved: int, penalty: int, old: Contribution, new: Contribution) -> tuple[int, int]:
    delta = new - old
    return solved + delta.solved, penalty + delta.penalty


def compare_teams(a: Standing, b: Standing) -> int:
    if a.solved_count != b.solved_count:
        return -1 if a.solved_count > b.solved_count else 1
    if a.total_penalty != b.total_penalty:
        return -1 if a.total_penalty < b.total_penalty else 1
    return 0


def sort_standings(rows: Sequence[T]) -> list[T]:
    # sorted() is stable, equal standings keep their input order
    return sorted(rows, key=cmp_to_key(compare_teams))


def rank_teams(rows: Sequence[T]) -> list[tuple[int, T]]:
    """1-based positional ranks; ties are not merged."""
    return [(position, row) for position, row in enumerate(sort_standings(rows), start=1)]


__all__ = [
    "Attempt",
    "Contribution",
    "NO_CONTRIBUTION",
    "PenaltyRule",
    "apply_delta",
    "attempt_penalty",
    "compare_teams",
    "compute_penalty",
    "compute_score",
    "elapsed_minutes",
    "make_penalty_rule",
    "problem_contribution",
    "rank_teams",
    "sort_standings",
    "validate_manual_score",
]
