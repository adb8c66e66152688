# bot/services/grading.py
import logging
from uuid import UUID
from typing import Optional, List

from contest_pulse.config import Settings
from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import SubmissionStatus
from contest_pulse.db.schemas import event as events
from contest_pulse.db.schemas.submission import GradeResult, SubmissionRead
from contest_pulse.bot.services.access import Caller, require_grader, require_team_member
from contest_pulse.bot.services.audit_log import instrument_service_class
from contest_pulse.bot.services.broadcast import EventPublisher, NullPublisher, publish_all
from contest_pulse.errors import InvalidTransition, NotFound
from contest_pulse.scoring.rules import PenaltyRule, make_penalty_rule, validate_manual_score

logger = logging.getLogger(__name__)

GRADABLE = (SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED)


class GradingService:
	"""
	Submission verdict state machine: PENDING -> ACCEPTED | REJECTED, with
	re-grading, retry requests and retry grants.

	Every check that can fail runs before the database is touched. Events are
	published only after the transaction committed.
	"""

	def __init__(
		self,
		publisher: Optional[EventPublisher] = None,
		database: Optional[DataBase] = None,
		penalty_rule: Optional[PenaltyRule] = None,
	) -> None:
		self._publisher = publisher or NullPublisher()
		self._database = database or DataBase()
		self._penalty_rule = penalty_rule or make_penalty_rule(Settings().penalty_per_rejection)

	async def grade(
		self,
		caller: Caller,
		submission_id: UUID,
		verdict: SubmissionStatus,
		manual_score: Optional[float] = None,
		comment: Optional[str] = None,
	) -> GradeResult:
		context = await self._database.get_submission_context(submission_id)
		if context is None:
			raise NotFound("Submission not found", submission_id=submission_id)
		_, problem, team, contest = context

		require_grader(caller, contest.id)
		if verdict not in GRADABLE:
			raise InvalidTransition(
				f"Cannot grade a submission as {verdict}",
				verdict=str(verdict),
				reason_code="bad_verdict",
			)
		if verdict == SubmissionStatus.ACCEPTED:
			validate_manual_score(problem.points, manual_score)
		else:
			manual_score = None

		comment = (comment or "").strip() or None
		result = await self._database.grade_submission(
			submission_id,
			verdict,
			penalty_rule=self._penalty_rule,
			manual_score=manual_score,
			comment=comment,
			judged_by_id=caller.user_id,
		)
		logger.info(
			"Submission %s graded %s -> %s by %s (team %s: solved=%d penalty=%d)",
			submission_id,
			result.previous_status,
			verdict,
			caller.user_id,
			team.id,
			result.solved_count,
			result.total_penalty,
		)

		await publish_all(
			self._publisher,
			events.submission_graded(contest.id, team.id, problem.id, submission_id, verdict),
			events.leaderboard_score(contest.id, team.id, result.solved_count, result.total_penalty),
		)
		return result

	async def request_retry(self, caller: Caller, submission_id: UUID, reason: str) -> SubmissionRead:
		context = await self._database.get_submission_context(submission_id)
		if context is None:
			raise NotFound("Submission not found", submission_id=submission_id)
		_, problem, team, contest = context

		require_team_member(caller, team.id)
		reason = (reason or "").strip()
		min_length = Settings().retry_reason_min_length
		if len(reason) < min_length:
			raise InvalidTransition(
				f"Retry reason must be at least {min_length} characters",
				reason_code="reason_too_short",
				min_length=min_length,
			)

		updated = await self._database.request_retry(submission_id, reason)
		logger.info("Retry requested for submission %s by team %s", submission_id, team.id)

		await publish_all(
			self._publisher,
			events.retry_requested(contest.id, submission_id, team.id, team.title, problem.title),
		)
		return updated

	async def grant_retry(self, caller: Caller, submission_id: UUID) -> SubmissionRead:
		context = await self._database.get_submission_context(submission_id)
		if context is None:
			raise NotFound("Submission not found", submission_id=submission_id)
		_, _, team, contest = context

		require_grader(caller, contest.id)
		# admins may reopen any graded submission without a team request
		updated = await self._database.grant_retry(submission_id, caller.user_id, require_request=not caller.is_admin)
		logger.info("Retry granted for submission %s by %s", submission_id, caller.user_id)

		await publish_all(self._publisher, events.retry_granted(contest.id, submission_id, team.id))
		return updated

	async def list_retry_requests(self, caller: Caller) -> List[SubmissionRead]:
		return await self._database.list_retry_requests(caller.grading_scope())

	async def list_pending(self, caller: Caller) -> List[SubmissionRead]:
		return await self._database.list_pending_submissions(caller.grading_scope())


instrument_service_class(GradingService, prefix="services.grading", actor_fields=("caller",))
