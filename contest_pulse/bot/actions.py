"""Inbound call surface of the scoring core.

Every operation takes the caller's role and scope and returns an
:class:`ActionResult`. Domain failures (``ContestPulseError``) become a
failed result with a stable ``error`` kind and a localized message; anything
else is a bug and propagates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Generic, Optional, TypeVar
from uuid import UUID

from contest_pulse.bot.services.access import Caller
from contest_pulse.bot.services.broadcast import EventPublisher, NullPublisher
from contest_pulse.bot.services.contest_control import ContestControlService
from contest_pulse.bot.services.grading import GradingService
from contest_pulse.bot.services.submission import SubmissionService
from contest_pulse.bot.services.team_score import TeamScoreService
from contest_pulse.config import Settings
from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import SubmissionStatus
from contest_pulse.db.schemas.contest import ContestRead
from contest_pulse.db.schemas.submission import GradeResult, SubmissionRead
from contest_pulse.db.schemas.team import TeamRead
from contest_pulse.db.schemas.team_score import Leaderboard, TeamScoreRead
from contest_pulse.errors import ContestPulseError
from contest_pulse.i18n import Localizer
from contest_pulse.scoring.rules import PenaltyRule

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ActionResult(Generic[T]):
	success: bool
	data: Optional[T] = None
	error: Optional[str] = None
	message: Optional[str] = None
	details: Optional[dict[str, Any]] = None


class ContestActions:
	"""Wires the services around one publisher and exposes them as typed results."""

	def __init__(
		self,
		publisher: Optional[EventPublisher] = None,
		database: Optional[DataBase] = None,
		penalty_rule: Optional[PenaltyRule] = None,
		language: Optional[str] = None,
	) -> None:
		publisher = publisher or NullPublisher()
		database = database or DataBase()
		self.control = ContestControlService(publisher, database)
		self.grading = GradingService(publisher, database, penalty_rule)
		self.scores = TeamScoreService(publisher, database, penalty_rule)
		self.submissions = SubmissionService(publisher, database, self.control)
		self._language = language or Settings().default_language

	async def _run(self, op: str, call: Awaitable[T]) -> ActionResult[T]:
		try:
			data = await call
		except ContestPulseError as exc:
			logger.info("%s refused: %s (%s)", op, exc.kind, exc.message)
			return ActionResult(
				success=False,
				error=exc.kind,
				message=self.describe(exc),
				details=exc.details or None,
			)
		return ActionResult(success=True, data=data)

	def describe(self, exc: ContestPulseError, language: Optional[str] = None) -> str:
		"""Localized text for a domain failure; reason-specific when one is known."""
		lz = Localizer(language or self._language)
		generic = lz.get_or(exc.i18n_key, exc.message)
		reason_code = exc.details.get("reason_code")
		if reason_code:
			return lz.get_or(f"{exc.i18n_key}_reasons.{reason_code}", generic, **exc.details)
		return generic

	async def submit(
		self,
		caller: Caller,
		team_id: UUID,
		problem_id: UUID,
		file_path: str,
		auto_score: Optional[float] = None,
		submitted_at: Optional[datetime] = None,
	) -> ActionResult[SubmissionRead]:
		return await self._run(
			"submit",
			self.submissions.submit(caller, team_id, problem_id, file_path, auto_score, submitted_at),
		)

	async def grade(
		self,
		caller: Caller,
		submission_id: UUID,
		verdict: SubmissionStatus,
		score: Optional[float] = None,
		comment: Optional[str] = None,
	) -> ActionResult[GradeResult]:
		return await self._run("grade", self.grading.grade(caller, submission_id, verdict, score, comment))

	async def request_retry(self, caller: Caller, submission_id: UUID, reason: str) -> ActionResult[SubmissionRead]:
		return await self._run("request_retry", self.grading.request_retry(caller, submission_id, reason))

	async def grant_retry(self, caller: Caller, submission_id: UUID) -> ActionResult[SubmissionRead]:
		return await self._run("grant_retry", self.grading.grant_retry(caller, submission_id))

	async def list_retry_requests(self, caller: Caller) -> ActionResult[list[SubmissionRead]]:
		return await self._run("list_retry_requests", self.grading.list_retry_requests(caller))

	async def toggle_pause(self, caller: Caller, contest_id: UUID) -> ActionResult[ContestRead]:
		return await self._run("toggle_pause", self.control.toggle_pause(caller, contest_id))

	async def toggle_freeze(self, caller: Caller, contest_id: UUID) -> ActionResult[ContestRead]:
		return await self._run("toggle_freeze", self.control.toggle_freeze(caller, contest_id))

	async def toggle_team_block(self, caller: Caller, team_id: UUID) -> ActionResult[TeamRead]:
		return await self._run("toggle_team_block", self.control.toggle_team_block(caller, team_id))

	async def extend_time(
		self,
		caller: Caller,
		contest_id: UUID,
		minutes: int,
		operation_id: Optional[str] = None,
	) -> ActionResult[ContestRead]:
		return await self._run("extend_time", self.control.extend_time(caller, contest_id, minutes, operation_id))

	async def get_ranking(self, contest_id: UUID) -> ActionResult[Leaderboard]:
		return await self._run("get_ranking", self.scores.get_ranking(contest_id))

	async def rebuild_scores(self, caller: Caller, contest_id: UUID) -> ActionResult[list[TeamScoreRead]]:
		return await self._run("rebuild_scores", self.scores.rebuild(caller, contest_id))


__all__ = ["ActionResult", "ContestActions"]
