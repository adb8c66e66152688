# bot/services/submission.py
import logging
from datetime import datetime
from pathlib import PurePosixPath
from uuid import UUID
from typing import Optional, List

from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import ProblemCategory
from contest_pulse.db.schemas import event as events
from contest_pulse.db.schemas.submission import SubmissionRead, SubmissionCreate
from contest_pulse.bot.services.access import Caller, require_team_member
from contest_pulse.bot.services.audit_log import instrument_service_class
from contest_pulse.bot.services.broadcast import EventPublisher, NullPublisher, publish_all
from contest_pulse.bot.services.contest_control import ContestControlService
from contest_pulse.errors import Forbidden, InvalidTransition, NotFound
from contest_pulse.utils.clock import to_naive_utc

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS: dict[ProblemCategory, frozenset[str]] = {
	ProblemCategory.CORE: frozenset({".cpp", ".c", ".java", ".py"}),
	ProblemCategory.WEB: frozenset({".zip"}),
	ProblemCategory.ANDROID: frozenset({".apk"}),
}


def file_allowed(category: ProblemCategory, file_path: str) -> bool:
	return PurePosixPath(file_path).suffix.lower() in ALLOWED_EXTENSIONS[category]


class SubmissionService:
	"""
	Submission intake. The file itself is stored elsewhere; only its
	reference is recorded here.

	A team keeps one active submission per problem: a new upload is accepted
	only when there is none yet or when the latest one had a retry granted.
	"""

	def __init__(
		self,
		publisher: Optional[EventPublisher] = None,
		database: Optional[DataBase] = None,
		control: Optional[ContestControlService] = None,
	) -> None:
		self._publisher = publisher or NullPublisher()
		self._database = database or DataBase()
		self._control = control or ContestControlService(self._publisher, self._database)

	async def submit(
		self,
		caller: Caller,
		team_id: UUID,
		problem_id: UUID,
		file_path: str,
		auto_score: Optional[float] = None,
		submitted_at: Optional[datetime] = None,
	) -> SubmissionRead:
		require_team_member(caller, team_id)
		team = await self._database.get_team(team_id)
		if team is None:
			raise NotFound("Team not found", team_id=team_id)
		problem = await self._database.get_problem(problem_id)
		if problem is None or problem.contest_id != team.contest_id:
			raise NotFound("Problem not found", problem_id=problem_id)
		if problem.category != team.category:
			raise Forbidden(
				f"Team category {team.category.name} does not match problem category {problem.category.name}",
				team_category=team.category.value,
				problem_category=problem.category.value,
			)

		await self._control.check_intake(team.contest_id, submitted_at, team=team)

		if not file_allowed(team.category, file_path):
			raise InvalidTransition(
				"File type is not allowed for this category",
				reason_code="bad_file_type",
				allowed=sorted(ALLOWED_EXTENSIONS[team.category]),
			)

		# re-checks the block flag and the active submission under the team row lock
		submission = await self._database.create_submission(
			SubmissionCreate(
				team_id=team_id,
				problem_id=problem_id,
				file_path=file_path,
				submitted_by_id=caller.user_id,
				auto_score=auto_score,
				submitted_at=to_naive_utc(submitted_at) if submitted_at is not None else None,
			)
		)
		logger.info("Team %s submitted %s for problem %s", team_id, submission.id, problem_id)

		await publish_all(
			self._publisher,
			events.submission_created(team.contest_id, team.id, team.title, problem.id, submission.id),
		)
		return submission

	async def get_submission(self, sub_id: UUID) -> SubmissionRead:
		submission = await self._database.get_submission_by_id(sub_id)
		if submission is None:
			raise NotFound("Submission not found", submission_id=sub_id)
		return submission

	async def list_team_submissions(self, caller: Caller, team_id: UUID) -> List[SubmissionRead]:
		if not caller.is_admin:
			require_team_member(caller, team_id)
		return await self._database.list_submissions_by_team(team_id)


instrument_service_class(
	SubmissionService,
	prefix="services.submission",
	actor_fields=("caller",),
	exclude={"get_submission", "list_team_submissions"},
)
