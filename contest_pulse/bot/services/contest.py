# bot/services/contest.py
import logging
from uuid import UUID
from typing import Dict, List, Optional

from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import ContestAction, ProblemCategory, UserRole
from contest_pulse.db.schemas import event as events
from contest_pulse.db.schemas.contest import (
	ContestCreate,
	ContestExtensionRead,
	ContestRead,
	ProblemCreate,
	ProblemRead,
)
from contest_pulse.db.schemas.user import JuryAssignmentRead
from contest_pulse.bot.services.access import Caller, require_admin
from contest_pulse.bot.services.audit_log import instrument_service_class
from contest_pulse.bot.services.broadcast import EventPublisher, NullPublisher, publish_all
from contest_pulse.errors import InvalidTransition, NotFound

logger = logging.getLogger(__name__)


class ContestService:
	"""
	Contests, their problems and jury assignments.

	Strict rule: this service does **not** touch SQLAlchemy sessions or models.
	It only calls the DataBase facade and returns DTOs. Contest rows change
	under pause/freeze/extend, so only the immutable problem list is cached.
	"""

	def __init__(self, publisher: Optional[EventPublisher] = None, database: Optional[DataBase] = None) -> None:
		self._publisher = publisher or NullPublisher()
		self._database = database or DataBase()
		self._problems: Dict[UUID, ProblemRead] = {}

	# --------------------
	# Contest methods
	# --------------------
	async def create_contest(self, caller: Caller, payload: ContestCreate) -> ContestRead:
		require_admin(caller)
		contest = await self._database.create_contest(payload)
		logger.info("Contest %s (%s) created", contest.id, contest.slug)
		await publish_all(self._publisher, events.contest_update(contest.id, ContestAction.CREATE, title=contest.title))
		return contest

	async def get_contest(self, contest_id: UUID) -> ContestRead:
		contest = await self._database.get_contest(contest_id)
		if contest is None:
			raise NotFound("Contest not found", contest_id=contest_id)
		return contest

	async def get_contest_by_slug(self, slug: str) -> ContestRead:
		contest = await self._database.get_contest_by_slug(slug)
		if contest is None:
			raise NotFound("Contest not found", slug=slug)
		return contest

	async def list_extensions(self, contest_id: UUID) -> List[ContestExtensionRead]:
		return await self._database.list_contest_extensions(contest_id)

	# -------------
	# Problem methods
	# -------------
	async def create_problem(self, caller: Caller, payload: ProblemCreate) -> ProblemRead:
		require_admin(caller)
		await self.get_contest(payload.contest_id)
		if payload.points < 0:
			raise InvalidTransition("Problem points must not be negative", points=payload.points)
		problem = await self._database.create_problem(payload)
		self._problems[problem.id] = problem
		return problem

	async def get_problem(self, problem_id: UUID) -> ProblemRead:
		if problem_id in self._problems:
			return self._problems[problem_id]
		problem = await self._database.get_problem(problem_id)
		if problem is None:
			raise NotFound("Problem not found", problem_id=problem_id)
		self._problems[problem.id] = problem
		return problem

	async def list_problems(self, contest_id: UUID, category: Optional[ProblemCategory] = None) -> List[ProblemRead]:
		"""Problems of a contest in display order, optionally of one category only."""
		problems = await self._database.list_problems(contest_id, category)
		for p in problems:
			self._problems[p.id] = p
		return problems

	# -------------
	# Jury
	# -------------
	async def assign_jury(self, caller: Caller, user_id: UUID, contest_id: UUID) -> JuryAssignmentRead:
		require_admin(caller)
		await self.get_contest(contest_id)
		user = await self._database.get_user_by_id(user_id)
		if user is None:
			raise NotFound("User not found", user_id=user_id)
		if user.role != UserRole.JURY:
			raise InvalidTransition("Only jury members can be assigned to a contest", role=user.role.value)
		return await self._database.assign_jury(user_id, contest_id)


instrument_service_class(
	ContestService,
	prefix="services.contest",
	actor_fields=("caller",),
	exclude={"get_contest", "get_contest_by_slug", "get_problem", "list_problems", "list_extensions"},
)
