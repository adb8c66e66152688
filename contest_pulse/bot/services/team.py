# bot/services/team.py
import logging
from uuid import UUID
from typing import Dict, List, Optional

from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import ContestAction, ContestantRole
from contest_pulse.db.schemas import event as events
from contest_pulse.db.schemas.team import TeamCreate, TeamRead
from contest_pulse.db.schemas.team_user import TeamUserCreate, TeamUserRead
from contest_pulse.db.schemas.user import UserRead
from contest_pulse.bot.services.access import Caller, require_admin
from contest_pulse.bot.services.audit_log import instrument_service_class
from contest_pulse.bot.services.broadcast import EventPublisher, NullPublisher, publish_all
from contest_pulse.errors import NotFound

logger = logging.getLogger(__name__)


class TeamService:
	"""Team registration and membership. Registering a team also creates its zeroed score row."""

	def __init__(self, publisher: Optional[EventPublisher] = None, database: Optional[DataBase] = None) -> None:
		self._publisher = publisher or NullPublisher()
		self._database = database or DataBase()
		self._teams: Dict[UUID, TeamRead] = dict()

	async def create_team(self, caller: Caller, payload: TeamCreate) -> TeamRead:
		require_admin(caller)
		if await self._database.get_contest(payload.contest_id) is None:
			raise NotFound("Contest not found", contest_id=payload.contest_id)
		team = await self._database.create_team(payload)
		self._teams[team.id] = team
		logger.info("Team %s (%s) registered in contest %s", team.id, team.title, team.contest_id)

		await publish_all(
			self._publisher,
			events.contest_update(
				team.contest_id,
				ContestAction.TEAM_CREATE,
				teamId=str(team.id),
				teamName=team.title,
			),
		)
		return team

	async def get_team(self, team_id: UUID) -> TeamRead:
		if team_id in self._teams:
			return self._teams[team_id]
		team = await self._database.get_team(team_id)
		if team is None:
			raise NotFound("Team not found", team_id=team_id)
		self._teams[team.id] = team
		return team

	async def list_teams(self, contest_id: UUID) -> List[TeamRead]:
		teams = await self._database.list_teams(contest_id)
		for t in teams:
			self._teams[t.id] = t
		return teams

	async def add_member(
		self,
		caller: Caller,
		team_id: UUID,
		user_id: UUID,
		role: ContestantRole = ContestantRole.MEMBER,
	) -> TeamUserRead:
		require_admin(caller)
		team = await self.get_team(team_id)
		if await self._database.get_user_by_id(user_id) is None:
			raise NotFound("User not found", user_id=user_id)
		membership = await self._database.add_team_member(TeamUserCreate(role=role, user_id=user_id, team_id=team.id))

		await publish_all(
			self._publisher,
			events.contest_update(team.contest_id, ContestAction.TEAM_UPDATE, teamId=str(team.id)),
		)
		return membership

	async def list_members(self, team_id: UUID) -> List[UserRead]:
		return await self._database.list_team_members(team_id)

	async def list_contest_participants(self, contest_id: UUID) -> List[UserRead]:
		return await self._database.list_contest_participants(contest_id)


instrument_service_class(
	TeamService,
	prefix="services.team",
	actor_fields=("caller",),
	exclude={"get_team", "list_teams", "list_members", "list_contest_participants"},
)
