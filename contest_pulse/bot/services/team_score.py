# bot/services/team_score.py
import logging
from uuid import UUID
from typing import List, Optional

from contest_pulse.config import Settings
from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import ContestAction
from contest_pulse.db.schemas import event as events
from contest_pulse.db.schemas.team_score import Leaderboard, LeaderboardRow, TeamScoreRead
from contest_pulse.bot.services.access import Caller, require_admin
from contest_pulse.bot.services.audit_log import instrument_service_class
from contest_pulse.bot.services.broadcast import EventPublisher, NullPublisher, publish_all
from contest_pulse.errors import NotFound
from contest_pulse.scoring.rules import PenaltyRule, make_penalty_rule, rank_teams

logger = logging.getLogger(__name__)


class TeamScoreService:
	"""
	Read side of the (team, contest) aggregate plus its full rebuild.

	Strict rule: this service does **not** touch SQLAlchemy sessions or models.
	The incremental update lives in the grading transaction
	(``DataBase.apply_verdict_delta``).
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

	async def get_ranking(self, contest_id: UUID) -> Leaderboard:
		contest = await self._database.get_contest(contest_id)
		if contest is None:
			raise NotFound("Contest not found", contest_id=contest_id)

		scores = await self._database.list_team_scores(contest_id)
		titles = {score.team_id: title for score, title in scores}
		ranked = rank_teams([score for score, _ in scores])
		rows = [
			LeaderboardRow(
				rank=rank,
				team_id=score.team_id,
				team_title=titles[score.team_id],
				solved_count=score.solved_count,
				total_penalty=score.total_penalty,
			)
			for rank, score in ranked
		]
		return Leaderboard(contest_id=contest_id, is_frozen=contest.is_frozen, rows=rows)

	async def get_team_score(self, team_id: UUID, contest_id: UUID) -> TeamScoreRead:
		score = await self._database.get_team_score(team_id, contest_id)
		if score is None:
			raise NotFound("Team score not found", team_id=team_id, contest_id=contest_id)
		return score

	async def rebuild(self, caller: Caller, contest_id: UUID) -> List[TeamScoreRead]:
		"""Replay the whole submission history of a contest into team_score."""
		require_admin(caller)
		scores = await self._database.rebuild_team_scores(contest_id, self._penalty_rule)
		logger.info("Rebuilt %d team scores for contest %s", len(scores), contest_id)

		await publish_all(
			self._publisher,
			*(
				events.leaderboard_score(contest_id, s.team_id, s.solved_count, s.total_penalty)
				for s in scores
			),
			events.contest_update(contest_id, ContestAction.SCORES_REBUILT, teams=len(scores)),
		)
		return scores


instrument_service_class(
	TeamScoreService,
	prefix="services.team_score",
	actor_fields=("caller",),
	exclude={"get_ranking", "get_team_score"},
)
