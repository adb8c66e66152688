# bot/services/contest_control.py
import logging
from datetime import datetime
from uuid import UUID
from typing import Optional, Tuple

from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import ContestAction
from contest_pulse.db.schemas import event as events
from contest_pulse.db.schemas.contest import ContestRead
from contest_pulse.db.schemas.team import TeamRead
from contest_pulse.bot.services.access import Caller, require_admin
from contest_pulse.bot.services.audit_log import instrument_service_class
from contest_pulse.bot.services.broadcast import EventPublisher, NullPublisher, publish_all
from contest_pulse.errors import IntakeRefused, InvalidTransition, NotFound
from contest_pulse.utils.clock import to_naive_utc, utc_now

logger = logging.getLogger(__name__)


class ContestControlService:
	"""
	Contest-wide switches: pause, leaderboard freeze and time extension,
	plus the per-team intake block.

	Pause and freeze are independent: neither touches the other's field and
	neither moves ``end_at``. Extending only ever moves ``end_at`` forward.
	"""

	def __init__(self, publisher: Optional[EventPublisher] = None, database: Optional[DataBase] = None) -> None:
		self._publisher = publisher or NullPublisher()
		self._database = database or DataBase()

	async def toggle_pause(self, caller: Caller, contest_id: UUID) -> ContestRead:
		require_admin(caller)
		contest = await self._database.toggle_pause(contest_id)
		logger.info("Contest %s %s by %s", contest_id, "paused" if contest.is_paused else "resumed", caller.user_id)

		await publish_all(
			self._publisher,
			events.status_update(contest_id, is_paused=contest.is_paused),
			events.contest_update(contest_id, ContestAction.PAUSE_TOGGLE, isPaused=contest.is_paused),
		)
		return contest

	async def toggle_freeze(self, caller: Caller, contest_id: UUID) -> ContestRead:
		require_admin(caller)
		contest = await self._database.toggle_freeze(contest_id)
		logger.info("Contest %s leaderboard %s by %s", contest_id, "frozen" if contest.is_frozen else "unfrozen", caller.user_id)

		await publish_all(
			self._publisher,
			events.leaderboard_freeze(contest_id, contest.is_frozen),
			events.contest_update(contest_id, ContestAction.FREEZE_TOGGLE, isFrozen=contest.is_frozen),
		)
		return contest

	async def toggle_team_block(self, caller: Caller, team_id: UUID) -> TeamRead:
		"""Stop or resume intake for one team. Graded work and scores stay as they are."""
		require_admin(caller)
		team = await self._database.toggle_team_block(team_id)
		logger.info("Team %s %s by %s", team_id, "blocked" if team.is_blocked else "unblocked", caller.user_id)

		await publish_all(
			self._publisher,
			events.team_status(team.contest_id, team.id, team.is_blocked),
		)
		return team

	async def extend_time(
		self,
		caller: Caller,
		contest_id: UUID,
		minutes: int,
		operation_id: Optional[str] = None,
	) -> ContestRead:
		"""
		Push ``end_at`` forward by ``minutes`` and reactivate the contest.

		A repeated ``operation_id`` for the same contest is acknowledged with
		the current state and nothing is broadcast.
		"""
		require_admin(caller)
		if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
			raise InvalidTransition(
				"Extension must be a positive number of minutes",
				minutes=minutes,
				reason_code="bad_minutes",
			)
		operation_id = (operation_id or "").strip() or None

		contest, applied = await self._database.extend_contest(
			contest_id,
			minutes,
			operation_id=operation_id,
			actor_id=caller.user_id,
		)
		if not applied:
			logger.info("Extension %s for contest %s already applied; skipping", operation_id, contest_id)
			return contest

		logger.info("Contest %s extended by %d min to %s", contest_id, minutes, contest.end_at.isoformat())
		await publish_all(
			self._publisher,
			events.contest_update(
				contest_id,
				ContestAction.TIME_EXTENDED,
				minutes=minutes,
				endTime=contest.end_at.isoformat(),
			),
			events.status_update(contest_id, end_at=contest.end_at, is_active=contest.is_active),
		)
		return contest

	async def check_intake(
		self,
		contest_id: UUID,
		now: Optional[datetime] = None,
		team: Optional[TeamRead] = None,
	) -> ContestRead:
		"""
		Gate used by submission intake. Returns the contest when it accepts
		submissions, raises IntakeRefused with a ``reason_code`` otherwise.
		When ``team`` is given a blocked team is refused as well.
		"""
		contest = await self._database.get_contest(contest_id)
		if contest is None:
			raise NotFound("Contest not found", contest_id=contest_id)
		now = to_naive_utc(now) if now is not None else utc_now()

		refusal: Optional[Tuple[str, str]] = None
		if not contest.is_active:
			refusal = ("inactive", "Contest is not active")
		elif contest.is_paused:
			refusal = ("paused", "Contest is paused")
		elif now < contest.start_at:
			refusal = ("not_started", "Contest has not started yet")
		elif now > contest.end_at:
			refusal = ("ended", "Contest is over")
		elif team is not None and team.is_blocked:
			refusal = ("blocked", "Team is blocked")

		if refusal is not None:
			reason_code, message = refusal
			raise IntakeRefused(message, reason_code=reason_code, contest_id=contest_id)
		return contest


instrument_service_class(
	ContestControlService,
	prefix="services.contest_control",
	actor_fields=("caller",),
	exclude={"check_intake"},
)
