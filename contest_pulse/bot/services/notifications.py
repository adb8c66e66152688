"""Telegram delivery of contest events to the people they concern."""
from __future__ import annotations

import logging
from typing import Iterable, Optional
from uuid import UUID

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from contest_pulse.config import Settings
from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import ContestAction, EventType
from contest_pulse.db.schemas.event import ContestEvent
from contest_pulse.db.schemas.user import UserRead
from contest_pulse.i18n import Localizer

logger = logging.getLogger(__name__)


class TelegramNotifier:
	"""
	Broadcast sink that turns contest events into chat messages.

	Register it with ``BroadcastBus.add_sink``. Graded submissions,
	granted retries and team blocks go to the team's members. Pauses and
	extensions go to every participant of the contest. Users without a Telegram id are skipped.
	"""

	def __init__(self, bot: Optional[Bot] = None, database: Optional[DataBase] = None, language: Optional[str] = None) -> None:
		self._bot = bot
		self._database = database or DataBase()
		self._lz = Localizer(language or Settings().default_language)

	def bind_bot(self, bot: Bot) -> None:
		"""Provide the active bot instance so messages can be delivered."""
		self._bot = bot
		logger.info("Notifier bound to bot %s", getattr(bot, "id", None))

	async def __call__(self, event: ContestEvent) -> None:
		if self._bot is None:
			logger.debug("No active bot instance; dropping %s", event.type)
			return

		match event.type:
			case EventType.SUBMISSION_GRADED:
				await self._on_graded(event)
			case EventType.RETRY_GRANTED:
				await self._on_retry_granted(event)
			case EventType.TEAM_STATUS_UPDATE:
				key = "notify.team_blocked" if event.payload["isBlocked"] else "notify.team_unblocked"
				await self._to_team(UUID(event.payload["teamId"]), self._lz.get(key))
			case EventType.STATUS_UPDATE if "isPaused" in event.payload:
				key = "notify.paused" if event.payload["isPaused"] else "notify.resumed"
				await self._to_participants(event.contest_id, self._lz.get(key))
			case EventType.CONTEST_UPDATE if event.payload.get("action") == ContestAction.TIME_EXTENDED.value:
				text = self._lz.get(
					"notify.time_extended",
					minutes=event.payload.get("minutes"),
					end=event.payload.get("endTime"),
				)
				await self._to_participants(event.contest_id, text)
			case _:
				return

	async def _on_graded(self, event: ContestEvent) -> None:
		sub_id = UUID(event.payload["submissionId"])
		context = await self._database.get_submission_context(sub_id)
		if context is None:
			logger.debug("Submission %s vanished before notification", sub_id)
			return
		submission, problem, team, _ = context

		lines = [
			self._lz.get("notify.graded.header"),
			self._lz.get("notify.graded.problem", title=problem.title),
			self._lz.get("notify.graded.status", value=self._lz.get(f"submissions.status.{submission.status.value}")),
			self._lz.get("notify.graded.score", value=self._format_value(submission.final_score)),
		]
		if submission.jury_comment:
			lines.append(self._lz.get("notify.graded.comment", value=submission.jury_comment))
		await self._to_team(team.id, "\n".join(lines))

	async def _on_retry_granted(self, event: ContestEvent) -> None:
		sub_id = UUID(event.payload["submissionId"])
		context = await self._database.get_submission_context(sub_id)
		if context is None:
			return
		_, problem, team, _ = context
		await self._to_team(team.id, self._lz.get("notify.retry_granted", title=problem.title))

	async def _to_team(self, team_id: UUID, text: str) -> None:
		await self._send_all(await self._database.list_team_members(team_id), text)

	async def _to_participants(self, contest_id: UUID, text: str) -> None:
		await self._send_all(await self._database.list_contest_participants(contest_id), text)

	async def _send_all(self, users: Iterable[UserRead], text: str) -> None:
		for user in users:
			await self._send_message(user, text)

	async def _send_message(self, user: UserRead, text: str) -> None:
		"""Send one message, ignoring delivery problems (user blocked the bot, etc.)."""
		if not isinstance(user.tg_id, int):
			logger.debug("User %s has no tg_id; skipping notification", user.id)
			return
		try:
			await self._bot.send_message(chat_id=user.tg_id, text=text)
		except (TelegramForbiddenError, TelegramBadRequest):
			logger.warning("Failed to deliver notification to user %s", user.id, exc_info=True)

	@staticmethod
	def _format_value(value: Optional[float]) -> str:
		if value is None:
			return "-"
		return f"{value:.4f}".rstrip("0").rstrip(".") or "0"


__all__ = ["TelegramNotifier"]
