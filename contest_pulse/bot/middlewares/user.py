# bot/middlewares/user.py
from typing import Callable, Self, Awaitable, Any, ClassVar, Optional, Dict
from aiogram import BaseMiddleware
from aiogram.types import User as TgUser
from contest_pulse.db.schemas.user import UserRead
from contest_pulse.bot.services.user import UserService
from contest_pulse.bot.services.audit_log import audit_logger

class UserMiddleware(BaseMiddleware):
	"""Resolves the Telegram account to ``current_user`` and its ``caller`` scope."""

	_instance: ClassVar[Optional["UserMiddleware"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)

		return cls._instance

	def __init__(self,  *args, **kwargs) -> None:
		if getattr(self, "_initialized", False):
			return

		self._user_service = UserService()

		self._initialized = True

	async def get_user(self, tg_user: TgUser) -> Optional[UserRead]:
		return await self._user_service.get_by_telegram(tg_user.id, tg_user.username, autocreate=True)

	async def __call__(self,
		handler: Callable[[Any, Dict[str, Any]], Awaitable[Any]],
		event: Any,
		data: dict[str, Any]) -> Any:
		tg_user: Optional[TgUser] = data.get("event_from_user")
		if tg_user is None:
			return

		user = await self.get_user(tg_user)
		if user is None:
			return

		data["current_user"] = user
		# scope is rebuilt per update so new assignments apply immediately
		data["caller"] = await self._user_service.build_caller(user)
		token = audit_logger.bind_actor(user.id)
		try:
			return await handler(event, data)
		finally:
			audit_logger.unbind_actor(token)
