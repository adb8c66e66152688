# bot/run_bot.py
import asyncio
import logging

from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import TelegramAPIServer
from aiogram import Bot, Dispatcher

from contest_pulse.config import Settings
from contest_pulse.bot.actions import ContestActions
from contest_pulse.bot.middlewares.user import UserMiddleware
from contest_pulse.bot.routers.core import router as CoreRouter
from contest_pulse.bot.routers.control import router as ControlRouter
from contest_pulse.bot.routers.grading import router as GradingRouter
from contest_pulse.bot.routers.participant import router as ParticipantRouter
from contest_pulse.bot.services.broadcast import BroadcastBus
from contest_pulse.bot.services.notifications import TelegramNotifier
from contest_pulse.db.database import DataBase

logger = logging.getLogger(__name__)


def setup_dispatcher(dp: Dispatcher) -> None:
    dp.update.outer_middleware(UserMiddleware())

def setup_routers(dp: Dispatcher) -> None:
    dp.include_router(CoreRouter)
    dp.include_router(ControlRouter)
    dp.include_router(GradingRouter)
    dp.include_router(ParticipantRouter)

def build_bot(settings: Settings) -> Bot:
    if not settings.bot_token:
        raise RuntimeError("Bot token is not set.")

    if settings.telegram_api_server:
        session = AiohttpSession(api=TelegramAPIServer.from_base(settings.telegram_api_server, is_local=True))
        return Bot(settings.bot_token, session=session)
    return Bot(settings.bot_token)

async def main() -> None:
    settings = Settings()
    logging.basicConfig(level=settings.log_level)

    bot = build_bot(settings)
    bus = BroadcastBus(queue_size=settings.broadcast_queue_size)
    bus.add_sink(TelegramNotifier(bot))

    dp = Dispatcher()
    dp["actions"] = ContestActions(publisher=bus)
    dp["bus"] = bus
    setup_dispatcher(dp)
    setup_routers(dp)

    await DataBase().create_all()

    logger.info("Starting polling")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await DataBase().dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
