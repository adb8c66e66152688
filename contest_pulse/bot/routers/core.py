# bot/routers/core.py
from aiogram import Router
from aiogram.filters import CommandStart, Command
from aiogram.types import Message
from contest_pulse.db.schemas.user import UserRead
from contest_pulse.bot.routers.utils import get_localizer

router = Router(name="core")


@router.message(CommandStart())
async def start(message: Message, current_user: UserRead) -> None:
    localizer = get_localizer(message)
    name = current_user.display_name or message.from_user.full_name or current_user.username
    await message.answer(localizer.get("commands.start", name=name, role=localizer.get(f"commands.roles.{current_user.role.value}")))


@router.message(Command("help"))
async def help(message: Message, current_user: UserRead) -> None:
    localizer = get_localizer(message)
    await message.answer(localizer.get(f"commands.help.{current_user.role.value}"))
