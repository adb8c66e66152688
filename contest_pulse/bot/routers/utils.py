# bot/routers/utils.py
import uuid
from typing import Optional

from aiogram.types import Message

from contest_pulse.i18n import Localizer, lang_code2language
from contest_pulse.bot.actions import ActionResult, ContestActions
from contest_pulse.bot.services.contest import ContestService
from contest_pulse.db.schemas.contest import ContestRead
from contest_pulse.errors import ContestPulseError


def get_localizer(message: Message) -> Localizer:
    code = message.from_user.language_code if message.from_user else None
    return Localizer(lang_code2language(code))


def command_args(message: Message) -> list[str]:
    """Whitespace-separated words after the command itself."""
    text = message.text or message.caption or ""
    return text.split()[1:]


def parse_uuid(raw: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


async def resolve_contest(message: Message, actions: ContestActions, slug: str) -> Optional[ContestRead]:
    try:
        return await ContestService().get_contest_by_slug(slug)
    except ContestPulseError as exc:
        await message.answer(actions.describe(exc, get_localizer(message).lang))
        return None


async def answer_failure(message: Message, result: ActionResult) -> bool:
    """Answer with the failure message; True when the result was a failure."""
    if result.success:
        return False
    await message.answer(result.message or result.error or "")
    return True
