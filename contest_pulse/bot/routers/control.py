# bot/routers/control.py
from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from contest_pulse.bot.actions import ContestActions
from contest_pulse.bot.routers.utils import answer_failure, command_args, get_localizer, parse_uuid, resolve_contest
from contest_pulse.bot.services.access import Caller

router = Router(name="control")


@router.message(Command("pause"))
async def toggle_pause(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    args = command_args(message)
    if len(args) != 1:
        await message.answer(lz.get("commands.usage.pause"))
        return
    contest = await resolve_contest(message, actions, args[0])
    if contest is None:
        return

    result = await actions.toggle_pause(caller, contest.id)
    if await answer_failure(message, result):
        return
    key = "commands.done.paused" if result.data.is_paused else "commands.done.resumed"
    await message.answer(lz.get(key, title=result.data.title))


@router.message(Command("freeze"))
async def toggle_freeze(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    args = command_args(message)
    if len(args) != 1:
        await message.answer(lz.get("commands.usage.freeze"))
        return
    contest = await resolve_contest(message, actions, args[0])
    if contest is None:
        return

    result = await actions.toggle_freeze(caller, contest.id)
    if await answer_failure(message, result):
        return
    key = "commands.done.frozen" if result.data.is_frozen else "commands.done.unfrozen"
    await message.answer(lz.get(key, title=result.data.title))


@router.message(Command("extend"))
async def extend_time(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    args = command_args(message)
    if len(args) not in (2, 3) or not args[1].lstrip("-").isdigit():
        await message.answer(lz.get("commands.usage.extend"))
        return
    contest = await resolve_contest(message, actions, args[0])
    if contest is None:
        return

    # the Telegram message id makes a resent command idempotent
    operation_id = args[2] if len(args) == 3 else f"tg:{message.chat.id}:{message.message_id}"
    result = await actions.extend_time(caller, contest.id, int(args[1]), operation_id)
    if await answer_failure(message, result):
        return
    await message.answer(lz.get("commands.done.extended", title=result.data.title, end=result.data.end_at.isoformat(timespec="minutes")))


@router.message(Command("rebuild"))
async def rebuild_scores(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    args = command_args(message)
    if len(args) != 1:
        await message.answer(lz.get("commands.usage.rebuild"))
        return
    contest = await resolve_contest(message, actions, args[0])
    if contest is None:
        return

    result = await actions.rebuild_scores(caller, contest.id)
    if await answer_failure(message, result):
        return
    await message.answer(lz.get("commands.done.rebuilt", title=contest.title, teams=len(result.data)))


@router.message(Command("block"))
async def toggle_team_block(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    args = command_args(message)
    team_id = parse_uuid(args[0]) if len(args) == 1 else None
    if team_id is None:
        await message.answer(lz.get("commands.usage.block"))
        return

    result = await actions.toggle_team_block(caller, team_id)
    if await answer_failure(message, result):
        return
    key = "commands.done.blocked" if result.data.is_blocked else "commands.done.unblocked"
    await message.answer(lz.get(key, title=result.data.title))
