# bot/routers/grading.py
from typing import Optional

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from contest_pulse.bot.actions import ContestActions
from contest_pulse.bot.routers.utils import answer_failure, command_args, get_localizer, parse_uuid
from contest_pulse.bot.services.access import Caller
from contest_pulse.db.enums import SubmissionStatus

router = Router(name="grading")

MAX_LISTED = 20


def _parse_score(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        return None


@router.message(Command("pending"))
async def list_pending(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    if caller.grading_scope() == set():
        await message.answer(lz.get("errors.forbidden"))
        return

    pending = await actions.grading.list_pending(caller)
    if not pending:
        await message.answer(lz.get("commands.pending.empty"))
        return
    lines = [lz.get("commands.pending.header", count=len(pending))]
    for sub in pending[:MAX_LISTED]:
        lines.append(lz.get("commands.pending.item", id=sub.id, submitted=sub.submitted_at.isoformat(timespec="minutes"), file=sub.file_path))
    await message.answer("\n".join(lines))


@router.message(Command("accept"))
async def accept(message: Message, caller: Caller, actions: ContestActions) -> None:
    """/accept <submission id> [score] [comment...]"""
    lz = get_localizer(message)
    args = command_args(message)
    sub_id = parse_uuid(args[0]) if args else None
    if sub_id is None:
        await message.answer(lz.get("commands.usage.accept"))
        return

    score = _parse_score(args[1]) if len(args) > 1 else None
    comment_words = args[2:] if score is not None else args[1:]
    result = await actions.grade(caller, sub_id, SubmissionStatus.ACCEPTED, score, " ".join(comment_words) or None)
    if await answer_failure(message, result):
        return
    await message.answer(lz.get("commands.done.graded", id=sub_id, status=lz.get("submissions.status.accepted"), solved=result.data.solved_count, penalty=result.data.total_penalty))


@router.message(Command("reject"))
async def reject(message: Message, caller: Caller, actions: ContestActions) -> None:
    """/reject <submission id> [comment...]"""
    lz = get_localizer(message)
    args = command_args(message)
    sub_id = parse_uuid(args[0]) if args else None
    if sub_id is None:
        await message.answer(lz.get("commands.usage.reject"))
        return

    result = await actions.grade(caller, sub_id, SubmissionStatus.REJECTED, None, " ".join(args[1:]) or None)
    if await answer_failure(message, result):
        return
    await message.answer(lz.get("commands.done.graded", id=sub_id, status=lz.get("submissions.status.rejected"), solved=result.data.solved_count, penalty=result.data.total_penalty))


@router.message(Command("retries"))
async def list_retries(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    result = await actions.list_retry_requests(caller)
    if await answer_failure(message, result):
        return
    if not result.data:
        await message.answer(lz.get("commands.retries.empty"))
        return
    lines = [lz.get("commands.retries.header", count=len(result.data))]
    for sub in result.data[:MAX_LISTED]:
        lines.append(lz.get("commands.retries.item", id=sub.id, reason=sub.retry_reason or ""))
    await message.answer("\n".join(lines))


@router.message(Command("grant"))
async def grant_retry(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    args = command_args(message)
    sub_id = parse_uuid(args[0]) if len(args) == 1 else None
    if sub_id is None:
        await message.answer(lz.get("commands.usage.grant"))
        return

    result = await actions.grant_retry(caller, sub_id)
    if await answer_failure(message, result):
        return
    await message.answer(lz.get("commands.done.granted", id=sub_id))
