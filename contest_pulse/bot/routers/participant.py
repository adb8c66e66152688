# bot/routers/participant.py
from aiogram import Router, F
from aiogram.filters import Command
from aiogram.types import Message

from contest_pulse.bot.actions import ContestActions
from contest_pulse.bot.routers.utils import answer_failure, command_args, get_localizer, parse_uuid, resolve_contest
from contest_pulse.bot.services.access import Caller
from contest_pulse.bot.services.contest import ContestService
from contest_pulse.bot.services.team import TeamService
from contest_pulse.errors import ContestPulseError

router = Router(name="participant")

LEADERBOARD_SIZE = 30


@router.message(Command("leaderboard"))
async def show_leaderboard(message: Message, caller: Caller, actions: ContestActions) -> None:
    lz = get_localizer(message)
    args = command_args(message)
    if len(args) != 1:
        await message.answer(lz.get("commands.usage.leaderboard"))
        return
    contest = await resolve_contest(message, actions, args[0])
    if contest is None:
        return

    result = await actions.get_ranking(contest.id)
    if await answer_failure(message, result):
        return
    board = result.data
    if board.is_frozen and not caller.can_grade(contest.id):
        await message.answer(lz.get("commands.leaderboard.frozen", title=contest.title))
        return
    if not board.rows:
        await message.answer(lz.get("commands.leaderboard.empty", title=contest.title))
        return

    lines = [lz.get("commands.leaderboard.header", title=contest.title)]
    for row in board.rows[:LEADERBOARD_SIZE]:
        lines.append(lz.get("commands.leaderboard.row", rank=row.rank, team=row.team_title, solved=row.solved_count, penalty=row.total_penalty))
    await message.answer("\n".join(lines))


@router.message(F.document, F.caption, F.caption.startswith("/submit"))
async def submit(message: Message, caller: Caller, actions: ContestActions) -> None:
    """Document with caption ``/submit <problem id>``; the Telegram file id is the stored reference."""
    lz = get_localizer(message)
    args = command_args(message)
    problem_id = parse_uuid(args[0]) if len(args) == 1 else None
    if problem_id is None:
        await message.answer(lz.get("commands.usage.submit"))
        return

    team_svc = TeamService()
    try:
        problem = await ContestService().get_problem(problem_id)
        teams = [await team_svc.get_team(team_id) for team_id in caller.team_ids]
    except ContestPulseError as exc:
        await message.answer(actions.describe(exc, lz.lang))
        return
    team = next((t for t in teams if t.contest_id == problem.contest_id), None)
    if team is None:
        await message.answer(lz.get("errors.forbidden"))
        return

    file_ref = f"tg:{message.document.file_id}/{message.document.file_name or 'solution'}"
    result = await actions.submit(caller, team.id, problem.id, file_ref)
    if await answer_failure(message, result):
        return
    await message.answer(lz.get("commands.done.submitted", id=result.data.id, title=problem.title))


@router.message(Command("retry"))
async def request_retry(message: Message, caller: Caller, actions: ContestActions) -> None:
    """/retry <submission id> <reason...>"""
    lz = get_localizer(message)
    args = command_args(message)
    sub_id = parse_uuid(args[0]) if args else None
    if sub_id is None:
        await message.answer(lz.get("commands.usage.retry"))
        return

    result = await actions.request_retry(caller, sub_id, " ".join(args[1:]))
    if await answer_failure(message, result):
        return
    await message.answer(lz.get("commands.done.retry_requested", id=sub_id))
