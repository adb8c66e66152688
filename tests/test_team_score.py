import uuid

import pytest

from contest_pulse.db.enums import EventType, SubmissionStatus
from contest_pulse.db.models.team_score import TeamScore
from contest_pulse.errors import Forbidden, NotFound


async def _two_teams_graded(world):
    grading = world.actions.grading
    for team, problem, minutes in (
        (world.team1, world.problem_a, 10),
        (world.team1, world.problem_b, 20),
        (world.team2, world.problem_a, 5),
    ):
        sub = await world.submit(team, problem, minutes)
        await grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED)


async def test_more_solved_problems_rank_first(world):
    await _two_teams_graded(world)

    result = await world.actions.get_ranking(world.contest.id)

    assert result.success
    board = result.data
    assert not board.is_frozen
    assert [(row.rank, row.team_title, row.solved_count, row.total_penalty) for row in board.rows] == [
        (1, "Team One", 2, 30),
        (2, "Team Two", 1, 5),
    ]


async def test_ties_rank_positionally_in_registration_order(world):
    for team in (world.team1, world.team2):
        sub = await world.submit(team, world.problem_a, 10)
        await world.actions.grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED)

    board = await world.actions.scores.get_ranking(world.contest.id)

    assert [(row.rank, row.team_id) for row in board.rows] == [(1, world.team1.id), (2, world.team2.id)]


async def test_fresh_teams_appear_with_zero_score(world):
    board = await world.actions.scores.get_ranking(world.contest.id)
    assert [(row.solved_count, row.total_penalty) for row in board.rows] == [(0, 0), (0, 0)]


async def test_rebuild_matches_incremental_updates(world):
    await _two_teams_graded(world)
    before = await world.actions.scores.get_ranking(world.contest.id)

    await world.actions.scores.rebuild(world.admin, world.contest.id)
    first = await world.actions.scores.get_ranking(world.contest.id)
    await world.actions.scores.rebuild(world.admin, world.contest.id)
    second = await world.actions.scores.get_ranking(world.contest.id)

    assert before.rows == first.rows == second.rows


async def test_rebuild_repairs_drift(world):
    await _two_teams_graded(world)
    async with world.db.session() as s:
        row = await s.get(TeamScore, (await world.db.get_team_score(world.team2.id, world.contest.id)).id)
        row.solved_count = 7
        row.total_penalty = 999
    world.recorder.clear()

    result = await world.actions.rebuild_scores(world.admin, world.contest.id)

    assert result.success
    assert await world.score(world.team2) == (1, 5)
    assert world.recorder.types() == [
        EventType.LEADERBOARD_UPDATE.value,
        EventType.LEADERBOARD_UPDATE.value,
        EventType.CONTEST_UPDATE.value,
    ]
    assert world.recorder.payloads("CONTEST_UPDATE")[0]["action"] == "scores_rebuilt"
    assert world.recorder.payloads("CONTEST_UPDATE")[0]["teams"] == 2


async def test_rebuild_is_admin_only(world):
    with pytest.raises(Forbidden):
        await world.actions.scores.rebuild(world.jury, world.contest.id)

    result = await world.actions.rebuild_scores(world.team1_caller, world.contest.id)
    assert not result.success
    assert result.error == "forbidden"


async def test_frozen_flag_is_reported(world):
    await world.actions.toggle_freeze(world.admin, world.contest.id)
    board = await world.actions.scores.get_ranking(world.contest.id)
    assert board.is_frozen


async def test_unknown_contest(world):
    with pytest.raises(NotFound):
        await world.actions.scores.get_ranking(uuid.uuid4())
