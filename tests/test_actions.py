import uuid

from contest_pulse.bot.actions import ContestActions
from contest_pulse.db.enums import SubmissionStatus
from contest_pulse.errors import Forbidden, IntakeRefused, InvalidScore, InvalidTransition


def test_describe_uses_generic_message():
    actions = ContestActions(language="english")
    assert actions.describe(Forbidden("nope")) == "You are not allowed to do this."
    assert actions.describe(InvalidScore("too high")) == "The score must be between 0 and the problem's points."


def test_describe_prefers_reason_specific_message():
    actions = ContestActions(language="english")
    exc = InvalidTransition("short", reason_code="reason_too_short", min_length=10)
    assert actions.describe(exc) == "Please describe the reason in at least 10 characters."


def test_describe_falls_back_for_unknown_reason():
    actions = ContestActions(language="english")
    exc = IntakeRefused("closed", reason_code="maintenance")
    assert actions.describe(exc) == "The contest does not accept submissions right now."


def test_describe_in_russian():
    actions = ContestActions(language="english")
    exc = IntakeRefused("closed", reason_code="ended")
    assert actions.describe(exc, language="russian") == "Соревнование завершено."


async def test_failures_become_results(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)

    result = await world.actions.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED, score=150)
    assert not result.success
    assert result.data is None
    assert result.error == "invalid_score"
    assert result.message == "The score must be between 0 and the problem's points."

    missing = await world.actions.grade(world.admin, uuid.uuid4(), SubmissionStatus.ACCEPTED)
    assert missing.error == "not_found"
    assert "submission_id" in missing.details


async def test_success_results_carry_data(world):
    result = await world.actions.toggle_pause(world.admin, world.contest.id)
    assert result.success
    assert result.error is None
    assert result.data.is_paused

    extended = await world.actions.extend_time(world.admin, world.contest.id, 30, operation_id="op-1")
    assert extended.success

    retries = await world.actions.list_retry_requests(world.jury)
    assert retries.success and retries.data == []


async def test_retry_flow_through_actions(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    await world.actions.grade(world.jury, sub.id, SubmissionStatus.REJECTED)

    short = await world.actions.request_retry(world.team1_caller, sub.id, "why")
    assert short.error == "invalid_transition"
    assert short.message == "Please describe the reason in at least 10 characters."

    asked = await world.actions.request_retry(world.team1_caller, sub.id, "the statement was unclear")
    assert asked.success
    granted = await world.actions.grant_retry(world.jury, sub.id)
    assert granted.data.can_retry
