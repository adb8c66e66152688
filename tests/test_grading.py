import asyncio
import uuid

import pytest

from contest_pulse.db.enums import EventType, SubmissionStatus
from contest_pulse.errors import Forbidden, InvalidScore, InvalidTransition, NotFound


async def test_accepting_updates_score_and_broadcasts(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    world.recorder.clear()

    result = await world.actions.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED, comment="  nice  ")

    assert result.success
    graded = result.data
    assert graded.submission.status == SubmissionStatus.ACCEPTED
    assert graded.submission.final_score == 100.0
    assert graded.submission.penalty_minutes == 10
    assert graded.submission.jury_comment == "nice"
    assert graded.submission.judged_by_id == world.jury.user_id
    assert graded.previous_status == SubmissionStatus.PENDING
    assert (graded.solved_delta, graded.penalty_delta) == (1, 10)
    assert await world.score(world.team1) == (1, 10)

    assert world.recorder.types() == [EventType.SUBMISSION_GRADED.value, EventType.LEADERBOARD_UPDATE.value]
    assert world.recorder.payloads("SUBMISSION_GRADED")[0]["verdict"] == "ACCEPTED"
    assert world.recorder.payloads("LEADERBOARD_UPDATE")[0] == {
        "teamId": str(world.team1.id),
        "solvedCount": 1,
        "totalPenalty": 10,
    }


async def test_manual_score_is_stored(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=3)
    result = await world.actions.grade(world.admin, sub.id, SubmissionStatus.ACCEPTED, score=72.5)
    assert result.data.submission.final_score == 72.5


async def test_regrading_never_double_counts(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=25)
    grading = world.actions.grading

    for verdict in (SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED, SubmissionStatus.ACCEPTED):
        await grading.grade(world.jury, sub.id, verdict)
    assert await world.score(world.team1) == (1, 25)

    await grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED)
    assert await world.score(world.team1) == (1, 25)

    result = await grading.grade(world.jury, sub.id, SubmissionStatus.REJECTED)
    assert result.submission.final_score == 0.0
    assert result.submission.penalty_minutes == 0
    assert await world.score(world.team1) == (0, 0)


async def test_rejections_before_acceptance_add_penalty(world):
    grading = world.actions.grading
    first = await world.submit(world.team1, world.problem_a, minutes=5)
    await grading.grade(world.jury, first.id, SubmissionStatus.REJECTED)
    await grading.request_retry(world.team1_caller, first.id, "the checker misread my output")
    await grading.grant_retry(world.jury, first.id)

    second = await world.submit(world.team1, world.problem_a, minutes=30)
    result = await grading.grade(world.jury, second.id, SubmissionStatus.ACCEPTED)

    assert result.submission.penalty_minutes == 30 + 20
    assert await world.score(world.team1) == (1, 50)


async def test_out_of_range_score_changes_nothing(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    world.recorder.clear()

    with pytest.raises(InvalidScore):
        await world.actions.grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED, manual_score=150)

    assert await world.score(world.team1) == (0, 0)
    stored = await world.db.get_submission_by_id(sub.id)
    assert stored.status == SubmissionStatus.PENDING
    assert world.recorder.events == []


async def test_unassigned_jury_is_forbidden(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    world.recorder.clear()

    with pytest.raises(Forbidden):
        await world.actions.grading.grade(world.outsider_jury, sub.id, SubmissionStatus.ACCEPTED)
    with pytest.raises(Forbidden):
        await world.actions.grading.grade(world.team1_caller, sub.id, SubmissionStatus.ACCEPTED)

    stored = await world.db.get_submission_by_id(sub.id)
    assert stored.status == SubmissionStatus.PENDING
    assert await world.score(world.team1) == (0, 0)
    assert world.recorder.events == []


async def test_pending_is_not_a_verdict(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    with pytest.raises(InvalidTransition):
        await world.actions.grading.grade(world.jury, sub.id, SubmissionStatus.PENDING)


async def test_unknown_submission(world):
    with pytest.raises(NotFound):
        await world.actions.grading.grade(world.admin, uuid.uuid4(), SubmissionStatus.ACCEPTED)


async def test_concurrent_grading_of_one_team_serializes(world):
    sub_a = await world.submit(world.team1, world.problem_a, minutes=10)
    sub_b = await world.submit(world.team1, world.problem_b, minutes=20)
    grading = world.actions.grading

    await asyncio.gather(
        grading.grade(world.jury, sub_a.id, SubmissionStatus.ACCEPTED),
        grading.grade(world.admin, sub_b.id, SubmissionStatus.ACCEPTED),
    )

    assert await world.score(world.team1) == (2, 30)


class TestRetry:
    async def _rejected(self, world):
        sub = await world.submit(world.team1, world.problem_a, minutes=10)
        await world.actions.grading.grade(world.jury, sub.id, SubmissionStatus.REJECTED)
        world.recorder.clear()
        return sub

    async def test_request_and_grant(self, world):
        sub = await self._rejected(world)
        grading = world.actions.grading

        requested = await grading.request_retry(world.team1_caller, sub.id, "  output format was ambiguous  ")
        assert requested.retry_requested
        assert requested.retry_reason == "output format was ambiguous"
        assert requested.status == SubmissionStatus.REJECTED
        assert [s.id for s in await grading.list_retry_requests(world.jury)] == [sub.id]
        assert await grading.list_retry_requests(world.outsider_jury) == []

        granted = await grading.grant_retry(world.jury, sub.id)
        assert granted.can_retry
        assert not granted.retry_requested
        assert granted.status == SubmissionStatus.REJECTED
        assert granted.retry_granted_by_id == world.jury.user_id
        assert await grading.list_retry_requests(world.jury) == []

        assert world.recorder.types() == [EventType.RETRY_REQUESTED.value, EventType.RETRY_GRANTED.value]
        assert world.recorder.payloads("RETRY_REQUESTED")[0]["teamName"] == "Team One"
        assert world.recorder.payloads("RETRY_REQUESTED")[0]["problemTitle"] == "A"

    async def test_reason_must_be_long_enough(self, world):
        sub = await self._rejected(world)
        with pytest.raises(InvalidTransition) as err:
            await world.actions.grading.request_retry(world.team1_caller, sub.id, "   too short ")
        assert err.value.details["reason_code"] == "reason_too_short"

    async def test_only_team_members_may_ask(self, world):
        sub = await self._rejected(world)
        with pytest.raises(Forbidden):
            await world.actions.grading.request_retry(world.team2_caller, sub.id, "please let us try again")

    async def test_pending_or_accepted_cannot_be_retried(self, world):
        sub = await world.submit(world.team1, world.problem_a, minutes=10)
        with pytest.raises(InvalidTransition):
            await world.actions.grading.request_retry(world.team1_caller, sub.id, "please let us try again")
        await world.actions.grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED)
        with pytest.raises(InvalidTransition):
            await world.actions.grading.request_retry(world.team1_caller, sub.id, "please let us try again")

    async def test_duplicate_request_and_grant_are_refused(self, world):
        sub = await self._rejected(world)
        grading = world.actions.grading
        with pytest.raises(InvalidTransition):
            await grading.grant_retry(world.jury, sub.id)

        await grading.request_retry(world.team1_caller, sub.id, "please let us try again")
        with pytest.raises(InvalidTransition):
            await grading.request_retry(world.team1_caller, sub.id, "please let us try again")

        await grading.grant_retry(world.jury, sub.id)
        with pytest.raises(InvalidTransition):
            await grading.grant_retry(world.jury, sub.id)

    async def test_outsider_cannot_grant(self, world):
        sub = await self._rejected(world)
        await world.actions.grading.request_retry(world.team1_caller, sub.id, "please let us try again")
        with pytest.raises(Forbidden):
            await world.actions.grading.grant_retry(world.outsider_jury, sub.id)

    async def test_admin_reopens_without_a_request(self, world):
        sub = await self._rejected(world)

        granted = await world.actions.grading.grant_retry(world.admin, sub.id)

        assert granted.can_retry
        assert granted.retry_granted_by_id == world.admin.user_id
        assert world.recorder.types() == [EventType.RETRY_GRANTED.value]
        await world.submit(world.team1, world.problem_a, minutes=30)

    async def test_admin_reopens_an_accepted_submission(self, world):
        sub = await world.submit(world.team1, world.problem_a, minutes=10)
        await world.actions.grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED)

        result = await world.actions.grant_retry(world.admin, sub.id)

        assert result.success
        assert result.data.status == SubmissionStatus.ACCEPTED

    async def test_jury_still_needs_a_request(self, world):
        sub = await self._rejected(world)
        result = await world.actions.grant_retry(world.jury, sub.id)
        assert result.details["reason_code"] == "not_requested"

    async def test_admin_cannot_reopen_pending(self, world):
        sub = await world.submit(world.team1, world.problem_a, minutes=10)
        result = await world.actions.grant_retry(world.admin, sub.id)
        assert result.details["reason_code"] == "not_graded"


async def test_concurrent_regrades_of_one_submission_count_once(world):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    grading = world.actions.grading

    await asyncio.gather(
        grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED),
        grading.grade(world.admin, sub.id, SubmissionStatus.ACCEPTED),
        grading.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED),
        grading.grade(world.admin, sub.id, SubmissionStatus.ACCEPTED),
    )

    assert await world.score(world.team1) == (1, 10)
    assert len(world.db._score_locks) == 0


async def test_regrading_an_early_attempt_recomputes_later_penalties(world):
    grading = world.actions.grading
    first = await world.submit(world.team1, world.problem_a, minutes=5)
    await grading.grade(world.jury, first.id, SubmissionStatus.REJECTED)
    await grading.request_retry(world.team1_caller, first.id, "the checker misread my output")
    await grading.grant_retry(world.jury, first.id)
    second = await world.submit(world.team1, world.problem_a, minutes=30)
    await grading.grade(world.jury, second.id, SubmissionStatus.ACCEPTED)
    assert (await world.db.get_submission_by_id(second.id)).penalty_minutes == 50

    await grading.grade(world.jury, first.id, SubmissionStatus.ACCEPTED)

    assert (await world.db.get_submission_by_id(first.id)).penalty_minutes == 5
    assert (await world.db.get_submission_by_id(second.id)).penalty_minutes == 30
    assert await world.score(world.team1) == (1, 5)
