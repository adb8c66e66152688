from datetime import timedelta

import pytest

from contest_pulse.bot.services.contest import ContestService
from contest_pulse.db.enums import EventType
from contest_pulse.db.schemas.contest import ContestCreate
from contest_pulse.errors import Forbidden, IntakeRefused, InvalidTransition
from contest_pulse.utils.clock import utc_now


async def test_pause_toggles_only_the_pause_flag(world):
    control = world.actions.control
    world.recorder.clear()

    paused = await control.toggle_pause(world.admin, world.contest.id)
    assert paused.is_paused
    assert paused.end_at == world.contest.end_at
    assert not paused.is_frozen
    assert world.recorder.types() == [EventType.STATUS_UPDATE.value, EventType.CONTEST_UPDATE.value]
    assert world.recorder.payloads("STATUS_UPDATE")[0]["isPaused"] is True

    resumed = await control.toggle_pause(world.admin, world.contest.id)
    assert not resumed.is_paused
    assert resumed.end_at == world.contest.end_at


async def test_freeze_and_pause_are_independent(world):
    control = world.actions.control
    await control.toggle_freeze(world.admin, world.contest.id)
    paused = await control.toggle_pause(world.admin, world.contest.id)
    assert paused.is_frozen and paused.is_paused

    unfrozen = await control.toggle_freeze(world.admin, world.contest.id)
    assert not unfrozen.is_frozen
    assert unfrozen.is_paused


async def test_double_toggles_restore_the_starting_state(world):
    control = world.actions.control
    before = await world.db.get_contest(world.contest.id)

    for toggle in (control.toggle_pause, control.toggle_pause, control.toggle_freeze, control.toggle_freeze):
        await toggle(world.admin, world.contest.id)

    after = await world.db.get_contest(world.contest.id)
    assert (after.is_paused, after.paused_at, after.frozen_at) == (before.is_paused, before.paused_at, before.frozen_at)
    assert (after.is_paused, after.paused_at, after.frozen_at) == (False, None, None)
    assert after.end_at == before.end_at


async def test_freeze_broadcasts_flag(world):
    world.recorder.clear()
    await world.actions.control.toggle_freeze(world.admin, world.contest.id)
    assert world.recorder.payloads("LEADERBOARD_UPDATE") == [{"isFrozen": True}]
    assert world.recorder.payloads("CONTEST_UPDATE")[0]["action"] == "freeze_toggle"


async def test_extend_moves_end_forward(world):
    world.recorder.clear()
    contest = await world.actions.control.extend_time(world.admin, world.contest.id, 15)

    assert contest.end_at == world.contest.end_at + timedelta(minutes=15)
    assert contest.is_active
    update = world.recorder.payloads("CONTEST_UPDATE")[0]
    assert update["action"] == "time_extended"
    assert update["minutes"] == 15
    assert update["endTime"] == contest.end_at.isoformat()
    assert world.recorder.payloads("STATUS_UPDATE")[0]["isActive"] is True

    history = await ContestService(database=world.db).list_extensions(world.contest.id)
    assert [(e.minutes, e.previous_end_at, e.new_end_at) for e in history] == [
        (15, world.contest.end_at, contest.end_at)
    ]


async def test_extending_an_ended_contest_reactivates_it(world):
    now = utc_now().replace(microsecond=0)
    ended = await ContestService(database=world.db).create_contest(
        world.admin,
        ContestCreate(
            title="Autumn Cup",
            slug="autumn-cup",
            start_at=now - timedelta(hours=5),
            end_at=now - timedelta(hours=1),
            is_active=False,
        ),
    )

    contest = await world.actions.control.extend_time(world.admin, ended.id, 15)

    assert contest.end_at == ended.end_at + timedelta(minutes=15)
    assert contest.end_at < now
    assert contest.is_active


async def test_repeated_operation_id_applies_once(world):
    control = world.actions.control
    first = await control.extend_time(world.admin, world.contest.id, 10, operation_id="tg:1:42")
    world.recorder.clear()

    again = await control.extend_time(world.admin, world.contest.id, 10, operation_id="tg:1:42")

    assert again.end_at == first.end_at == world.contest.end_at + timedelta(minutes=10)
    assert world.recorder.events == []

    other = await control.extend_time(world.admin, world.contest.id, 10, operation_id="tg:1:43")
    assert other.end_at == first.end_at + timedelta(minutes=10)


async def test_extensions_without_operation_id_accumulate(world):
    control = world.actions.control
    await control.extend_time(world.admin, world.contest.id, 5)
    contest = await control.extend_time(world.admin, world.contest.id, 5)
    assert contest.end_at == world.contest.end_at + timedelta(minutes=10)


@pytest.mark.parametrize("minutes", [0, -5, True, 2.5, "10"])
async def test_extension_must_be_positive_whole_minutes(world, minutes):
    with pytest.raises(InvalidTransition) as err:
        await world.actions.control.extend_time(world.admin, world.contest.id, minutes)
    assert err.value.details["reason_code"] == "bad_minutes"


async def test_control_is_admin_only(world):
    control = world.actions.control
    for caller in (world.jury, world.team1_caller):
        with pytest.raises(Forbidden):
            await control.toggle_pause(caller, world.contest.id)
        with pytest.raises(Forbidden):
            await control.toggle_freeze(caller, world.contest.id)
        with pytest.raises(Forbidden):
            await control.extend_time(caller, world.contest.id, 5)


class TestIntake:
    async def _reason(self, world, contest_id, when):
        with pytest.raises(IntakeRefused) as err:
            await world.actions.control.check_intake(contest_id, when)
        return err.value.details["reason_code"]

    async def test_open_contest_accepts(self, world):
        contest = await world.actions.control.check_intake(world.contest.id, world.contest.start_at + timedelta(minutes=1))
        assert contest.id == world.contest.id

    async def test_window_edges(self, world):
        assert await self._reason(world, world.contest.id, world.contest.start_at - timedelta(seconds=1)) == "not_started"
        assert await self._reason(world, world.contest.id, world.contest.end_at + timedelta(seconds=1)) == "ended"
        await world.actions.control.check_intake(world.contest.id, world.contest.end_at)

    async def test_paused(self, world):
        await world.actions.control.toggle_pause(world.admin, world.contest.id)
        assert await self._reason(world, world.contest.id, None) == "paused"

    async def test_inactive(self, world):
        now = utc_now()
        idle = await ContestService(database=world.db).create_contest(
            world.admin,
            ContestCreate(title="Idle", slug="idle", start_at=now, end_at=now + timedelta(hours=1), is_active=False),
        )
        assert await self._reason(world, idle.id, None) == "inactive"

    async def test_blocked_team(self, world):
        await world.actions.control.toggle_team_block(world.admin, world.team1.id)
        team = await world.db.get_team(world.team1.id)
        with pytest.raises(IntakeRefused) as err:
            await world.actions.control.check_intake(world.contest.id, None, team=team)
        assert err.value.details["reason_code"] == "blocked"
        await world.actions.control.check_intake(world.contest.id, None, team=world.team2)
