import logging

from aiogram.exceptions import TelegramForbiddenError
from aiogram.methods import SendMessage

from contest_pulse.bot.services.notifications import TelegramNotifier
from contest_pulse.db.enums import EventType, SubmissionStatus


def notifier_for(world, bot) -> TelegramNotifier:
    return TelegramNotifier(bot, database=world.db, language="english")


async def deliver(world, notifier) -> None:
    for event in world.recorder.events:
        await notifier(event)


async def test_graded_submission_reaches_team_members_with_telegram(world, make_bot):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    world.recorder.clear()
    await world.actions.grade(world.jury, sub.id, SubmissionStatus.ACCEPTED, comment="clean code")

    bot = make_bot()
    await deliver(world, notifier_for(world, bot))

    # carol has no Telegram account, team2 is not concerned
    assert [chat for chat, _ in bot.sent] == [1001]
    text = bot.sent[0][1]
    assert "Problem: A" in text
    assert "Status: Accepted" in text
    assert "Score: 100" in text
    assert "Jury comment: clean code" in text


async def test_granted_retry_is_announced_to_the_team(world, make_bot):
    sub = await world.submit(world.team2, world.problem_a, minutes=10)
    await world.actions.grade(world.jury, sub.id, SubmissionStatus.REJECTED)
    await world.actions.request_retry(world.team2_caller, sub.id, "we think the tests were wrong")
    world.recorder.clear()
    await world.actions.grant_retry(world.jury, sub.id)

    bot = make_bot()
    await deliver(world, notifier_for(world, bot))

    assert bot.sent == [(1002, 'You may submit "A" again.')]


async def test_team_block_is_announced_to_that_team_only(world, make_bot):
    world.recorder.clear()
    await world.actions.toggle_team_block(world.admin, world.team2.id)
    await world.actions.toggle_team_block(world.admin, world.team2.id)

    bot = make_bot()
    await deliver(world, notifier_for(world, bot))

    assert bot.sent == [
        (1002, "Your team has been blocked. Submissions are closed for your team."),
        (1002, "Your team has been unblocked. You may submit again."),
    ]


async def test_pause_and_resume_reach_every_participant(world, make_bot):
    world.recorder.clear()
    await world.actions.toggle_pause(world.admin, world.contest.id)
    await world.actions.toggle_pause(world.admin, world.contest.id)

    bot = make_bot()
    await deliver(world, notifier_for(world, bot))

    assert sorted(chat for chat, _ in bot.sent) == [1001, 1001, 1002, 1002]
    assert bot.sent[0][1].startswith("The contest is paused.")
    assert bot.sent[-1][1].startswith("The contest has resumed.")


async def test_extension_message_mentions_minutes(world, make_bot):
    world.recorder.clear()
    await world.actions.extend_time(world.admin, world.contest.id, 15)

    bot = make_bot()
    await deliver(world, notifier_for(world, bot))

    assert len(bot.sent) == 2
    assert all("extended by 15 min" in text for _, text in bot.sent)


async def test_blocked_user_does_not_stop_delivery(world, make_bot, caplog):
    error = TelegramForbiddenError(
        method=SendMessage(chat_id=1001, text="-"),
        message="Forbidden: bot was blocked by the user",
    )
    bot = make_bot(fail_for={1001}, error=error)
    world.recorder.clear()
    await world.actions.toggle_pause(world.admin, world.contest.id)

    with caplog.at_level(logging.WARNING):
        await deliver(world, notifier_for(world, bot))

    assert [chat for chat, _ in bot.sent] == [1002]
    assert "Failed to deliver notification" in caplog.text


async def test_events_without_a_message_are_ignored(world, make_bot):
    sub = await world.submit(world.team1, world.problem_a, minutes=10)
    world.recorder.clear()
    await world.actions.toggle_freeze(world.admin, world.contest.id)
    await world.actions.grade(world.jury, sub.id, SubmissionStatus.REJECTED)
    assert EventType.LEADERBOARD_UPDATE.value in world.recorder.types()

    bot = make_bot()
    await deliver(world, notifier_for(world, bot))

    # only the graded submission produces a message
    assert len(bot.sent) == 1


async def test_without_bot_events_are_dropped(world):
    await world.actions.toggle_pause(world.admin, world.contest.id)
    notifier = TelegramNotifier(database=world.db)
    await deliver(world, notifier)
