import os
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

# must run before anything imports contest_pulse: DataBase and Settings are process-wide singletons
_DB_DIR = tempfile.mkdtemp(prefix="contest_pulse_tests_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["DEFAULT_LANGUAGE"] = "english"
os.environ["PENALTY_PER_REJECTION"] = "20"
os.environ["RETRY_REASON_MIN_LENGTH"] = "10"

import pytest

from contest_pulse.bot.actions import ContestActions
from contest_pulse.bot.services.access import Caller
from contest_pulse.bot.services.contest import ContestService
from contest_pulse.bot.services.team import TeamService
from contest_pulse.bot.services.user import UserService
from contest_pulse.db.database import DataBase
from contest_pulse.db.enums import ContestantRole, ProblemCategory, UserRole
from contest_pulse.db.schemas.contest import ContestCreate, ContestRead, ProblemCreate, ProblemRead
from contest_pulse.db.schemas.event import ContestEvent
from contest_pulse.db.schemas.submission import SubmissionRead
from contest_pulse.db.schemas.team import TeamCreate, TeamRead
from contest_pulse.db.schemas.user import UserCreate, UserRead
from contest_pulse.utils.clock import utc_now


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[ContestEvent] = []

    async def publish(self, event: ContestEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type.value for e in self.events]

    def payloads(self, event_type: str) -> list[dict[str, Any]]:
        return [e.payload for e in self.events if e.type.value == event_type]

    def clear(self) -> None:
        self.events.clear()


class FakeBot:
    """Stands in for ``aiogram.Bot``; only ``send_message`` is used."""

    def __init__(self, fail_for: set[int] | None = None, error: Exception | None = None) -> None:
        self.sent: list[tuple[int, str]] = []
        self._fail_for = fail_for or set()
        self._error = error

    async def send_message(self, chat_id: int, text: str, **kwargs: Any) -> None:
        if chat_id in self._fail_for and self._error is not None:
            raise self._error
        self.sent.append((chat_id, text))


@dataclass
class World:
    """One running contest: admin, an assigned and an unassigned jury, two CORE teams."""

    db: DataBase
    recorder: RecordingPublisher
    actions: ContestActions
    contest: ContestRead
    problem_a: ProblemRead
    problem_b: ProblemRead
    web_problem: ProblemRead
    team1: TeamRead
    team2: TeamRead
    admin: Caller
    jury: Caller
    outsider_jury: Caller
    team1_caller: Caller
    team2_caller: Caller
    users: dict[str, UserRead] = field(default_factory=dict)

    async def submit(self, team: TeamRead, problem: ProblemRead, minutes: int, file_path: str = "solution.py") -> SubmissionRead:
        caller = self.team1_caller if team.id == self.team1.id else self.team2_caller
        result = await self.actions.submit(
            caller,
            team.id,
            problem.id,
            file_path,
            submitted_at=self.contest.start_at + timedelta(minutes=minutes),
        )
        assert result.success, result.message
        return result.data

    async def score(self, team: TeamRead) -> tuple[int, int]:
        row = await self.db.get_team_score(team.id, self.contest.id)
        return row.solved_count, row.total_penalty


@pytest.fixture
async def database() -> DataBase:
    db = DataBase()
    await db.drop_all()
    await db.create_all()
    # UserService caches by Telegram id across tests
    UserService().users.clear()
    yield db


@pytest.fixture
def recorder() -> RecordingPublisher:
    return RecordingPublisher()


async def _user(db: DataBase, username: str, role: UserRole, tg_id: int | None = None) -> UserRead:
    return await db.create_user(UserCreate(username=username, role=role, tg_id=tg_id))


@pytest.fixture
async def world(database: DataBase, recorder: RecordingPublisher) -> World:
    db = database
    admin_user = await _user(db, "admin", UserRole.ADMIN)
    admin = Caller(user_id=admin_user.id, role=UserRole.ADMIN)

    now = utc_now().replace(microsecond=0)
    contests = ContestService(database=db)
    contest = await contests.create_contest(
        admin,
        ContestCreate(title="Spring Cup", slug="spring-cup", start_at=now - timedelta(hours=2), end_at=now + timedelta(hours=3)),
    )
    problem_a = await contests.create_problem(admin, ProblemCreate(title="A", contest_id=contest.id, points=100, order_index=1))
    problem_b = await contests.create_problem(admin, ProblemCreate(title="B", contest_id=contest.id, points=100, order_index=2))
    web_problem = await contests.create_problem(
        admin, ProblemCreate(title="Landing", contest_id=contest.id, category=ProblemCategory.WEB, points=50)
    )

    jury_user = await _user(db, "jury", UserRole.JURY)
    outsider_user = await _user(db, "outsider", UserRole.JURY)
    await contests.assign_jury(admin, jury_user.id, contest.id)

    teams = TeamService(database=db)
    team1 = await teams.create_team(admin, TeamCreate(title="Team One", slug="team-one", contest_id=contest.id))
    team2 = await teams.create_team(admin, TeamCreate(title="Team Two", slug="team-two", contest_id=contest.id))
    alice = await _user(db, "alice", UserRole.PARTICIPANT, tg_id=1001)
    bob = await _user(db, "bob", UserRole.PARTICIPANT, tg_id=1002)
    carol = await _user(db, "carol", UserRole.PARTICIPANT)
    await teams.add_member(admin, team1.id, alice.id, ContestantRole.CAPTAIN)
    await teams.add_member(admin, team1.id, carol.id)
    await teams.add_member(admin, team2.id, bob.id, ContestantRole.CAPTAIN)

    users = UserService()
    return World(
        db=db,
        recorder=recorder,
        actions=ContestActions(publisher=recorder, database=db),
        contest=contest,
        problem_a=problem_a,
        problem_b=problem_b,
        web_problem=web_problem,
        team1=team1,
        team2=team2,
        admin=admin,
        jury=await users.build_caller(jury_user),
        outsider_jury=await users.build_caller(outsider_user),
        team1_caller=await users.build_caller(alice),
        team2_caller=await users.build_caller(bob),
        users={u.username: u for u in (admin_user, jury_user, outsider_user, alice, bob, carol)},
    )



@pytest.fixture
def make_bot():
    return FakeBot
