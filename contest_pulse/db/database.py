# db/database.py
import uuid
from collections import defaultdict
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Optional, ClassVar, Self, Any, List, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from contest_pulse.config import Settings
from contest_pulse.db.enums import SubmissionStatus, ProblemCategory
from contest_pulse.db.models._base import Base
from contest_pulse.db.models.audit_log import AuditLog
from contest_pulse.db.models.contest import Contest
from contest_pulse.db.models.contest_extension import ContestExtension
from contest_pulse.db.models.jury_assignment import JuryAssignment
from contest_pulse.db.models.problem import Problem
from contest_pulse.db.models.submission import Submission
from contest_pulse.db.models.team import Team
from contest_pulse.db.models.team_score import TeamScore
from contest_pulse.db.models.team_user import TeamUser
from contest_pulse.db.models.user import User
from contest_pulse.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from contest_pulse.db.schemas.contest import (
    ContestCreate, ContestRead, ContestExtensionRead, ProblemCreate, ProblemRead,
)
from contest_pulse.db.schemas.submission import SubmissionCreate, SubmissionRead, GradeResult
from contest_pulse.db.schemas.team import TeamCreate, TeamRead
from contest_pulse.db.schemas.team_score import TeamScoreRead
from contest_pulse.db.schemas.team_user import TeamUserCreate, TeamUserRead
from contest_pulse.db.schemas.user import UserCreate, UserRead, UserUpdate, JuryAssignmentRead
from contest_pulse.errors import ConcurrencyConflict, IntakeRefused, InvalidTransition, NotFound
from contest_pulse.scoring.rules import (
    Attempt, Contribution, PenaltyRule, apply_delta, attempt_penalty, compute_score, problem_contribution,
)
from contest_pulse.utils.clock import utc_now
from contest_pulse.utils.locks import KeyedLocks
from contest_pulse.utils.sentinels import MISSING

# SQLSTATEs of serialization failures and deadlocks
_CONFLICT_SQLSTATES = {"40001", "40P01"}


def _is_conflict(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in _CONFLICT_SQLSTATES


class DataBase():
    """
    Async SQLAlchemy database singleton.
    Usage:
        db = DataBase()  # same instance everywhere
        async with db.session() as s:
            ...

    Services never touch sessions or models; every multi-row change happens in
    one method here, inside one ``session()`` block, so it commits or rolls back
    as a whole.
    """
    _instance: ClassVar[Optional["DataBase"]] = None

    def __new__(cls, *args: Any, **kwargs: Any) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)

        return cls._instance

    def __init__(self, echo: bool = False) -> None:
        if getattr(self, "_initialized", False):
            return

        url = Settings().database_url
        if url.startswith("sqlite"):
            # aiosqlite connections are bound to the loop that opened them
            self._engine: AsyncEngine = create_async_engine(url, echo=echo, poolclass=NullPool)
        else:
            self._engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self._sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            autoflush=False,
        )
        # in-process companion of the row lock on team_score
        self._score_locks: KeyedLocks[tuple[uuid.UUID, uuid.UUID]] = KeyedLocks()
        # (team, problem) intake: one active submission per pair
        self._intake_locks: KeyedLocks[tuple[uuid.UUID, uuid.UUID]] = KeyedLocks()

        self._initialized = True

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provides an AsyncSession with safe commit/rollback semantics.
        Store-level serialization failures surface as ConcurrencyConflict.
        """
        session: AsyncSession = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except DBAPIError as exc:
            await session.rollback()
            if _is_conflict(exc):
                raise ConcurrencyConflict("Concurrent update detected, retry the operation") from exc
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # --- schema management helpers (optional) ---

    async def create_all(self) -> None:
        """
        Create tables based on Base metadata. Use only in dev/tests; prefer Alembic in prod.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    # --- users ---

    async def create_user(self, data: UserCreate) -> UserRead:
        """
        Create a user and return its snapshot.
        On unique-constraint violation (username, tg_id) the IntegrityError is re-raised.
        """
        user = User(
            username=data.username,
            display_name=data.display_name,
            tg_id=data.tg_id,
            role=data.role,
        )
        async with self.session() as s:
            s.add(user)
            await s.flush()
            await s.refresh(user)

        return UserRead.model_validate(user)

    async def get_user_by_id(self, uid: Optional[uuid.UUID] = None) -> Optional[UserRead]:
        if uid is None:
            return None

        async with self.session() as s:
            user_row = await s.get(User, uid)

        return UserRead.model_validate(user_row) if user_row is not None else None

    async def get_user_by_tg_id(self, tg_id: Optional[int] = None) -> Optional[UserRead]:
        """
        Fetch a user by Telegram numeric ID.

        Args:
            tg_id: Telegram user ID. If None, returns None immediately.

        Returns:
            Optional[UserRead]: Pydantic DTO of the user if found; otherwise None.
        """
        if tg_id is None:
            return None

        async with self.session() as s:
            stmt = select(User).where(User.tg_id == tg_id)
            user_row = (await s.execute(stmt)).scalar_one_or_none()

        return UserRead.model_validate(user_row) if user_row is not None else None

    async def get_user_by_username(self, username: Optional[str] = None) -> Optional[UserRead]:
        if not username:
            return None
        if username.startswith("@"):
            username = username[1:]

        async with self.session() as s:
            stmt = select(User).where(User.username == username)
            user_row = (await s.execute(stmt)).scalar_one_or_none()

        return UserRead.model_validate(user_row) if user_row is not None else None

    async def update_user(self, data: UserUpdate) -> UserRead:
        """
        Partially update a user by id.
        Only fields explicitly provided (i.e., not MISSING) are updated.

        Raises:
            NotFound: if the user with given id does not exist.
            IntegrityError: on unique constraint violation (tg_id).
        """
        async with self.session() as s:
            db_user = await s.get(User, data.id)
            if db_user is None:
                raise NotFound("User not found", user_id=data.id)

            def provided(v: object) -> bool:
                return v is not MISSING

            if provided(data.display_name):
                db_user.display_name = data.display_name
            if provided(data.tg_id):
                db_user.tg_id = data.tg_id
            if provided(data.role):
                db_user.role = data.role

            await s.flush()
            await s.refresh(db_user)

        return UserRead.model_validate(db_user)

    async def assign_jury(self, user_id: uuid.UUID, contest_id: uuid.UUID) -> JuryAssignmentRead:
        """Idempotent: an existing assignment is returned unchanged."""
        async with self.session() as s:
            stmt = select(JuryAssignment).where(
                JuryAssignment.user_id == user_id, JuryAssignment.contest_id == contest_id
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            if row is None:
                row = JuryAssignment(user_id=user_id, contest_id=contest_id)
                s.add(row)
                await s.flush()
                await s.refresh(row)
            return JuryAssignmentRead.model_validate(row)

    async def list_assigned_contest_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        async with self.session() as s:
            stmt = select(JuryAssignment.contest_id).where(JuryAssignment.user_id == user_id)
            return set((await s.execute(stmt)).scalars().all())

    # --- contests & problems ---

    async def create_contest(self, payload: ContestCreate) -> ContestRead:
        async with self.session() as s:
            contest = Contest(
                title=payload.title,
                slug=payload.slug,
                start_at=payload.start_at,
                end_at=payload.end_at,
                is_active=payload.is_active,
            )
            s.add(contest)
            await s.flush()
            await s.refresh(contest)
            return ContestRead.model_validate(contest)

    async def get_contest(self, contest_id: uuid.UUID) -> Optional[ContestRead]:
        if not contest_id:
            return None
        async with self.session() as s:
            row = await s.get(Contest, contest_id)
        return ContestRead.model_validate(row) if row is not None else None

    async def get_contest_by_slug(self, slug: str) -> Optional[ContestRead]:
        """Fetch a contest by its slug (case-insensitive)."""
        name = (slug or "").strip()
        if not name:
            return None
        async with self.session() as s:
            stmt = select(Contest).where(func.lower(Contest.slug) == name.lower())
            row = (await s.execute(stmt)).scalar_one_or_none()
        return ContestRead.model_validate(row) if row is not None else None

    async def list_contest_extensions(self, contest_id: uuid.UUID) -> list[ContestExtensionRead]:
        async with self.session() as s:
            stmt = (
                select(ContestExtension)
                .where(ContestExtension.contest_id == contest_id)
                .order_by(ContestExtension.created_at.asc())
            )
            rows = (await s.execute(stmt)).scalars().all()
        return [ContestExtensionRead.model_validate(r) for r in rows]

    async def create_problem(self, payload: ProblemCreate) -> ProblemRead:
        async with self.session() as s:
            problem = Problem(
                title=payload.title,
                contest_id=payload.contest_id,
                category=payload.category,
                points=payload.points,
                order_index=payload.order_index,
            )
            s.add(problem)
            await s.flush()
            await s.refresh(problem)
            return ProblemRead.model_validate(problem)

    async def get_problem(self, problem_id: uuid.UUID) -> Optional[ProblemRead]:
        if not problem_id:
            return None
        async with self.session() as s:
            row = await s.get(Problem, problem_id)
        return ProblemRead.model_validate(row) if row is not None else None

    async def list_problems(self, contest_id: uuid.UUID, category: ProblemCategory | None = None) -> list[ProblemRead]:
        async with self.session() as s:
            stmt = select(Problem).where(Problem.contest_id == contest_id)
            if category is not None:
                stmt = stmt.where(Problem.category == category)
            stmt = stmt.order_by(Problem.order_index.asc(), Problem.title.asc())
            rows = (await s.execute(stmt)).scalars().all()
        return [ProblemRead.model_validate(r) for r in rows]

    # --- teams ---

    async def create_team(self, payload: TeamCreate) -> TeamRead:
        """Insert a team together with its zeroed team_score row."""
        async with self.session() as s:
            team = Team(
                title=payload.title,
                slug=payload.slug,
                contest_id=payload.contest_id,
                category=payload.category,
            )
            s.add(team)
            await s.flush()
            s.add(TeamScore(team_id=team.id, contest_id=team.contest_id, solved_count=0, total_penalty=0))
            await s.flush()
            await s.refresh(team)
            return TeamRead.model_validate(team)

    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamRead]:
        if not team_id:
            return None
        async with self.session() as s:
            row = await s.get(Team, team_id)
        return TeamRead.model_validate(row) if row is not None else None

    async def toggle_team_block(self, team_id: uuid.UUID) -> TeamRead:
        async with self.session() as s:
            stmt = select(Team).where(Team.id == team_id).with_for_update()
            team = (await s.execute(stmt)).scalar_one_or_none()
            if team is None:
                raise NotFound("Team not found", team_id=team_id)
            team.is_blocked = not team.is_blocked
            await s.flush()
            await s.refresh(team)
            return TeamRead.model_validate(team)

    async def list_teams(self, contest_id: uuid.UUID) -> list[TeamRead]:
        async with self.session() as s:
            stmt = select(Team).where(Team.contest_id == contest_id).order_by(Team.created_at.asc(), Team.id.asc())
            rows = (await s.execute(stmt)).scalars().all()
        return [TeamRead.model_validate(r) for r in rows]

    async def add_team_member(self, payload: TeamUserCreate) -> TeamUserRead:
        async with self.session() as s:
            membership = TeamUser(role=payload.role, user_id=payload.user_id, team_id=payload.team_id)
            s.add(membership)
            await s.flush()
            await s.refresh(membership)
            return TeamUserRead.model_validate(membership)

    async def get_memberships_by_user(self, user_id: uuid.UUID) -> List[TeamUserRead]:
        async with self.session() as s:
            stmt = select(TeamUser).where(TeamUser.user_id == user_id)
            rows = (await s.execute(stmt)).scalars().all()
        return [TeamUserRead.model_validate(r) for r in rows]

    async def list_team_members(self, team_id: uuid.UUID) -> List[UserRead]:
        async with self.session() as s:
            stmt = (
                select(User)
                .join(TeamUser, TeamUser.user_id == User.id)
                .where(TeamUser.team_id == team_id)
                .order_by(User.username.asc())
            )
            rows = (await s.execute(stmt)).scalars().all()
        return [UserRead.model_validate(r) for r in rows]

    async def list_contest_participants(self, contest_id: uuid.UUID) -> List[UserRead]:
        async with self.session() as s:
            stmt = (
                select(User)
                .join(TeamUser, TeamUser.user_id == User.id)
                .join(Team, Team.id == TeamUser.team_id)
                .where(Team.contest_id == contest_id)
                .order_by(User.username.asc())
                .distinct()
            )
            rows = (await s.execute(stmt)).scalars().all()
        return [UserRead.model_validate(r) for r in rows]

    # --- submissions: reads ---

    async def get_submission_by_id(self, sub_id: uuid.UUID) -> Optional[SubmissionRead]:
        if not sub_id:
            return None
        async with self.session() as s:
            db_obj = await s.get(Submission, sub_id)
            return SubmissionRead.model_validate(db_obj) if db_obj else None

    async def get_submission_context(
        self, sub_id: uuid.UUID
    ) -> Optional[Tuple[SubmissionRead, ProblemRead, TeamRead, ContestRead]]:
        """Submission with the problem, team and contest it belongs to."""
        if not sub_id:
            return None
        async with self.session() as s:
            stmt = (
                select(Submission, Problem, Team, Contest)
                .join(Problem, Problem.id == Submission.problem_id)
                .join(Team, Team.id == Submission.team_id)
                .join(Contest, Contest.id == Problem.contest_id)
                .where(Submission.id == sub_id)
            )
            row = (await s.execute(stmt)).one_or_none()
        if row is None:
            return None
        sub, problem, team, contest = row
        return (
            SubmissionRead.model_validate(sub),
            ProblemRead.model_validate(problem),
            TeamRead.model_validate(team),
            ContestRead.model_validate(contest),
        )

    async def list_submissions_by_team(
        self, team_id: uuid.UUID, problem_id: uuid.UUID | None = None
    ) -> list[SubmissionRead]:
        """
        All submissions of a team (optionally for one problem), newest first.
        """
        if not team_id:
            return []
        async with self.session() as s:
            stmt = select(Submission).where(Submission.team_id == team_id)
            if problem_id is not None:
                stmt = stmt.where(Submission.problem_id == problem_id)
            stmt = stmt.order_by(Submission.submitted_at.desc(), Submission.id.desc())
            rows = (await s.execute(stmt)).scalars().all()
        return [SubmissionRead.model_validate(r) for r in rows]

    async def list_pending_submissions(self, contest_ids: set[uuid.UUID] | None = None) -> list[SubmissionRead]:
        """Jury queue: PENDING submissions, oldest first."""
        async with self.session() as s:
            stmt = (
                select(Submission)
                .join(Problem, Problem.id == Submission.problem_id)
                .where(Submission.status == SubmissionStatus.PENDING)
            )
            if contest_ids is not None:
                if not contest_ids:
                    return []
                stmt = stmt.where(Problem.contest_id.in_(contest_ids))
            stmt = stmt.order_by(Submission.submitted_at.asc(), Submission.id.asc())
            rows = (await s.execute(stmt)).scalars().all()
        return [SubmissionRead.model_validate(r) for r in rows]

    async def list_retry_requests(self, contest_ids: set[uuid.UUID] | None = None) -> list[SubmissionRead]:
        """Requested but not yet granted retries, most recent request first."""
        async with self.session() as s:
            stmt = (
                select(Submission)
                .join(Problem, Problem.id == Submission.problem_id)
                .where(Submission.retry_requested.is_(True), Submission.can_retry.is_(False))
            )
            if contest_ids is not None:
                if not contest_ids:
                    return []
                stmt = stmt.where(Problem.contest_id.in_(contest_ids))
            stmt = stmt.order_by(Submission.retry_requested_at.desc())
            rows = (await s.execute(stmt)).scalars().all()
        return [SubmissionRead.model_validate(r) for r in rows]

    # --- submissions: writes ---

    async def create_submission(self, data: SubmissionCreate) -> SubmissionRead:
        """
        Insert a new PENDING submission row. History is append-only: earlier
        rows of the same (team, problem) are never touched here.

        A (team, problem) pair keeps one active submission: the insert is
        refused unless the latest earlier row had a retry granted. The check
        and the insert run in one transaction under the team row lock.

        Raises:
            NotFound: the team does not exist.
            IntakeRefused: the team is blocked (``reason_code="blocked"``).
            InvalidTransition: an active submission exists (``reason_code="already_submitted"``).
        """
        async with self._intake_locks.hold((data.team_id, data.problem_id)), self.session() as s:
            team_stmt = select(Team).where(Team.id == data.team_id).with_for_update()
            team = (await s.execute(team_stmt)).scalar_one_or_none()
            if team is None:
                raise NotFound("Team not found", team_id=data.team_id)
            if team.is_blocked:
                raise IntakeRefused("Team is blocked", reason_code="blocked", team_id=data.team_id)

            latest_stmt = (
                select(Submission.id, Submission.can_retry)
                .where(Submission.team_id == data.team_id, Submission.problem_id == data.problem_id)
                .order_by(Submission.submitted_at.desc(), Submission.id.desc())
                .limit(1)
            )
            latest = (await s.execute(latest_stmt)).first()
            if latest is not None and not latest.can_retry:
                raise InvalidTransition(
                    "A submission for this problem already exists",
                    reason_code="already_submitted",
                    submission_id=latest.id,
                )

            db_obj = Submission(
                team_id=data.team_id,
                problem_id=data.problem_id,
                submitted_by_id=data.submitted_by_id,
                file_path=data.file_path,
                auto_score=data.auto_score,
                submitted_at=data.submitted_at or utc_now(),
                status=SubmissionStatus.PENDING,
            )
            s.add(db_obj)
            await s.flush()
            await s.refresh(db_obj)
            return SubmissionRead.model_validate(db_obj)

    def _score_lock(self, team_id: uuid.UUID, contest_id: uuid.UUID) -> AbstractAsyncContextManager[None]:
        return self._score_locks.hold((team_id, contest_id))

    async def _locked_team_score(self, s: AsyncSession, team_id: uuid.UUID, contest_id: uuid.UUID) -> TeamScore:
        stmt = (
            select(TeamScore)
            .where(TeamScore.team_id == team_id, TeamScore.contest_id == contest_id)
            .with_for_update()
        )
        score = (await s.execute(stmt)).scalar_one_or_none()
        if score is None:
            score = TeamScore(team_id=team_id, contest_id=contest_id, solved_count=0, total_penalty=0)
            s.add(score)
            try:
                await s.flush()
            except IntegrityError as exc:
                raise ConcurrencyConflict("Team score row was created concurrently") from exc
        return score

    async def apply_verdict_delta(
        self,
        s: AsyncSession,
        team_id: uuid.UUID,
        contest_id: uuid.UUID,
        old: Contribution,
        new: Contribution,
    ) -> TeamScore:
        """
        Apply ``new - old`` to the locked team_score row inside the caller's
        transaction. Must run while ``_score_lock(team_id, contest_id)`` is held.
        """
        score_row = await self._locked_team_score(s, team_id, contest_id)
        score_row.solved_count, score_row.total_penalty = apply_delta(
            score_row.solved_count, score_row.total_penalty, old, new
        )
        return score_row

    async def grade_submission(
        self,
        sub_id: uuid.UUID,
        verdict: SubmissionStatus,
        *,
        penalty_rule: PenaltyRule,
        manual_score: float | None = None,
        comment: str | None = None,
        judged_by_id: uuid.UUID | None = None,
    ) -> GradeResult:
        """
        Apply a verdict and the matching team_score delta in one transaction.

        The (team, problem) contribution is replayed from history before and
        after the status change, and only the difference is applied, so
        re-grading never double counts.

        Raises:
            NotFound: submission (or its problem) does not exist.
            InvalidScore: manual score outside [0, points]; nothing is written.
            ConcurrencyConflict: the store rejected a concurrent update.
        """
        context = await self.get_submission_context(sub_id)
        if context is None:
            raise NotFound("Submission not found", submission_id=sub_id)
        _, _, team, contest = context

        async with self._score_lock(team.id, contest.id):
            async with self.session() as s:
                score_row = await self._locked_team_score(s, team.id, contest.id)

                stmt = select(Submission).where(Submission.id == sub_id).with_for_update()
                sub = (await s.execute(stmt)).scalar_one_or_none()
                if sub is None:
                    raise NotFound("Submission not found", submission_id=sub_id)
                problem = await s.get(Problem, sub.problem_id)
                contest_row = await s.get(Contest, problem.contest_id)

                final_score = compute_score(problem.points, verdict, manual_score, sub.auto_score)

                stmt = (
                    select(Submission)
                    .where(Submission.team_id == sub.team_id, Submission.problem_id == sub.problem_id)
                    .with_for_update()
                )
                siblings = (await s.execute(stmt)).scalars().all()
                history = [Attempt(r.id, r.submitted_at, r.status) for r in siblings]
                old = problem_contribution(history, contest_row.start_at, penalty_rule)
                history = [
                    Attempt(a.id, a.submitted_at, verdict) if a.id == sub.id else a
                    for a in history
                ]
                new = problem_contribution(history, contest_row.start_at, penalty_rule)

                previous_status = sub.status
                sub.status = verdict
                sub.final_score = final_score
                sub.jury_comment = comment
                sub.judged_by_id = judged_by_id
                sub.judged_at = utc_now()
                # a changed verdict shifts the rejection count of every later attempt
                for row in siblings:
                    row.penalty_minutes = attempt_penalty(history, row.id, contest_row.start_at, penalty_rule)

                score_row = await self.apply_verdict_delta(s, sub.team_id, contest_row.id, old, new)

                await s.flush()
                await s.refresh(sub)
                delta = new - old
                result = GradeResult(
                    submission=SubmissionRead.model_validate(sub),
                    contest_id=contest_row.id,
                    previous_status=previous_status,
                    solved_count=score_row.solved_count,
                    total_penalty=score_row.total_penalty,
                    solved_delta=delta.solved,
                    penalty_delta=delta.penalty,
                )
        return result

    async def request_retry(self, sub_id: uuid.UUID, reason: str) -> SubmissionRead:
        async with self.session() as s:
            stmt = select(Submission).where(Submission.id == sub_id).with_for_update()
            sub = (await s.execute(stmt)).scalar_one_or_none()
            if sub is None:
                raise NotFound("Submission not found", submission_id=sub_id)
            if sub.status != SubmissionStatus.REJECTED:
                raise InvalidTransition("Retry can only be requested for rejected submissions", reason_code="not_rejected")
            if sub.can_retry:
                raise InvalidTransition("Retry already granted", reason_code="already_granted")
            if sub.retry_requested:
                raise InvalidTransition("Retry already requested", reason_code="already_requested")

            sub.retry_requested = True
            sub.retry_reason = reason
            sub.retry_requested_at = utc_now()
            await s.flush()
            await s.refresh(sub)
            return SubmissionRead.model_validate(sub)

    async def grant_retry(
        self,
        sub_id: uuid.UUID,
        granted_by_id: uuid.UUID | None,
        *,
        require_request: bool = True,
    ) -> SubmissionRead:
        """
        Set can_retry; the status stays terminal so the team knows to resubmit.
        Without ``require_request`` any graded submission can be reopened.
        """
        async with self.session() as s:
            stmt = select(Submission).where(Submission.id == sub_id).with_for_update()
            sub = (await s.execute(stmt)).scalar_one_or_none()
            if sub is None:
                raise NotFound("Submission not found", submission_id=sub_id)
            if not sub.status.is_terminal:
                raise InvalidTransition("Submission is not graded yet", reason_code="not_graded")
            if sub.can_retry:
                raise InvalidTransition("Retry already granted", reason_code="already_granted")
            if require_request and not sub.retry_requested:
                raise InvalidTransition("No retry request for this submission", reason_code="not_requested")

            sub.can_retry = True
            sub.retry_requested = False
            sub.retry_granted_by_id = granted_by_id
            await s.flush()
            await s.refresh(sub)
            return SubmissionRead.model_validate(sub)

    # --- team scores ---

    async def get_team_score(self, team_id: uuid.UUID, contest_id: uuid.UUID) -> Optional[TeamScoreRead]:
        async with self.session() as s:
            stmt = select(TeamScore).where(TeamScore.team_id == team_id, TeamScore.contest_id == contest_id)
            row = (await s.execute(stmt)).scalar_one_or_none()
        return TeamScoreRead.model_validate(row) if row is not None else None

    async def list_team_scores(self, contest_id: uuid.UUID) -> list[Tuple[TeamScoreRead, str]]:
        """(score, team title) pairs in insertion order of the score rows."""
        async with self.session() as s:
            stmt = (
                select(TeamScore, Team.title)
                .join(Team, Team.id == TeamScore.team_id)
                .where(TeamScore.contest_id == contest_id)
                .order_by(TeamScore.id.asc())
            )
            rows = (await s.execute(stmt)).all()
        return [(TeamScoreRead.model_validate(score), title) for score, title in rows]

    async def rebuild_team_scores(self, contest_id: uuid.UUID, penalty_rule: PenaltyRule) -> list[TeamScoreRead]:
        """
        Recompute every team_score row of a contest from submission history.

        Rows are updated in place (missing ones are inserted), so running the
        rebuild twice yields identical rows and the ranking order of ties is
        preserved.
        """
        contest = await self.get_contest(contest_id)
        if contest is None:
            raise NotFound("Contest not found", contest_id=contest_id)
        teams = await self.list_teams(contest_id)

        async with AsyncExitStack() as stack:
            # same lock order everywhere: grading holds at most one of these
            for team in sorted(teams, key=lambda t: str(t.id)):
                await stack.enter_async_context(self._score_lock(team.id, contest_id))

            async with self.session() as s:
                stmt = (
                    select(TeamScore)
                    .where(TeamScore.contest_id == contest_id)
                    .order_by(TeamScore.id.asc())
                    .with_for_update()
                )
                existing = {row.team_id: row for row in (await s.execute(stmt)).scalars().all()}

                stmt = (
                    select(Submission.id, Submission.team_id, Submission.problem_id, Submission.submitted_at, Submission.status)
                    .join(Problem, Problem.id == Submission.problem_id)
                    .join(Team, and_(Team.id == Submission.team_id, Team.contest_id == contest_id))
                    .where(Problem.contest_id == contest_id)
                )
                histories: dict[tuple[uuid.UUID, uuid.UUID], list[Attempt]] = defaultdict(list)
                for r in (await s.execute(stmt)).all():
                    histories[(r.team_id, r.problem_id)].append(Attempt(r.id, r.submitted_at, r.status))

                totals: dict[uuid.UUID, list[int]] = {team.id: [0, 0] for team in teams}
                for (team_id, _problem_id), attempts in histories.items():
                    contribution = problem_contribution(attempts, contest.start_at, penalty_rule)
                    totals[team_id][0] += contribution.solved
                    totals[team_id][1] += contribution.penalty

                for team in teams:
                    row = existing.get(team.id)
                    if row is None:
                        row = TeamScore(team_id=team.id, contest_id=contest_id)
                        s.add(row)
                        existing[team.id] = row
                    solved, penalty = totals[team.id]
                    if row.solved_count != solved or row.total_penalty != penalty:
                        row.solved_count = solved
                        row.total_penalty = penalty

                await s.flush()
                rows = sorted(existing.values(), key=lambda r: r.id)
                return [TeamScoreRead.model_validate(r) for r in rows]

    # --- contest control ---

    async def toggle_pause(self, contest_id: uuid.UUID) -> ContestRead:
        async with self.session() as s:
            stmt = select(Contest).where(Contest.id == contest_id).with_for_update()
            contest = (await s.execute(stmt)).scalar_one_or_none()
            if contest is None:
                raise NotFound("Contest not found", contest_id=contest_id)
            contest.is_paused = not contest.is_paused
            contest.paused_at = utc_now() if contest.is_paused else None
            await s.flush()
            await s.refresh(contest)
            return ContestRead.model_validate(contest)

    async def toggle_freeze(self, contest_id: uuid.UUID) -> ContestRead:
        async with self.session() as s:
            stmt = select(Contest).where(Contest.id == contest_id).with_for_update()
            contest = (await s.execute(stmt)).scalar_one_or_none()
            if contest is None:
                raise NotFound("Contest not found", contest_id=contest_id)
            contest.frozen_at = utc_now() if contest.frozen_at is None else None
            await s.flush()
            await s.refresh(contest)
            return ContestRead.model_validate(contest)

    async def extend_contest(
        self,
        contest_id: uuid.UUID,
        minutes: int,
        *,
        operation_id: str | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> Tuple[ContestRead, bool]:
        """
        Move end_at forward by ``minutes`` and reactivate the contest.

        Returns (contest, applied). With an ``operation_id`` that was already
        applied to this contest nothing changes and ``applied`` is False.
        """
        async with self.session() as s:
            stmt = select(Contest).where(Contest.id == contest_id).with_for_update()
            contest = (await s.execute(stmt)).scalar_one_or_none()
            if contest is None:
                raise NotFound("Contest not found", contest_id=contest_id)

            if operation_id is not None:
                dup_stmt = select(ContestExtension.id).where(
                    ContestExtension.contest_id == contest_id,
                    ContestExtension.operation_id == operation_id,
                )
                if (await s.execute(dup_stmt)).first() is not None:
                    return ContestRead.model_validate(contest), False

            previous_end = contest.end_at
            contest.end_at = previous_end + timedelta(minutes=minutes)
            contest.is_active = True
            s.add(
                ContestExtension(
                    contest_id=contest_id,
                    minutes=minutes,
                    operation_id=operation_id,
                    actor_id=actor_id,
                    previous_end_at=previous_end,
                    new_end_at=contest.end_at,
                )
            )
            try:
                await s.flush()
            except IntegrityError as exc:
                raise ConcurrencyConflict("Extension with this operation id is being applied", operation_id=operation_id) from exc
            await s.refresh(contest)
            return ContestRead.model_validate(contest), True

    # ---------------------------------
    # Audit log helpers
    # ---------------------------------

    async def create_audit_log(self, payload: AuditLogCreate) -> AuditLogRead:
        """Persist a new audit log entry."""
        async with self.session() as s:
            record = AuditLog(
                actor_id=payload.actor_id,
                action=payload.action,
                payload=dict(payload.payload or {}),
            )
            s.add(record)
            await s.flush()
            await s.refresh(record)
            return AuditLogRead.model_validate(record)

    async def list_audit_logs(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor_id: uuid.UUID | None = None,
        action: str | None = None,
    ) -> tuple[list[AuditLogRead], int]:
        """Return paginated audit log entries filtered by actor/action."""
        limit = max(0, int(limit))
        offset = max(0, int(offset))

        async with self.session() as s:
            stmt = select(AuditLog).order_by(AuditLog.created_at.desc())
            count_stmt = select(func.count(AuditLog.id))
            if actor_id:
                stmt = stmt.where(AuditLog.actor_id == actor_id)
                count_stmt = count_stmt.where(AuditLog.actor_id == actor_id)
            if action:
                stmt = stmt.where(AuditLog.action == action)
                count_stmt = count_stmt.where(AuditLog.action == action)

            if limit:
                stmt = stmt.limit(limit)
            if offset:
                stmt = stmt.offset(offset)

            rows = (await s.execute(stmt)).scalars().all()
            total = int((await s.execute(count_stmt)).scalar_one())

        return [AuditLogRead.model_validate(row) for row in rows], total
