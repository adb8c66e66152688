# bot/services/user.py
from uuid import UUID
from typing import Self, ClassVar, Optional
from contest_pulse.db.schemas.user import UserRead, UserCreate, UserUpdate
from contest_pulse.db.enums import UserRole
from contest_pulse.db.database import DataBase
from contest_pulse.bot.services.access import Caller
from contest_pulse.bot.services.audit_log import instrument_service_class

class UserService:
    _instance: ClassVar[Optional["UserService"]] = None

    def __new__(cls) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return

        self.database = DataBase()
        self.users: dict[int, UserRead] = dict()
        self._initialized = True

    async def create_user(self, user: UserCreate) -> UserRead:
        new_user = await self.database.create_user(user)
        if isinstance(new_user.tg_id, int):
            self.users[new_user.tg_id] = new_user
        return new_user

    async def update_user(self, user: UserUpdate) -> UserRead:
        new_user = await self.database.update_user(user)
        if isinstance(new_user.tg_id, int):
            self.users[new_user.tg_id] = new_user
        return new_user

    async def change_role(self, user: UserRead, role: UserRole) -> UserRead:
        return await self.update_user(UserUpdate(id=user.id, role=role))

    async def get_user(self, uid: Optional[UUID] = None) -> Optional[UserRead]:
        return await self.database.get_user_by_id(uid)

    async def get_by_username(self, username: str) -> Optional[UserRead]:
        return await self.database.get_user_by_username(username)

    async def get_by_telegram(
        self,
        tg_id: int,
        tg_username: Optional[str] = None,
        autocreate: bool = False,
    ) -> Optional[UserRead]:
        """
        Resolve a Telegram account to a user.

        With ``autocreate`` an unknown account is registered as a participant
        under its Telegram username (or ``tg<id>`` when it has none).
        """
        if tg_id in self.users:
            return self.users[tg_id]

        user = await self.database.get_user_by_tg_id(tg_id)
        if user is None and tg_username:
            # pre-registered by username, bind the Telegram id now
            user = await self.database.get_user_by_username(tg_username)
            if user is not None and user.tg_id is None:
                user = await self.database.update_user(UserUpdate(id=user.id, tg_id=tg_id))
            elif user is not None:
                user = None
        if user is None and autocreate:
            user = await self.database.create_user(UserCreate(username=tg_username or f"tg{tg_id}", tg_id=tg_id))

        if user is not None:
            self.users[tg_id] = user
        return user

    async def build_caller(self, user: UserRead) -> Caller:
        """Role and scope tuple of a user, as the core services expect it."""
        assigned = frozenset()
        if user.role == UserRole.JURY:
            assigned = frozenset(await self.database.list_assigned_contest_ids(user.id))
        memberships = await self.database.get_memberships_by_user(user.id)
        return Caller(
            user_id=user.id,
            role=user.role,
            assigned_contest_ids=assigned,
            team_ids=frozenset(m.team_id for m in memberships),
        )


instrument_service_class(
    UserService,
    prefix="services.user",
    actor_fields=("user",),
    exclude={"get_user", "get_by_username", "get_by_telegram", "build_caller"},
)
