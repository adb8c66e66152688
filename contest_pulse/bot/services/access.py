# bot/services/access.py
from uuid import UUID
from typing import FrozenSet, Optional
from pydantic import BaseModel, ConfigDict, Field

from contest_pulse.db.enums import UserRole
from contest_pulse.errors import Forbidden


class Caller(BaseModel):
	"""Who is asking. Supplied by the session layer (see ``UserService.build_caller``)."""

	model_config = ConfigDict(frozen=True)

	user_id: Optional[UUID] = None
	role: UserRole = UserRole.PARTICIPANT
	assigned_contest_ids: FrozenSet[UUID] = Field(default_factory=frozenset)
	team_ids: FrozenSet[UUID] = Field(default_factory=frozenset)

	@property
	def is_admin(self) -> bool:
		return self.role == UserRole.ADMIN

	def can_grade(self, contest_id: UUID) -> bool:
		if self.role == UserRole.ADMIN:
			return True
		return self.role == UserRole.JURY and contest_id in self.assigned_contest_ids

	def grading_scope(self) -> Optional[set[UUID]]:
		"""Contest ids visible to a grader, None for unrestricted."""
		if self.is_admin:
			return None
		if self.role == UserRole.JURY:
			return set(self.assigned_contest_ids)
		return set()


def require_admin(caller: Caller) -> None:
	if not caller.is_admin:
		raise Forbidden("Only administrators can do this", role=caller.role.value)


def require_grader(caller: Caller, contest_id: UUID) -> None:
	if not caller.can_grade(contest_id):
		raise Forbidden(
			"Caller is neither an administrator nor a jury member of this contest",
			role=caller.role.value,
			contest_id=contest_id,
		)


def require_team_member(caller: Caller, team_id: UUID) -> None:
	if team_id not in caller.team_ids:
		raise Forbidden("Caller is not a member of this team", team_id=team_id)


__all__ = ["Caller", "require_admin", "require_grader", "require_team_member"]
