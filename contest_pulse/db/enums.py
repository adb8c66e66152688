# db/enums.py
import enum

class UserRole(enum.StrEnum):
    ADMIN = "admin"
    JURY = "jury"
    PARTICIPANT = "participant"

class ContestantRole(enum.StrEnum):
    CAPTAIN = "captain"
    MEMBER = "member"

class SubmissionStatus(enum.StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionStatus.PENDING

class ProblemCategory(enum.StrEnum):
    CORE = "core"
    WEB = "web"
    ANDROID = "android"

class EventType(enum.StrEnum):
    SUBMISSION_CREATED = "SUBMISSION_CREATED"
    SUBMISSION_GRADED = "SUBMISSION_GRADED"
    RETRY_REQUESTED = "RETRY_REQUESTED"
    RETRY_GRANTED = "RETRY_GRANTED"
    LEADERBOARD_UPDATE = "LEADERBOARD_UPDATE"
    STATUS_UPDATE = "STATUS_UPDATE"
    CONTEST_UPDATE = "CONTEST_UPDATE"
    TEAM_STATUS_UPDATE = "TEAM_STATUS_UPDATE"

class ContestAction(enum.StrEnum):
    CREATE = "create"
    UPDATE = "update"
    TIME_EXTENDED = "time_extended"
    FREEZE_TOGGLE = "freeze_toggle"
    PAUSE_TOGGLE = "pause_toggle"
    TEAM_CREATE = "team_create"
    TEAM_UPDATE = "team_update"
    SCORES_REBUILT = "scores_rebuilt"
