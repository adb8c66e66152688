"""Typed failures of the scoring core.

Every failure a caller may want to render differently has its own class. The
``kind`` is the stable machine-readable code, ``i18n_key`` points at the
localized message template under ``data/locales/<lang>/errors.json``.
"""
from __future__ import annotations

from typing import Any


class ContestPulseError(Exception):
    kind: str = "error"
    i18n_key: str = "errors.generic"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.__class__.__name__
        self.details = details
        super().__init__(self.message)


class Forbidden(ContestPulseError):
    """Caller role or contest scope does not cover the target."""

    kind = "forbidden"
    i18n_key = "errors.forbidden"


class NotFound(ContestPulseError, LookupError):
    kind = "not_found"
    i18n_key = "errors.not_found"


class InvalidScore(ContestPulseError, ValueError):
    """Manual score override outside ``[0, problem points]``."""

    kind = "invalid_score"
    i18n_key = "errors.invalid_score"


class InvalidTransition(ContestPulseError, ValueError):
    kind = "invalid_transition"
    i18n_key = "errors.invalid_transition"


class ConcurrencyConflict(ContestPulseError):
    """The store detected a conflict it could not resolve on its own."""

    kind = "concurrency_conflict"
    i18n_key = "errors.concurrency_conflict"


class IntakeRefused(ContestPulseError):
    """The contest does not accept submissions right now (paused, ended...)."""

    kind = "intake_refused"
    i18n_key = "errors.intake_refused"


__all__ = [
    "ContestPulseError",
    "Forbidden",
    "NotFound",
    "InvalidScore",
    "InvalidTransition",
    "ConcurrencyConflict",
    "IntakeRefused",
]
