# bot/services/audit_log.py
from __future__ import annotations

import enum
import inspect
import logging
import uuid
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from functools import wraps
from pathlib import Path
from typing import Any, ClassVar, Iterable, Mapping, MutableMapping, Optional, Sequence
from contextvars import ContextVar, Token

from contest_pulse.db.database import DataBase
from contest_pulse.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from contest_pulse.db.schemas.user import UserRead


class AuditLogService:
    """
    Stores every public service call in the ``audit_log`` table.

    Payloads are normalised into JSON-friendly dictionaries, enriched with
    call-site metadata and persisted through :class:`contest_pulse.db.database.DataBase`.
    The actor is taken from the call (a ``Caller``, ``UserRead`` or UUID) or,
    failing that, from the per-update context bound by the user middleware.
    """

    _instance: ClassVar[Optional["AuditLogService"]] = None

    def __new__(cls) -> "AuditLogService":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return

        self._database = DataBase()
        self._logger = logging.getLogger("contest_pulse.audit")
        self._module_name = Path(__file__).name
        self._actor_ctx: ContextVar[Optional[uuid.UUID]] = ContextVar("audit_actor", default=None)
        self._initialized = True

    async def log(
        self,
        *,
        action: str,
        actor_id: uuid.UUID | None = None,
        payload: Any | None = None,
        include_context: bool = True,
    ) -> AuditLogRead:
        """
        Persist a low-level audit entry.

        :param action: short machine-readable label (``services.grading.grade``…)
        :param actor_id: user that initiated the action; the bound context actor otherwise
        :param payload: arbitrary structure with details (will be serialised)
        :param include_context: whether to attach caller metadata automatically
        """
        payload_map = self._prepare_payload(payload)
        if include_context:
            payload_map.setdefault("_meta", {}).update(self._call_context())

        if actor_id is None:
            actor_id = self.current_actor()

        entry = await self._database.create_audit_log(
            AuditLogCreate(action=action, actor_id=actor_id, payload=payload_map)
        )
        self._logger.info(
            "AUDIT action=%s actor=%s entry=%s",
            action,
            str(actor_id) if actor_id else "-",
            entry.id,
        )
        return entry

    async def log_user_action(
        self,
        *,
        action: str,
        actor: Any,
        payload: Any | None = None,
    ) -> AuditLogRead:
        """Store an action together with a short description of who did it."""
        payload_map: MutableMapping[str, Any] = {}
        if payload is not None:
            payload_map["data"] = self._serialize(payload)
        role = getattr(actor, "role", None)
        if role is not None:
            payload_map["actor"] = {"id": str(self.actor_id(actor)), "role": str(role)}
            if isinstance(actor, UserRead):
                payload_map["actor"]["username"] = actor.username
        return await self.log(action=action, actor_id=self.actor_id(actor), payload=payload_map)

    async def list_entries(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor_id: uuid.UUID | None = None,
        action: str | None = None,
    ) -> tuple[list[AuditLogRead], int]:
        """Return recent audit entries."""
        return await self._database.list_audit_logs(
            limit=limit,
            offset=offset,
            actor_id=actor_id,
            action=action,
        )

    # --------------
    # Actor context
    # --------------
    def bind_actor(self, actor_id: Optional[uuid.UUID]) -> Token:
        return self._actor_ctx.set(actor_id)

    def unbind_actor(self, token: Token) -> None:
        try:
            self._actor_ctx.reset(token)
        except ValueError:
            # token was created in another context
            self._actor_ctx.set(None)

    def current_actor(self) -> Optional[uuid.UUID]:
        return self._actor_ctx.get()

    @staticmethod
    def actor_id(actor: Any) -> uuid.UUID | None:
        if isinstance(actor, uuid.UUID):
            return actor
        if isinstance(actor, UserRead):
            return actor.id
        # Caller and anything else carrying a user id
        candidate = getattr(actor, "user_id", None)
        return candidate if isinstance(candidate, uuid.UUID) else None

    def _prepare_payload(self, payload: Any | None) -> dict[str, Any]:
        if payload is None:
            return {}
        serialized = self._serialize(payload)
        if isinstance(serialized, dict):
            return dict(serialized)
        return {"value": serialized}

    def serialize(self, value: Any) -> Any:
        """Public helper for shared serialization logic."""
        return self._serialize(value)

    def _serialize(self, value: Any) -> Any:
        if isinstance(value, enum.Enum):
            return value.value
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if is_dataclass(value) and not isinstance(value, type):
            return {k: self._serialize(v) for k, v in asdict(value).items()}
        if isinstance(value, Mapping):
            return {str(k): self._serialize(v) for k, v in value.items()}
        if isinstance(value, (set, frozenset)):
            return sorted(str(self._serialize(v)) for v in value)
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            return [self._serialize(v) for v in value]
        if hasattr(value, "model_dump"):
            return {k: self._serialize(v) for k, v in value.model_dump().items()}
        return str(value)

    def _call_context(self) -> dict[str, Any]:
        stack = inspect.stack()
        for frame in stack[2:]:
            path = Path(frame.filename)
            if path.name != self._module_name:
                return {
                    "module": path.stem,
                    "location": f"{path.name}:{frame.lineno}",
                    "function": frame.function,
                }
        return {}


audit_logger = AuditLogService()

def _resolve_actor(
    actor_fields: Iterable[str] | None,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    signature: inspect.Signature,
) -> Any:
    if not actor_fields:
        return None
    for field in actor_fields:
        if kwargs.get(field) is not None:
            return kwargs[field]
    for idx, name in enumerate(signature.parameters):
        if name in actor_fields and idx < len(args) and args[idx] is not None:
            return args[idx]
    return None


def _serialized_args(args: tuple[Any, ...], skip: int) -> list[Any]:
    return [audit_logger.serialize(arg) for arg in args[skip:]]


def _serialized_kwargs(kwargs: dict[str, Any]) -> dict[str, Any]:
    return {k: audit_logger.serialize(v) for k, v in kwargs.items()}


async def _emit_action(*, action: str, actor: Any, payload: dict[str, Any]) -> None:
    """Write the audit row after the call; a failed write is logged, never raised."""
    if actor is None:
        actor = audit_logger.current_actor()
    try:
        if actor is not None:
            await audit_logger.log_user_action(action=action, actor=actor, payload=payload)
        else:
            await audit_logger.log(action=action, payload=payload)
    except Exception:
        # the audited call has already committed or failed on its own
        audit_logger._logger.exception("AUDIT write failed action=%s", action)


def _wrap_async_callable(
    fn,
    action: str,
    *,
    skip_first_arg: bool,
    actor_fields: Iterable[str] | None,
):
    if getattr(fn, "__audit_wrapped__", False):
        return fn

    signature = inspect.signature(fn)
    skip_count = 1 if skip_first_arg else 0

    @wraps(fn)
    async def wrapper(*args, **kwargs):
        actor = _resolve_actor(actor_fields, args, kwargs, signature)
        payload = {
            "args": _serialized_args(args, skip_count),
            "kwargs": _serialized_kwargs(kwargs),
        }
        try:
            result = await fn(*args, **kwargs)
        except Exception as exc:
            payload["error"] = repr(exc)
            await _emit_action(action=f"{action}.error", actor=actor, payload=payload)
            raise
        payload["result"] = audit_logger.serialize(result)
        await _emit_action(action=action, actor=actor, payload=payload)
        return result

    wrapper.__audit_wrapped__ = True  # type: ignore[attr-defined]
    return wrapper


def instrument_service_class(
    cls,
    *,
    prefix: str | None = None,
    exclude: Iterable[str] | None = None,
    actor_fields: Iterable[str] | None = None,
) -> None:
    """Wrap public async methods of a service class to emit audit entries."""
    action_prefix = prefix or cls.__name__
    excluded = set(exclude or [])

    for name, attr in list(cls.__dict__.items()):
        if name.startswith("_") or name in excluded:
            continue
        if inspect.iscoroutinefunction(attr):
            setattr(
                cls,
                name,
                _wrap_async_callable(
                    attr,
                    f"{action_prefix}.{name}",
                    skip_first_arg=True,
                    actor_fields=actor_fields,
                ),
            )


__all__ = [
    "AuditLogService",
    "audit_logger",
    "instrument_service_class",
]
