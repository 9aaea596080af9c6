"""Audit trail for ledger mutations.

Audit writes are best-effort: a failure is logged and swallowed so it
never blocks or undoes the mutation it describes.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol
from uuid import uuid4

import structlog

from daily_closing.backends import ClosingBackend
from daily_closing.config import get_settings

logger = structlog.get_logger(__name__)


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Actor:
    """The signed-in user performing an action."""

    id: str
    name: str
    role: str = ""


class AuditLog(Protocol):
    async def log_action(
        self, actor: Actor | None, action: AuditAction, resource: str, details: str
    ) -> None: ...


class BackendAuditLog:
    """Writes audit entries as rows in the audit collection."""

    def __init__(self, backend: ClosingBackend, collection: str | None = None):
        self._backend = backend
        self._collection = collection or get_settings().audit_collection
        self._logger = logger.bind(component="audit_log")

    async def log_action(
        self, actor: Actor | None, action: AuditAction, resource: str, details: str
    ) -> None:
        if actor is None:
            self._logger.warning("audit_without_actor", action=action.value, resource=resource)
            return

        entry = {
            "id": str(uuid4()),
            "user_id": actor.id,
            "user_name": actor.name,
            "user_role": actor.role,
            "action": action.value,
            "resource": resource,
            "details": details,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            await self._backend.insert(self._collection, entry)
        except Exception as e:
            self._logger.error("audit_write_failed", action=action.value, error=str(e))
