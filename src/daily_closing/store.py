"""Lifecycle of persisted daily closings.

A closing moves through a small state machine:

    DRAFT --create--> SAVED
    SAVED --request_edit (granted)--> DRAFT (prefilled) --update--> SAVED
    SAVED --delete (granted)--> DELETED

Edits always resubmit the whole recomputed record; there is no partial
patch. Two concurrent edits of the same record are not detected and the
last write wins. Every successful mutation writes one audit entry and
publishes one change event.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any

import structlog

from daily_closing.audit import Actor, AuditAction, AuditLog
from daily_closing.auth import AuthDecision, Authorizer
from daily_closing.backends import ClosingBackend
from daily_closing.config import get_settings
from daily_closing.events import ChangePublisher, record_deleted, record_inserted, record_updated
from daily_closing.exceptions import (
    AuthorizationError,
    ClosingError,
    RecordNotFoundError,
    ValidationError,
)
from daily_closing.models import DailyClosing
from daily_closing.reconciliation import POSFigures, Reconciliation, ReconciliationEngine

logger = structlog.get_logger(__name__)

AUDIT_RESOURCE = "sales"


class RecordState(str, Enum):
    DRAFT = "draft"
    SAVED = "saved"
    DELETED = "deleted"


@dataclass
class ClosingDraft:
    """Unsaved form input for one business day.

    ``closing_id`` is set when the draft was prefilled from a saved record
    for editing. ``edit_token`` is the one-time grant issued with it; a
    draft without a live token needs the secret again to be saved.
    """

    business_date: date
    cash_counts: dict[Any, Any] = field(default_factory=dict)
    terminal_entries: dict[str, dict[str, Any]] = field(default_factory=dict)
    pos: POSFigures | Mapping[str, Any] = field(default_factory=dict)
    closing_id: str | None = None
    edit_token: str | None = field(default=None, repr=False)

    @property
    def state(self) -> RecordState:
        return RecordState.DRAFT

    @classmethod
    def from_closing(cls, closing: DailyClosing, edit_token: str | None = None) -> ClosingDraft:
        """Prefill a draft from a saved record's raw inputs."""
        details = closing.details
        return cls(
            business_date=closing.date,
            cash_counts=dict(details.cash_denominations),
            terminal_entries={t: dict(row) for t, row in (details.terminal_details or {}).items()},
            pos=dict(details.pos_inputs),
            closing_id=closing.id,
            edit_token=edit_token,
        )

    def reconcile(self, engine: ReconciliationEngine) -> Reconciliation:
        """Live totals for the form without persisting anything."""
        return engine.reconcile(self.cash_counts, self.terminal_entries, self.pos)


@dataclass(frozen=True)
class EditGrant:
    """A granted edit, redeemable once before it expires."""

    closing_id: str
    actor_id: str | None
    expires_at: datetime


class ClosingRecordStore:
    """Create, edit and delete closings against a row store."""

    def __init__(
        self,
        backend: ClosingBackend,
        engine: ReconciliationEngine,
        authorizer: Authorizer,
        audit: AuditLog,
        publisher: ChangePublisher | None = None,
        collection: str | None = None,
        clock: Callable[[], datetime] | None = None,
        edit_grant_ttl: float | None = None,
    ):
        self._backend = backend
        self.engine = engine
        self._authorizer = authorizer
        self._audit = audit
        self._publisher = publisher
        self.collection = collection or get_settings().closings_collection
        self._clock = clock or (lambda: datetime.now(UTC))
        self._last_id_ms = 0
        if edit_grant_ttl is None:
            edit_grant_ttl = get_settings().edit_grant_ttl
        self._edit_grant_ttl = timedelta(seconds=edit_grant_ttl)
        self._edit_grants: dict[str, EditGrant] = {}
        self._logger = logger.bind(component="closing_store")

    def _next_id(self, now: datetime) -> str:
        # Time-ordered and unique even when two saves land in the same millisecond.
        millis = max(int(now.timestamp() * 1000), self._last_id_ms + 1)
        self._last_id_ms = millis
        return f"CLOSE-{millis}"

    def _authorize(self, secret: str | None, closing_id: str, operation: str) -> None:
        if self._authorizer.check_secret(secret) is not AuthDecision.GRANTED:
            self._logger.info("authorization_denied", closing_id=closing_id, operation=operation)
            raise AuthorizationError("Incorrect authorization code")

    def _reconcile_for_save(self, draft: ClosingDraft) -> Reconciliation:
        result = draft.reconcile(self.engine)
        if not result.has_data:
            raise ValidationError("Enter the closing figures before saving")
        return result

    def _notify(self, event: Any) -> None:
        if self._publisher is not None:
            self._publisher.publish(event)

    async def get(self, closing_id: str) -> DailyClosing:
        row = await self._backend.fetch(self.collection, closing_id)
        if row is None:
            raise RecordNotFoundError(f"Closing {closing_id} not found", status_code=404)
        return DailyClosing.from_dict(row)

    async def state_of(self, closing_id: str) -> RecordState:
        """``SAVED`` while the record exists, ``DELETED`` once it is gone."""
        row = await self._backend.fetch(self.collection, closing_id)
        return RecordState.DELETED if row is None else RecordState.SAVED

    async def list_closings(self) -> list[DailyClosing]:
        """All closings, newest business date first."""
        rows = await self._backend.fetch_all(self.collection, order_by="date", descending=True)
        return [DailyClosing.from_dict(row) for row in rows]

    async def create(self, draft: ClosingDraft, actor: Actor | None) -> DailyClosing:
        """Persist a new closing from a draft."""
        result = self._reconcile_for_save(draft)
        now = self._clock()
        closing = result.to_closing(self._next_id(now), draft.business_date, now)

        await self._backend.insert(self.collection, closing.to_dict())
        self._logger.info(
            "closing_created",
            closing_id=closing.id,
            date=closing.date.isoformat(),
            variance=str(closing.variance),
        )

        await self._audit.log_action(
            actor,
            AuditAction.CREATE,
            AUDIT_RESOURCE,
            f"Recorded new daily closing for {closing.date.isoformat()}",
        )
        self._notify(record_inserted(self.collection, closing.id))
        return closing

    async def request_edit(
        self, closing_id: str, secret: str | None, actor: Actor | None = None
    ) -> ClosingDraft:
        """Open a saved closing for editing once the gate grants it.

        The returned draft carries a one-time edit token bound to ``actor``.
        Saving it within the grant TTL needs no second secret. On denial
        nothing changes and ``AuthorizationError`` is raised.
        """
        self._authorize(secret, closing_id, "edit")
        closing = await self.get(closing_id)

        now = self._clock()
        self._drop_expired_grants(now)
        token = secrets.token_urlsafe(16)
        self._edit_grants[token] = EditGrant(
            closing_id=closing_id,
            actor_id=actor.id if actor else None,
            expires_at=now + self._edit_grant_ttl,
        )
        self._logger.info(
            "closing_edit_opened",
            closing_id=closing_id,
            actor=actor.name if actor else None,
        )
        return ClosingDraft.from_closing(closing, edit_token=token)

    def cancel_edit(self, draft: ClosingDraft) -> None:
        """Give up an opened edit; its token can no longer be redeemed."""
        if draft.edit_token is not None:
            self._edit_grants.pop(draft.edit_token, None)
        draft.edit_token = None

    def is_editing(self, closing_id: str) -> bool:
        now = self._clock()
        return any(
            g.closing_id == closing_id and g.expires_at > now for g in self._edit_grants.values()
        )

    def _drop_expired_grants(self, now: datetime) -> None:
        expired = [token for token, g in self._edit_grants.items() if g.expires_at <= now]
        for token in expired:
            del self._edit_grants[token]

    def _holds_grant(self, draft: ClosingDraft, actor: Actor | None) -> bool:
        grant = self._edit_grants.get(draft.edit_token) if draft.edit_token else None
        if grant is None or grant.closing_id != draft.closing_id:
            return False
        if grant.actor_id != (actor.id if actor else None):
            return False
        if grant.expires_at <= self._clock():
            self._logger.info("edit_grant_expired", closing_id=grant.closing_id)
            return False
        return True

    async def update(
        self,
        draft: ClosingDraft,
        actor: Actor | None,
        secret: str | None = None,
    ) -> DailyClosing:
        """Overwrite a saved closing with the recomputed draft.

        Requires either the live edit token ``request_edit`` put on this
        draft, redeemed by the same actor, or a secret the gate grants. The
        token is spent once the overwrite succeeds.
        """
        closing_id = draft.closing_id
        if closing_id is None:
            raise ValidationError("Draft is not attached to a saved closing")
        if not self._holds_grant(draft, actor):
            self._authorize(secret, closing_id, "edit")

        result = self._reconcile_for_save(draft)
        now = self._clock()
        closing = result.to_closing(closing_id, draft.business_date, now)

        await self._backend.update(self.collection, closing_id, closing.to_dict())
        self.cancel_edit(draft)
        self._logger.info(
            "closing_updated",
            closing_id=closing_id,
            date=closing.date.isoformat(),
            variance=str(closing.variance),
        )

        await self._audit.log_action(
            actor,
            AuditAction.UPDATE,
            AUDIT_RESOURCE,
            f"Edited daily closing for {closing.date.isoformat()}",
        )
        self._notify(record_updated(self.collection, closing_id))
        return closing

    async def delete(self, closing_id: str, secret: str | None, actor: Actor | None) -> RecordState:
        """Hard-delete a closing once the gate grants it."""
        self._authorize(secret, closing_id, "delete")
        closing = await self.get(closing_id)

        await self._backend.delete(self.collection, closing_id)
        self._edit_grants = {
            token: g for token, g in self._edit_grants.items() if g.closing_id != closing_id
        }
        self._logger.info("closing_deleted", closing_id=closing_id, date=closing.date.isoformat())

        await self._audit.log_action(
            actor,
            AuditAction.DELETE,
            AUDIT_RESOURCE,
            f"Deleted daily closing for {closing.date.isoformat()}",
        )

        self._notify(record_deleted(self.collection, closing_id))
        return RecordState.DELETED


@dataclass
class ActionResult:
    """Outcome of a user action, ready to show."""

    success: bool
    message: str
    closing: DailyClosing | None = None
    draft: ClosingDraft | None = None
    error: ClosingError | None = None


class ClosingDesk:
    """User-facing boundary over the store.

    Every ``ClosingError`` is converted into an ``ActionResult`` with a
    message; nothing escapes as an unhandled fault.
    """

    SAVE_FAILED = "An error occurred while saving the data"
    DELETE_FAILED = "An error occurred while deleting the closing"
    LOAD_FAILED = "The closing could not be loaded"

    def __init__(self, store: ClosingRecordStore):
        self.store = store

    def _failure(self, error: ClosingError, persistence_message: str) -> ActionResult:
        if isinstance(error, (ValidationError, AuthorizationError)):
            message = str(error)
        else:
            message = persistence_message
        logger.warning(
            "closing_action_failed", error_type=type(error).__name__, error=str(error)
        )
        return ActionResult(success=False, message=message, error=error)

    async def save(
        self, draft: ClosingDraft, actor: Actor | None, secret: str | None = None
    ) -> ActionResult:
        """Create a new closing, or overwrite the one the draft was opened from.

        Overwriting needs the draft's live edit token or ``secret``.
        """
        try:
            if draft.closing_id is None:
                closing = await self.store.create(draft, actor)
                return ActionResult(True, "Closing saved", closing=closing)
            closing = await self.store.update(draft, actor, secret=secret)
            return ActionResult(True, "Closing updated", closing=closing)
        except ClosingError as e:
            return self._failure(e, self.SAVE_FAILED)

    async def open_for_edit(
        self, closing_id: str, secret: str | None, actor: Actor | None
    ) -> ActionResult:
        try:
            draft = await self.store.request_edit(closing_id, secret, actor)
            return ActionResult(True, "Closing opened for editing", draft=draft)
        except ClosingError as e:
            return self._failure(e, self.LOAD_FAILED)

    async def delete(self, closing_id: str, secret: str | None, actor: Actor | None) -> ActionResult:
        try:
            await self.store.delete(closing_id, secret, actor)
            return ActionResult(True, "Closing deleted")
        except ClosingError as e:
            return self._failure(e, self.DELETE_FAILED)

