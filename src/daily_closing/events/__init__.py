"""Change notification channel for ledger views."""

from daily_closing.events.publisher import ChangePublisher, ClientConnection
from daily_closing.events.types import (
    ChangeEvent,
    EventType,
    record_deleted,
    record_inserted,
    record_updated,
)

__all__ = [
    "ChangeEvent",
    "ChangePublisher",
    "ClientConnection",
    "EventType",
    "record_deleted",
    "record_inserted",
    "record_updated",
]
