"""Change notifications for ledger collections.

Events carry no payload guarantee beyond "something changed in this
collection"; consumers re-fetch the collection when they receive one.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Mutations that trigger a change notification."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ChangeEvent:
    """A coarse-grained notice that a collection changed."""

    event_type: EventType
    collection: str
    record_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "collection": self.collection,
            "record_id": self.record_id,
            "timestamp": self.timestamp.isoformat(),
        }


def record_inserted(collection: str, record_id: str) -> ChangeEvent:
    """Create an insert event."""
    return ChangeEvent(event_type=EventType.INSERT, collection=collection, record_id=record_id)


def record_updated(collection: str, record_id: str) -> ChangeEvent:
    """Create an update event."""
    return ChangeEvent(event_type=EventType.UPDATE, collection=collection, record_id=record_id)


def record_deleted(collection: str, record_id: str) -> ChangeEvent:
    """Create a delete event."""
    return ChangeEvent(event_type=EventType.DELETE, collection=collection, record_id=record_id)
