"""Persistence: append-only event store and position snapshots."""
from .event_store import InMemoryEventStore, JsonlEventStore, StoredEvent
from .position_repository import (
    InMemoryPositionRepository,
    position_from_record,
    position_to_record,
)
from .recorder import EventRecorder

__all__ = [
    "EventRecorder",
    "InMemoryEventStore",
    "InMemoryPositionRepository",
    "JsonlEventStore",
    "StoredEvent",
    "position_from_record",
    "position_to_record",
]
