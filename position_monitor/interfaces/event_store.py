"""Event store protocol — append-only, versioned per aggregate."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from ..events import DomainEvent, EventType

if TYPE_CHECKING:
    from ..store.event_store import StoredEvent


class EventStore(Protocol):
    """Abstract interface for the durable event log."""

    async def append(
        self, event: DomainEvent, expected_version: int | None = None
    ) -> StoredEvent: ...

    async def load_stream(
        self, aggregate_id: str, from_version: int = 1
    ) -> list[StoredEvent]: ...

    async def load_by_type(self, event_type: EventType | str) -> list[StoredEvent]: ...

    async def current_version(self, aggregate_id: str) -> int: ...
