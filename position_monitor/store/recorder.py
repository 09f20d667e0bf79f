"""Event-store writer — a bus subscriber that persists every domain event."""
from __future__ import annotations

import logging

from ..errors import DuplicateEventError, VersionConflict
from ..event_bus import EventBus
from ..events import DomainEvent, EventType
from ..interfaces.event_store import EventStore
from .event_store import StoredEvent

logger = logging.getLogger(__name__)


class EventRecorder:
    """Append published events to the store.

    Each append reads the aggregate's current version and passes it as the
    expected version. A racing writer surfaces as ``VersionConflict``, which
    is retried against the fresh version.
    """

    def __init__(self, store: EventStore, max_attempts: int = 3) -> None:
        self._store = store
        self._max_attempts = max_attempts

    def attach(self, bus: EventBus) -> None:
        for event_type in EventType:
            bus.subscribe(event_type, self.handle)

    def detach(self, bus: EventBus) -> None:
        for event_type in EventType:
            bus.unsubscribe(event_type, self.handle)

    async def handle(self, event: DomainEvent) -> None:
        await self.record(event)

    async def record(self, event: DomainEvent) -> StoredEvent | None:
        """Append ``event``; returns ``None`` when it was already recorded."""
        last_conflict = VersionConflict(event.aggregate_id, -1, -1)
        for attempt in range(1, max(self._max_attempts, 1) + 1):
            expected = await self._store.current_version(event.aggregate_id)
            try:
                return await self._store.append(event, expected_version=expected)
            except DuplicateEventError:
                logger.info("Event %s already recorded, skipping", event.event_id)
                return None
            except VersionConflict as e:
                last_conflict = e
                logger.warning(
                    "Version conflict on %s (attempt %d/%d), retrying",
                    event.aggregate_id, attempt, self._max_attempts,
                )
        raise last_conflict
