"""Append-only event store.

For every aggregate the stored versions are contiguous from 1. Appends for
one aggregate are serialised with a per-aggregate lock; appends for
different aggregates never wait on each other.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from ..errors import DataIntegrityError, DuplicateEventError, VersionConflict
from ..events import AggregateType, DomainEvent, EventMetadata, EventType, parse_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredEvent:
    """An event as persisted in the store."""

    event_id: str
    event_type: EventType
    aggregate_id: str
    aggregate_type: AggregateType
    data: Mapping[str, Any]
    version: int
    occurred_at: datetime
    metadata: Mapping[str, Any] | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_event(cls, event: DomainEvent, version: int) -> StoredEvent:
        return cls(
            event_id=event.event_id,
            event_type=event.type,
            aggregate_id=event.aggregate_id,
            aggregate_type=event.aggregate_type,
            data=event.data.to_dict(),
            version=version,
            occurred_at=event.occurred_at,
            metadata=event.metadata.to_dict() if event.metadata else None,
        )

    def to_domain_event(self) -> DomainEvent:
        return DomainEvent(
            aggregate_id=self.aggregate_id,
            aggregate_type=self.aggregate_type,
            data=parse_payload(self.event_type, self.data),
            occurred_at=self.occurred_at,
            metadata=EventMetadata.from_dict(self.metadata) if self.metadata else None,
            event_id=self.event_id,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "eventType": self.event_type.value,
            "aggregateId": self.aggregate_id,
            "aggregateType": self.aggregate_type.value,
            "data": dict(self.data),
            "metadata": dict(self.metadata) if self.metadata else None,
            "version": self.version,
            "occurredAt": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> StoredEvent:
        try:
            return cls(
                id=str(record["id"]),
                event_id=str(record["eventId"]),
                event_type=EventType(record["eventType"]),
                aggregate_id=str(record["aggregateId"]),
                aggregate_type=AggregateType(record["aggregateType"]),
                data=dict(record["data"]),
                metadata=record.get("metadata"),
                version=int(record["version"]),
                occurred_at=datetime.fromisoformat(record["occurredAt"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataIntegrityError(f"Malformed event record: {e}") from e


class InMemoryEventStore:
    """Event store held in process memory."""

    def __init__(self) -> None:
        self._streams: dict[str, list[StoredEvent]] = {}
        self._event_ids: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, aggregate_id: str) -> asyncio.Lock:
        lock = self._locks.get(aggregate_id)
        if lock is None:
            lock = self._locks[aggregate_id] = asyncio.Lock()
        return lock

    async def append(
        self, event: DomainEvent, expected_version: int | None = None
    ) -> StoredEvent:
        """Append ``event`` as the next version of its aggregate.

        Args:
            event: The domain event to record.
            expected_version: When given, the aggregate's current version must
                equal it or :class:`VersionConflict` is raised.

        Raises:
            DuplicateEventError: the event id is already recorded.
            VersionConflict: ``expected_version`` does not match.
        """
        async with self._lock_for(event.aggregate_id):
            if event.event_id in self._event_ids:
                raise DuplicateEventError(event.event_id)

            stream = self._streams.get(event.aggregate_id, [])
            current = len(stream)
            if expected_version is not None and expected_version != current:
                raise VersionConflict(event.aggregate_id, expected_version, current)

            stored = StoredEvent.from_event(event, version=current + 1)
            await self._persist(stored)
            self._streams.setdefault(event.aggregate_id, []).append(stored)
            self._event_ids.add(stored.event_id)

        logger.debug(
            "Appended %s to %s v%d", stored.event_type.value, stored.aggregate_id, stored.version
        )
        return stored

    async def _persist(self, stored: StoredEvent) -> None:
        """Durable write hook; runs under the aggregate lock."""

    async def load_stream(self, aggregate_id: str, from_version: int = 1) -> list[StoredEvent]:
        return [e for e in self._streams.get(aggregate_id, []) if e.version >= from_version]

    async def load_by_type(self, event_type: EventType | str) -> list[StoredEvent]:
        key = EventType(event_type)
        events = [e for stream in self._streams.values() for e in stream if e.event_type == key]
        return sorted(events, key=lambda e: e.occurred_at)

    async def current_version(self, aggregate_id: str) -> int:
        return len(self._streams.get(aggregate_id, []))

    async def contains(self, event_id: str) -> bool:
        return event_id in self._event_ids

    def _load(self, stored: StoredEvent) -> None:
        stream = self._streams.setdefault(stored.aggregate_id, [])
        if stored.version != len(stream) + 1:
            raise DataIntegrityError(
                f"Event log gap for {stored.aggregate_id}: "
                f"expected v{len(stream) + 1}, found v{stored.version}",
                "version",
            )
        if stored.event_id in self._event_ids:
            raise DataIntegrityError(f"Duplicate event id {stored.event_id} in log", "eventId")
        stream.append(stored)
        self._event_ids.add(stored.event_id)


class JsonlEventStore(InMemoryEventStore):
    """Event store backed by an append-only JSON-lines file.

    Writes run in a worker thread, one line per event.
    On load, an unterminated final line (a write cut short by a crash) is
    dropped with a warning and trimmed from the file. Any other unreadable
    line rejects the whole log.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._file_lock = asyncio.Lock()
        if self.path.exists():
            self._replay()
            logger.info("Loaded %d events from %s", len(self._event_ids), self.path)

    def _replay(self) -> None:
        content = self.path.read_bytes()
        body, sep, tail = content.rpartition(b"\n")
        if not sep:
            body, tail = b"", content

        if body:
            for lineno, line in enumerate(body.split(b"\n"), start=1):
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                except ValueError as e:
                    raise DataIntegrityError(
                        f"Corrupt event log {self.path} line {lineno}: {e}"
                    ) from e
                self._load(StoredEvent.from_record(record))

        if not tail.strip():
            return
        try:
            record = json.loads(tail)
        except ValueError:
            logger.warning(
                "Dropping incomplete final line %d of %s (%d bytes)",
                content.count(b"\n") + 1, self.path, len(tail),
            )
            with open(self.path, "r+b") as f:
                f.truncate(len(body) + len(sep))
            return
        self._load(StoredEvent.from_record(record))
        with open(self.path, "ab") as f:
            f.write(b"\n")

    def _append_line(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)

    async def _persist(self, stored: StoredEvent) -> None:
        line = json.dumps(stored.to_record(), ensure_ascii=False) + "\n"
        async with self._file_lock:
            await asyncio.to_thread(self._append_line, line)
