"""Error taxonomy for the monitoring pipeline."""
from __future__ import annotations

from typing import Any


class MonitorError(Exception):
    """Base class for all position-monitor errors."""

    retryable: bool = False


class DataSourceUnavailable(MonitorError):
    """Upstream data source (RPC node, oracle, indexer) could not be reached."""

    retryable = True

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class FetchTimeout(DataSourceUnavailable):
    """A protocol fetch exceeded its deadline."""

    def __init__(self, source: str, timeout: float) -> None:
        super().__init__(f"{source} fetch timed out after {timeout:.1f}s", source)
        self.timeout = timeout


class DataIntegrityError(MonitorError):
    """Malformed numeric or schema data. The snapshot must be rejected."""

    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message)
        self.field = field


class VersionConflict(MonitorError):
    """Concurrent append raced on the same aggregate version."""

    retryable = True

    def __init__(self, aggregate_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Version conflict on aggregate {aggregate_id}: "
            f"expected {expected}, found {actual}"
        )
        self.aggregate_id = aggregate_id
        self.expected = expected
        self.actual = actual


class DuplicateEventError(MonitorError):
    """An event id was appended to the store a second time."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event {event_id} already recorded")
        self.event_id = event_id


class HandlerFailure(MonitorError):
    """A bus subscriber raised. Logged by the bus, never propagated."""

    def __init__(self, handler_name: str, event: Any, cause: BaseException) -> None:
        event_type = getattr(getattr(event, "type", None), "value", "?")
        super().__init__(
            f"Handler {handler_name} failed on {event_type}: "
            f"{type(cause).__name__}: {cause}"
        )
        self.handler_name = handler_name
        self.event = event
        self.cause = cause
