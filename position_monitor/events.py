"""Domain events — immutable facts about position state transitions.

Every event carries a typed payload. The payload class determines the event
type, so a ``PositionUpdated`` event can only ever carry
``PositionUpdatedData``. The persisted form is plain JSON using the stable
camelCase wire keys below.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

from .errors import DataIntegrityError
from .models import DEFAULT_AT_RISK_THRESHOLD, utcnow


class EventType(str, Enum):
    WALLET_CONNECTED = "WalletConnected"
    POSITION_UPDATED = "PositionUpdated"
    HEALTH_FACTOR_CRITICAL = "HealthFactorCritical"


class AggregateType(str, Enum):
    USER = "user"
    POSITION = "position"
    SIGNAL = "signal"
    INTENT = "intent"


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WalletConnectedData:
    event_type: ClassVar[EventType] = EventType.WALLET_CONNECTED

    wallet_address: str
    user_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"walletAddress": self.wallet_address, "userId": self.user_id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WalletConnectedData:
        return cls(wallet_address=str(data["walletAddress"]), user_id=str(data["userId"]))


@dataclass(frozen=True)
class PositionUpdatedData:
    event_type: ClassVar[EventType] = EventType.POSITION_UPDATED

    position_id: str
    user_id: str
    protocol: str
    health_factor: float | None
    collateral_usd: float
    borrowed_usd: float
    liquidation_price: float | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "positionId": self.position_id,
            "userId": self.user_id,
            "protocol": self.protocol,
            "healthFactor": self.health_factor,
            "collateralUsd": self.collateral_usd,
            "borrowedUsd": self.borrowed_usd,
        }
        if self.liquidation_price is not None:
            out["liquidationPrice"] = self.liquidation_price
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PositionUpdatedData:
        return cls(
            position_id=str(data["positionId"]),
            user_id=str(data["userId"]),
            protocol=str(data["protocol"]),
            health_factor=_optional_float(data["healthFactor"]),
            collateral_usd=float(data["collateralUsd"]),
            borrowed_usd=float(data["borrowedUsd"]),
            liquidation_price=_optional_float(data.get("liquidationPrice")),
        )


@dataclass(frozen=True)
class HealthFactorCriticalData:
    event_type: ClassVar[EventType] = EventType.HEALTH_FACTOR_CRITICAL

    position_id: str
    user_id: str
    health_factor: float
    threshold: float = DEFAULT_AT_RISK_THRESHOLD

    def to_dict(self) -> dict[str, Any]:
        return {
            "positionId": self.position_id,
            "userId": self.user_id,
            "healthFactor": self.health_factor,
            "threshold": self.threshold,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HealthFactorCriticalData:
        return cls(
            position_id=str(data["positionId"]),
            user_id=str(data["userId"]),
            health_factor=float(data["healthFactor"]),
            threshold=float(data["threshold"]),
        )


EventPayload = Union[WalletConnectedData, PositionUpdatedData, HealthFactorCriticalData]

PAYLOAD_TYPES: dict[EventType, type] = {
    EventType.WALLET_CONNECTED: WalletConnectedData,
    EventType.POSITION_UPDATED: PositionUpdatedData,
    EventType.HEALTH_FACTOR_CRITICAL: HealthFactorCriticalData,
}


def parse_payload(event_type: EventType | str, data: Mapping[str, Any]) -> EventPayload:
    """Build the typed payload for ``event_type`` from its wire form."""
    try:
        payload_cls = PAYLOAD_TYPES[EventType(event_type)]
    except ValueError as e:
        raise DataIntegrityError(f"Unknown event type: {event_type!r}", "type") from e
    try:
        return payload_cls.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise DataIntegrityError(
            f"Malformed {EventType(event_type).value} payload: {e}", "data"
        ) from e


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventMetadata:
    """Causal-chain fields for tracing."""

    correlation_id: str | None = None
    causation_id: str | None = None
    user_id: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        if self.correlation_id:
            out["correlationId"] = self.correlation_id
        if self.causation_id:
            out["causationId"] = self.causation_id
        if self.user_id:
            out["userId"] = self.user_id
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EventMetadata:
        known = {"correlationId", "causationId", "userId"}
        return cls(
            correlation_id=data.get("correlationId"),
            causation_id=data.get("causationId"),
            user_id=data.get("userId"),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class DomainEvent:
    aggregate_id: str
    aggregate_type: AggregateType
    data: EventPayload
    occurred_at: datetime = field(default_factory=utcnow)
    metadata: EventMetadata | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def type(self) -> EventType:
        return self.data.event_type

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "type": self.type.value,
            "aggregateId": self.aggregate_id,
            "aggregateType": self.aggregate_type.value,
            "occurredAt": self.occurred_at.isoformat(),
            "data": self.data.to_dict(),
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> DomainEvent:
        try:
            aggregate_type = AggregateType(raw["aggregateType"])
            occurred_at = datetime.fromisoformat(raw["occurredAt"])
            event_type = raw["type"]
            aggregate_id = str(raw["aggregateId"])
            event_id = str(raw["eventId"])
        except (KeyError, ValueError, TypeError) as e:
            raise DataIntegrityError(f"Malformed event envelope: {e}") from e
        metadata = raw.get("metadata")
        return cls(
            aggregate_id=aggregate_id,
            aggregate_type=aggregate_type,
            data=parse_payload(event_type, raw.get("data") or {}),
            occurred_at=occurred_at,
            metadata=EventMetadata.from_dict(metadata) if metadata else None,
            event_id=event_id,
        )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def wallet_connected(
    wallet_address: str, user_id: str, metadata: EventMetadata | None = None
) -> DomainEvent:
    return DomainEvent(
        aggregate_id=user_id,
        aggregate_type=AggregateType.USER,
        data=WalletConnectedData(wallet_address=wallet_address, user_id=user_id),
        metadata=metadata,
    )


def position_updated(
    position_id: str,
    user_id: str,
    *,
    protocol: str,
    health_factor: float | None,
    collateral_usd: float,
    borrowed_usd: float,
    liquidation_price: float | None = None,
    metadata: EventMetadata | None = None,
) -> DomainEvent:
    return DomainEvent(
        aggregate_id=position_id,
        aggregate_type=AggregateType.POSITION,
        data=PositionUpdatedData(
            position_id=position_id,
            user_id=user_id,
            protocol=protocol,
            health_factor=health_factor,
            collateral_usd=collateral_usd,
            borrowed_usd=borrowed_usd,
            liquidation_price=liquidation_price,
        ),
        metadata=metadata,
    )


def health_factor_critical(
    position_id: str,
    user_id: str,
    health_factor: float,
    threshold: float = DEFAULT_AT_RISK_THRESHOLD,
    metadata: EventMetadata | None = None,
) -> DomainEvent:
    return DomainEvent(
        aggregate_id=position_id,
        aggregate_type=AggregateType.POSITION,
        data=HealthFactorCriticalData(
            position_id=position_id,
            user_id=user_id,
            health_factor=health_factor,
            threshold=threshold,
        ),
        metadata=metadata,
    )
