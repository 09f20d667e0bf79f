"""Data models — all frozen (immutable)."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from .errors import DataIntegrityError

DEFAULT_AT_RISK_THRESHOLD = 1.5
DEFAULT_NEAR_LIQUIDATION_THRESHOLD = 1.1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_decimal(value: Any, field_name: str = "") -> Decimal:
    """Parse a decimal string (or number) without going through float.

    Raises:
        DataIntegrityError: on malformed, non-finite or negative input.
    """
    if isinstance(value, bool) or value is None:
        raise DataIntegrityError(f"Invalid decimal for {field_name}: {value!r}", field_name)
    try:
        parsed = Decimal(value) if isinstance(value, (Decimal, int)) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise DataIntegrityError(
            f"Invalid decimal for {field_name}: {value!r}", field_name
        ) from e
    if not parsed.is_finite():
        raise DataIntegrityError(f"Non-finite decimal for {field_name}: {value!r}", field_name)
    if parsed < 0:
        raise DataIntegrityError(f"Negative decimal for {field_name}: {value!r}", field_name)
    return parsed


def format_decimal(value: Decimal) -> str:
    """Plain (non-exponent) decimal string."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


# ---------------------------------------------------------------------------
# Position value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Asset:
    """Single asset within a position (collateral or debt).

    ``amount`` and ``value_usd`` are decimal strings so precision survives
    every hop between services.
    """

    symbol: str
    amount: str
    value_usd: str
    address: str | None = None

    @property
    def amount_decimal(self) -> Decimal:
        return parse_decimal(self.amount, f"{self.symbol}.amount")

    @property
    def value_usd_decimal(self) -> Decimal:
        return parse_decimal(self.value_usd, f"{self.symbol}.valueUSD")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Asset:
        try:
            return cls(
                symbol=str(data["symbol"]),
                amount=str(data["amount"]),
                value_usd=str(data["valueUSD"]),
                address=data.get("address"),
            )
        except KeyError as e:
            raise DataIntegrityError(f"Asset missing field {e}", str(e)) from e

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "symbol": self.symbol,
            "amount": self.amount,
            "valueUSD": self.value_usd,
        }
        if self.address:
            out["address"] = self.address
        return out


_METADATA_KEYS = {
    "ltv": "ltv",
    "liquidationThreshold": "liquidation_threshold",
    "availableBorrowsUSD": "available_borrows_usd",
    "totalCollateralUSD": "total_collateral_usd",
    "totalDebtUSD": "total_debt_usd",
}


@dataclass(frozen=True)
class PositionMetadata:
    """Protocol-reported figures plus an open bag of protocol-specific fields."""

    ltv: str | None = None
    liquidation_threshold: str | None = None
    available_borrows_usd: str | None = None
    total_collateral_usd: str | None = None
    total_debt_usd: str | None = None
    additional_data: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PositionMetadata:
        known = {attr: data[key] for key, attr in _METADATA_KEYS.items() if data.get(key) is not None}
        extra = {k: v for k, v in data.items() if k not in _METADATA_KEYS}
        return cls(**{k: str(v) for k, v in known.items()}, additional_data=extra)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, attr in _METADATA_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        out.update(self.additional_data)
        return out


# ---------------------------------------------------------------------------
# Position entity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    """Point-in-time snapshot of a wallet's lending position on one protocol.

    Snapshots are never mutated: each fetch produces a new ``Position`` with
    its own ``id``. ``health_factor`` is ``None`` when the position has no
    debt.
    """

    id: str
    user_id: str
    protocol: str
    wallet_address: str
    chain_id: int
    health_factor: float | None
    collateral: tuple[Asset, ...] = ()
    debt: tuple[Asset, ...] = ()
    metadata: PositionMetadata | None = None
    snapshot_at: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "collateral", tuple(self.collateral))
        object.__setattr__(self, "debt", tuple(self.debt))

        hf = self.health_factor
        if hf is not None:
            message = f"Invalid health factor {self.health_factor!r} for position {self.id}"
            try:
                hf = float(hf)
            except (TypeError, ValueError) as e:
                raise DataIntegrityError(message, "healthFactor") from e
            if hf != hf or hf < 0 or hf == float("inf"):
                raise DataIntegrityError(message, "healthFactor")
        # Parsing here rejects malformed snapshots before anyone stores them.
        self.get_total_collateral_usd()
        if self.get_total_debt_usd() == 0:
            hf = None
        object.__setattr__(self, "health_factor", hf)

    def get_total_collateral_usd(self) -> Decimal:
        return sum((a.value_usd_decimal for a in self.collateral), Decimal(0))

    def get_total_debt_usd(self) -> Decimal:
        return sum((a.value_usd_decimal for a in self.debt), Decimal(0))

    def calculate_ltv(self) -> Decimal | None:
        """Debt as a percentage of collateral; ``None`` without collateral."""
        total_collateral = self.get_total_collateral_usd()
        if total_collateral == 0:
            return None
        return self.get_total_debt_usd() / total_collateral * 100

    def is_at_risk(self, threshold: float = DEFAULT_AT_RISK_THRESHOLD) -> bool:
        return self.health_factor is not None and self.health_factor < threshold

    def is_near_liquidation(
        self, threshold: float = DEFAULT_NEAR_LIQUIDATION_THRESHOLD
    ) -> bool:
        return self.health_factor is not None and self.health_factor < threshold

    def replace(self, **changes: Any) -> Position:
        return dataclasses.replace(self, **changes)


# ---------------------------------------------------------------------------
# Users and alerts
# ---------------------------------------------------------------------------


class AlertChannel(str, Enum):
    TELEGRAM = "telegram"
    EMAIL = "email"
    IN_APP = "in_app"


class AlertStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    ACKNOWLEDGED = "acknowledged"


@dataclass(frozen=True)
class UserPreferences:
    risk_profile: str | None = None
    health_factor_threshold: float | None = None
    price_change_threshold: float | None = None
    active_signals: tuple[str, ...] = ()
    notification_channels: tuple[AlertChannel, ...] | None = None


@dataclass(frozen=True)
class User:
    id: str
    wallet_address: str = ""
    preferences: UserPreferences | None = None
    telegram_chat_id: str | None = None

    def has_telegram_enabled(self) -> bool:
        return self.telegram_chat_id is not None

    def get_health_factor_threshold(
        self, default: float = DEFAULT_AT_RISK_THRESHOLD
    ) -> float:
        if self.preferences and self.preferences.health_factor_threshold is not None:
            return self.preferences.health_factor_threshold
        return default

    def has_channel_enabled(self, channel: AlertChannel | str) -> bool:
        if not self.preferences or self.preferences.notification_channels is None:
            return False
        return AlertChannel(channel) in self.preferences.notification_channels


@dataclass(frozen=True)
class Alert:
    """A notification produced in reaction to a critical event."""

    id: str
    user_id: str
    type: str
    channel: AlertChannel
    message: str
    status: AlertStatus = AlertStatus.PENDING
    metadata: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    sent_at: datetime | None = None
