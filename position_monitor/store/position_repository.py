"""Position repository — maps Position snapshots to storage rows."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from ..errors import DataIntegrityError
from ..models import Asset, Position, PositionMetadata, utcnow

logger = logging.getLogger(__name__)


def position_to_record(position: Position) -> dict[str, Any]:
    """Convert a Position into a JSON-compatible row."""
    return {
        "id": position.id,
        "userId": position.user_id,
        "protocol": position.protocol,
        "walletAddress": position.wallet_address,
        "chainId": position.chain_id,
        "healthFactor": None if position.health_factor is None else str(position.health_factor),
        "collateral": [a.to_dict() for a in position.collateral],
        "debt": [a.to_dict() for a in position.debt],
        "metadata": position.metadata.to_dict() if position.metadata else None,
        "snapshotAt": position.snapshot_at.isoformat(),
        "createdAt": position.created_at.isoformat(),
        "updatedAt": position.updated_at.isoformat(),
    }


def position_from_record(record: Mapping[str, Any]) -> Position:
    """Rebuild a Position from a stored row.

    A null health factor stays null; it means "no debt", not zero.
    """
    try:
        hf_raw = record.get("healthFactor")
        metadata = record.get("metadata")
        return Position(
            id=str(record["id"]),
            user_id=str(record["userId"]),
            protocol=str(record["protocol"]),
            wallet_address=str(record["walletAddress"]),
            chain_id=int(record["chainId"]),
            health_factor=None if hf_raw is None else float(hf_raw),
            collateral=tuple(Asset.from_dict(a) for a in record.get("collateral", [])),
            debt=tuple(Asset.from_dict(a) for a in record.get("debt", [])),
            metadata=PositionMetadata.from_dict(metadata) if metadata else None,
            snapshot_at=datetime.fromisoformat(record["snapshotAt"]),
            created_at=datetime.fromisoformat(record["createdAt"]),
            updated_at=datetime.fromisoformat(record["updatedAt"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DataIntegrityError(f"Malformed position record: {e}") from e


class InMemoryPositionRepository:
    """Position repository keeping rows in a dict keyed by position id."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}

    async def find_by_id(self, position_id: str) -> Position | None:
        row = self._rows.get(position_id)
        return position_from_record(row) if row else None

    async def find_by_user_id(self, user_id: str) -> list[Position]:
        return [position_from_record(r) for r in self._rows.values() if r["userId"] == user_id]

    async def find_by_wallet_address(self, wallet_address: str) -> list[Position]:
        return [
            position_from_record(r)
            for r in self._rows.values()
            if r["walletAddress"] == wallet_address
        ]

    async def find_latest_by_wallet_and_protocol(
        self, wallet_address: str, protocol: str
    ) -> Position | None:
        """Most recent snapshot by ``snapshot_at`` for the pair."""
        candidates = [
            position_from_record(r)
            for r in self._rows.values()
            if r["walletAddress"] == wallet_address and r["protocol"] == protocol
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.snapshot_at)

    async def save(self, position: Position) -> None:
        """Insert or update the row keyed by ``position.id``."""
        record = position_to_record(position)
        existing = self._rows.get(position.id)
        if existing:
            record["createdAt"] = existing["createdAt"]
            record["updatedAt"] = utcnow().isoformat()
        self._rows[position.id] = record
        logger.debug("Saved position %s (%s)", position.id, position.protocol)

    async def delete(self, position_id: str) -> None:
        self._rows.pop(position_id, None)

    async def delete_by_user_id(self, user_id: str) -> None:
        for position_id in [k for k, r in self._rows.items() if r["userId"] == user_id]:
            del self._rows[position_id]

    def __len__(self) -> int:
        return len(self._rows)
