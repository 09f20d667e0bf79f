"""Position repository protocol — snapshot persistence."""
from __future__ import annotations

from typing import Protocol

from ..models import Position


class PositionRepository(Protocol):
    """Abstract interface for storing Position snapshots."""

    async def find_by_id(self, position_id: str) -> Position | None: ...

    async def find_by_user_id(self, user_id: str) -> list[Position]: ...

    async def find_by_wallet_address(self, wallet_address: str) -> list[Position]: ...

    async def find_latest_by_wallet_and_protocol(
        self, wallet_address: str, protocol: str
    ) -> Position | None: ...

    async def save(self, position: Position) -> None: ...

    async def delete(self, position_id: str) -> None: ...

    async def delete_by_user_id(self, user_id: str) -> None: ...
