"""Protocol adapter — per-protocol position fetching and what-if simulation."""
from __future__ import annotations

from typing import Protocol

from ..models import Position


class ProtocolAdapter(Protocol):
    """Abstract interface for a lending protocol.

    ``get_position`` returns ``None`` when the wallet has no open position
    and raises ``DataSourceUnavailable`` when the upstream cannot be
    reached. The ``simulate_*`` methods return the health factor the
    position would have after a single hypothetical action, without
    mutating the input.
    """

    @property
    def protocol_name(self) -> str: ...

    async def get_position(self, wallet_address: str) -> Position | None: ...

    async def simulate_price_change(
        self, position: Position, asset: str, percent_change: float
    ) -> float | None: ...

    async def simulate_deposit(
        self, position: Position, asset: str, amount: float
    ) -> float | None: ...

    async def simulate_withdraw(
        self, position: Position, asset: str, amount: float
    ) -> float | None: ...

    async def simulate_borrow(
        self, position: Position, asset: str, amount: float
    ) -> float | None: ...

    async def simulate_repay(
        self, position: Position, asset: str, amount: float
    ) -> float | None: ...
