"""Decide whether a fresh snapshot differs materially from the last one."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..models import Asset, Position


def _values_by_symbol(assets: tuple[Asset, ...]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for asset in assets:
        key = asset.symbol.upper()
        totals[key] = totals.get(key, Decimal(0)) + asset.value_usd_decimal
    return totals


@dataclass(frozen=True)
class ChangePolicy:
    """Epsilon-based materiality test for position snapshots."""

    health_factor_epsilon: float = 0.0001
    usd_epsilon: float = 0.01

    def is_material(self, previous: Position | None, current: Position) -> bool:
        if previous is None:
            return True

        if (previous.health_factor is None) != (current.health_factor is None):
            return True
        if previous.health_factor is not None and current.health_factor is not None:
            if abs(current.health_factor - previous.health_factor) > self.health_factor_epsilon:
                return True

        epsilon = Decimal(str(self.usd_epsilon))
        for before, after in (
            (previous.collateral, current.collateral),
            (previous.debt, current.debt),
        ):
            old = _values_by_symbol(before)
            new = _values_by_symbol(after)
            if old.keys() != new.keys():
                return True
            if any(abs(new[k] - old[k]) > epsilon for k in new):
                return True
        return False
