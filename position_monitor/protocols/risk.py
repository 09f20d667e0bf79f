"""Health-factor math and what-if projections — pure, no I/O.

Projections start from the position's reported health factor and scale it
by the change in collateral and debt::

    hf' = hf * (collateral' / collateral) * (debt / debt')

When no health factor was reported (or there was no collateral) they fall
back to ``collateral_usd * liquidation_threshold% / debt_usd``. Either way
more collateral or less debt raises the result and the reverse lowers it.
Zero debt yields ``None``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Mapping

from ..errors import DataSourceUnavailable
from ..models import Asset, Position, parse_decimal

_HUNDRED = Decimal(100)


def calc_ltv(total_collateral_usd: Decimal, total_debt_usd: Decimal) -> Decimal | None:
    """Loan-to-value as a percentage; ``None`` without collateral."""
    if total_collateral_usd == 0:
        return None
    return total_debt_usd / total_collateral_usd * _HUNDRED


def calc_health_factor(
    total_collateral_usd: Decimal,
    total_debt_usd: Decimal,
    liquidation_threshold: Decimal,
) -> Decimal | None:
    """Calculate health factor; ``None`` when there is no debt."""
    if total_debt_usd <= 0:
        return None
    return total_collateral_usd * liquidation_threshold / _HUNDRED / total_debt_usd


def calc_liquidation_price(
    position: Position, liquidation_threshold: Decimal
) -> Decimal | None:
    """Collateral price at which the health factor reaches 1.

    Only defined for positions with exactly one collateral asset and some
    debt.
    """
    if len(position.collateral) != 1 or liquidation_threshold <= 0:
        return None
    debt = position.get_total_debt_usd()
    amount = position.collateral[0].amount_decimal
    if debt == 0 or amount == 0:
        return None
    return debt * _HUNDRED / (amount * liquidation_threshold)


def _matching(assets: tuple[Asset, ...], symbol: str) -> list[Asset]:
    wanted = symbol.upper()
    return [a for a in assets if a.symbol.upper() == wanted]


def _held_value(assets: tuple[Asset, ...], symbol: str) -> Decimal:
    return sum((a.value_usd_decimal for a in _matching(assets, symbol)), Decimal(0))


def _to_float(value: Decimal | None) -> float | None:
    return None if value is None else float(value)


class PositionSimulator:
    """Projects a position's health factor under a single hypothetical action."""

    def __init__(self, default_liquidation_threshold: float) -> None:
        self._default_lt = parse_decimal(default_liquidation_threshold, "liquidation_threshold")

    def liquidation_threshold(self, position: Position) -> Decimal:
        if position.metadata and position.metadata.liquidation_threshold:
            return parse_decimal(position.metadata.liquidation_threshold, "liquidationThreshold")
        return self._default_lt

    @staticmethod
    def resolve_price(
        position: Position, symbol: str, prices: Mapping[str, Decimal] | None = None
    ) -> Decimal:
        """Unit price of ``symbol``, from the position's own assets or ``prices``."""
        for asset in _matching(position.collateral + position.debt, symbol):
            amount = asset.amount_decimal
            if amount > 0:
                return asset.value_usd_decimal / amount
        prices = prices or {}
        price = prices.get(symbol.upper(), prices.get(symbol))
        if price is None:
            raise DataSourceUnavailable(f"No price available for {symbol}", "prices")
        return parse_decimal(price, f"{symbol}.price")

    def health_factor(self, position: Position) -> float | None:
        return _to_float(
            calc_health_factor(
                position.get_total_collateral_usd(),
                position.get_total_debt_usd(),
                self.liquidation_threshold(position),
            )
        )

    def _project(
        self, position: Position, collateral_delta: Decimal, debt_delta: Decimal
    ) -> float | None:
        collateral = position.get_total_collateral_usd()
        debt = position.get_total_debt_usd()
        new_collateral = max(collateral + collateral_delta, Decimal(0))
        new_debt = max(debt + debt_delta, Decimal(0))
        if new_debt == 0:
            return None
        if position.health_factor is None or collateral == 0:
            return _to_float(
                calc_health_factor(new_collateral, new_debt, self.liquidation_threshold(position))
            )
        # hf scales linearly with collateral and inversely with debt.
        reported = Decimal(str(position.health_factor))
        return float(reported * (new_collateral / collateral) * (debt / new_debt))

    def price_change(
        self, position: Position, asset: str, percent_change: float
    ) -> float | None:
        """Scale every holding of ``asset`` (both sides) by ``percent_change``%."""
        change = parse_decimal(abs(percent_change), "percent_change")
        if percent_change < 0:
            change = -change
        factor = max(Decimal(1) + change / _HUNDRED, Decimal(0))
        collateral_delta = _held_value(position.collateral, asset) * (factor - 1)
        debt_delta = _held_value(position.debt, asset) * (factor - 1)
        return self._project(position, collateral_delta, debt_delta)

    def deposit(
        self, position: Position, asset: str, amount: float,
        prices: Mapping[str, Decimal] | None = None,
    ) -> float | None:
        value = parse_decimal(amount, "amount") * self.resolve_price(position, asset, prices)
        return self._project(position, value, Decimal(0))

    def withdraw(
        self, position: Position, asset: str, amount: float,
        prices: Mapping[str, Decimal] | None = None,
    ) -> float | None:
        """Withdrawals are capped at the collateral held in ``asset``."""
        value = parse_decimal(amount, "amount") * self.resolve_price(position, asset, prices)
        value = min(value, _held_value(position.collateral, asset))
        return self._project(position, -value, Decimal(0))

    def borrow(
        self, position: Position, asset: str, amount: float,
        prices: Mapping[str, Decimal] | None = None,
    ) -> float | None:
        value = parse_decimal(amount, "amount") * self.resolve_price(position, asset, prices)
        return self._project(position, Decimal(0), value)

    def repay(
        self, position: Position, asset: str, amount: float,
        prices: Mapping[str, Decimal] | None = None,
    ) -> float | None:
        """Repayments are capped at the debt owed in ``asset``."""
        value = parse_decimal(amount, "amount") * self.resolve_price(position, asset, prices)
        value = min(value, _held_value(position.debt, asset))
        return self._project(position, Decimal(0), -value)
