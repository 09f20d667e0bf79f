"""Unit tests for health-factor math and what-if projections."""
from __future__ import annotations

from decimal import Decimal

import pytest

from position_monitor.errors import DataSourceUnavailable
from position_monitor.models import Asset, Position, PositionMetadata
from position_monitor.protocols.risk import (
    PositionSimulator,
    calc_health_factor,
    calc_liquidation_price,
    calc_ltv,
)


@pytest.fixture()
def simulator() -> PositionSimulator:
    return PositionSimulator(85.0)


class TestCalcLtv:
    def test_basic(self) -> None:
        assert calc_ltv(Decimal(10000), Decimal(5000)) == Decimal(50)

    def test_zero_collateral(self) -> None:
        assert calc_ltv(Decimal(0), Decimal(5000)) is None

    def test_no_debt(self) -> None:
        assert calc_ltv(Decimal(10000), Decimal(0)) == 0


class TestCalcHealthFactor:
    def test_basic(self) -> None:
        assert calc_health_factor(Decimal(10000), Decimal(5000), Decimal(85)) == Decimal("1.7")

    def test_no_debt_returns_none(self) -> None:
        assert calc_health_factor(Decimal(10000), Decimal(0), Decimal(85)) is None

    def test_at_threshold(self) -> None:
        assert calc_health_factor(Decimal(10000), Decimal(8500), Decimal(85)) == 1


class TestLiquidationPrice:
    def test_single_collateral(self, sample_position: Position) -> None:
        # 100 SUI, $5000 debt, 85% threshold → 5000 / (100 * 0.85)
        price = calc_liquidation_price(sample_position, Decimal(85))
        assert float(price) == pytest.approx(58.8235294, rel=1e-6)

    def test_no_debt(self, position_factory) -> None:
        p = position_factory(health_factor=None, debt_usd="0")
        assert calc_liquidation_price(p, Decimal(85)) is None


class TestSimulator:
    def test_current_health_factor(self, simulator: PositionSimulator, sample_position: Position) -> None:
        assert simulator.health_factor(sample_position) == pytest.approx(1.7)

    def test_metadata_threshold_wins(self, simulator: PositionSimulator, position_factory) -> None:
        p = position_factory(liquidation_threshold="80")
        assert simulator.health_factor(p) == pytest.approx(1.6)

    def test_default_threshold_without_metadata(self, simulator: PositionSimulator, position_factory) -> None:
        p = position_factory(liquidation_threshold=None)
        assert simulator.health_factor(p) == pytest.approx(1.7)

    def test_price_drop(self, simulator: PositionSimulator, sample_position: Position) -> None:
        # SUI -20% → collateral 8000 → 8000 * 0.85 / 5000
        assert simulator.price_change(sample_position, "SUI", -20) == pytest.approx(1.36)

    def test_price_change_on_debt_asset(self, simulator: PositionSimulator, sample_position: Position) -> None:
        # USDC +10% → debt 5500
        assert simulator.price_change(sample_position, "usdc", 10) == pytest.approx(8500 / 5500)

    def test_price_collapse_clamped(self, simulator: PositionSimulator, sample_position: Position) -> None:
        assert simulator.price_change(sample_position, "SUI", -150) == pytest.approx(0.0)

    def test_deposit_never_lowers(self, simulator: PositionSimulator, sample_position: Position) -> None:
        before = simulator.health_factor(sample_position)
        after = simulator.deposit(sample_position, "SUI", 10)
        assert after == pytest.approx(11000 * 0.85 / 5000)
        assert after >= before

    def test_borrow_never_raises(self, simulator: PositionSimulator, sample_position: Position) -> None:
        before = simulator.health_factor(sample_position)
        after = simulator.borrow(sample_position, "USDC", 1000)
        assert after == pytest.approx(8500 / 6000)
        assert after <= before

    def test_withdraw_capped_at_holding(self, simulator: PositionSimulator, sample_position: Position) -> None:
        assert simulator.withdraw(sample_position, "SUI", 1_000_000) == pytest.approx(0.0)

    def test_repay_all_clears_health_factor(self, simulator: PositionSimulator, sample_position: Position) -> None:
        assert simulator.repay(sample_position, "USDC", 10_000) is None

    def test_deposit_new_asset_uses_prices(self, simulator: PositionSimulator, sample_position: Position) -> None:
        after = simulator.deposit(sample_position, "BTC", 0.01, {"BTC": Decimal("100000")})
        assert after == pytest.approx(11000 * 0.85 / 5000)

    def test_unknown_price_raises(self, simulator: PositionSimulator, sample_position: Position) -> None:
        with pytest.raises(DataSourceUnavailable):
            simulator.deposit(sample_position, "DOGE", 1)

    def test_input_not_mutated(self, simulator: PositionSimulator, sample_position: Position) -> None:
        before = sample_position.replace()
        simulator.borrow(sample_position, "USDC", 100)
        assert sample_position == before


def eth_position(health_factor: float | None) -> Position:
    """2 ETH ($6000) against 1000 USDC; the formula alone would give 5.1."""
    return Position(
        id="eth-1",
        user_id="user-1",
        protocol="aave_v3",
        wallet_address="0xWALLET123",
        chain_id=1,
        health_factor=health_factor,
        collateral=(Asset(symbol="ETH", amount="2", value_usd="6000"),),
        debt=(Asset(symbol="USDC", amount="1000", value_usd="1000"),),
        metadata=PositionMetadata(liquidation_threshold="85"),
    )


class TestReportedHealthFactorAnchor:
    def test_deposit_scales_reported_value(self, simulator: PositionSimulator) -> None:
        # +1 ETH → collateral x1.5
        assert simulator.deposit(eth_position(1.2), "ETH", 1) == pytest.approx(1.8)

    def test_borrow_scales_reported_value(self, simulator: PositionSimulator) -> None:
        # +1000 USDC → debt x2
        assert simulator.borrow(eth_position(1.2), "USDC", 1000) == pytest.approx(0.6)

    def test_price_drop_scales_reported_value(self, simulator: PositionSimulator) -> None:
        assert simulator.price_change(eth_position(1.2), "ETH", -50) == pytest.approx(0.6)

    def test_full_withdraw_reaches_zero(self, simulator: PositionSimulator) -> None:
        assert simulator.withdraw(eth_position(1.2), "ETH", 10) == pytest.approx(0.0)

    def test_full_repay_clears(self, simulator: PositionSimulator) -> None:
        assert simulator.repay(eth_position(1.2), "USDC", 5000) is None

    def test_formula_when_nothing_reported(self, simulator: PositionSimulator) -> None:
        # Without a reported value: 9000 * 0.85 / 1000
        assert simulator.deposit(eth_position(None), "ETH", 1) == pytest.approx(7.65)

    def test_borrow_from_debt_free_position(self, simulator: PositionSimulator) -> None:
        p = Position(
            id="eth-2", user_id="user-1", protocol="aave_v3", wallet_address="0xWALLET123",
            chain_id=1, health_factor=None,
            collateral=(Asset(symbol="ETH", amount="2", value_usd="6000"),),
        )
        # 6000 * 0.85 / 1000
        assert simulator.borrow(p, "USDC", 1000, {"USDC": Decimal(1)}) == pytest.approx(2.55)


@pytest.mark.parametrize("reported", [1.2, 6.0])
class TestProjectionDirection:
    def test_deposit_not_lower(self, simulator: PositionSimulator, reported: float) -> None:
        assert simulator.deposit(eth_position(reported), "ETH", 0.5) >= reported

    def test_repay_not_lower(self, simulator: PositionSimulator, reported: float) -> None:
        assert simulator.repay(eth_position(reported), "USDC", 100) >= reported

    def test_borrow_not_higher(self, simulator: PositionSimulator, reported: float) -> None:
        assert simulator.borrow(eth_position(reported), "USDC", 100) <= reported

    def test_withdraw_not_higher(self, simulator: PositionSimulator, reported: float) -> None:
        assert simulator.withdraw(eth_position(reported), "ETH", 0.5) <= reported
