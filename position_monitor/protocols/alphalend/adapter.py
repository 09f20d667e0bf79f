"""AlphaLend protocol adapter — fetches lending positions on SUI."""
from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any

from ...config import ProtocolConfig
from ...interfaces.chain import ChainClient
from ...interfaces.price_oracle import PriceOracle
from ...models import Asset, Position, PositionMetadata, format_decimal, utcnow
from ..risk import PositionSimulator, calc_health_factor, calc_ltv
from . import parser

logger = logging.getLogger(__name__)


class AlphaLendAdapter:
    """Fetch and simulate AlphaLend positions on SUI.

    A wallet may hold several PositionCaps; their collateral and loans are
    merged into a single Position snapshot.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        config: ProtocolConfig,
        oracle: PriceOracle,
        chain_id: int = 0,
    ) -> None:
        self._client = chain_client
        self._config = config
        self._oracle = oracle
        self._chain_id = chain_id
        self._package_id = config.contracts.get("package_id", "")
        self._positions_table_id = config.contracts.get("positions_table_id", "")
        self._markets_table_id = config.contracts.get("markets_table_id", "")
        self._market_cache: dict[int, dict[str, Any]] = {}
        self._prices: dict[str, Decimal] = {}
        self._simulator = PositionSimulator(config.liquidation_threshold)

    @property
    def protocol_name(self) -> str:
        return "alphalend"

    async def _get_position_capabilities(self, wallet_address: str) -> list[str]:
        """Find PositionCap objects for AlphaLend in the wallet."""
        objects = await self._client.get_owned_objects(wallet_address)
        caps: list[str] = []

        for obj in objects:
            obj_type = obj.get("data", {}).get("type", "")
            object_id = obj.get("data", {}).get("objectId", "")

            type_lower = obj_type.lower()
            if (
                "positioncap" in type_lower
                or "position_cap" in type_lower
                or (self._package_id and self._package_id in obj_type)
            ):
                if object_id:
                    caps.append(object_id)

        return caps

    async def _get_position_data(self, position_id: str) -> dict[str, Any]:
        """Fetch position data from the protocol's positions table."""
        result = await self._client.get_dynamic_field_object(
            self._positions_table_id, "0x2::object::ID", position_id
        )
        if not result:
            logger.warning("No position data found for %s", position_id)
            return {}
        return result.get("content", {}).get("fields", {}).get("value", {}).get("fields", {})

    async def _get_market_info(self, market_id: int) -> dict[str, Any]:
        """Fetch market info (with caching)."""
        if market_id in self._market_cache:
            return self._market_cache[market_id]

        result = await self._client.get_dynamic_field_object(
            self._markets_table_id, "u64", str(market_id)
        )
        if not result:
            return {}

        market = result.get("content", {}).get("fields", {}).get("value", {}).get("fields", {})
        self._market_cache[market_id] = market
        return market

    async def get_position(self, wallet_address: str) -> Position | None:
        """Fetch the wallet's AlphaLend position; ``None`` if it has none."""
        logger.info("Checking AlphaLend positions for wallet: %s", wallet_address)

        position_caps = await self._get_position_capabilities(wallet_address)
        logger.info("Found %d position capabilities", len(position_caps))
        if not position_caps:
            return None

        self._prices = await self._oracle.fetch_prices()

        collateral: list[Asset] = []
        debt: list[Asset] = []
        onchain_ids: list[str] = []
        healthy = True
        liquidatable = False

        for cap_id in position_caps:
            details = await self._client.get_object(cap_id)
            cap_content = details.get("data", {}).get("content", {}).get("fields", {})
            position_id = cap_content.get("position_id")

            if not position_id:
                logger.debug("No position_id found in PositionCap %s", cap_id)
                continue

            position_data = await self._get_position_data(position_id)
            if not position_data:
                continue

            onchain_ids.append(position_id)
            cap_collateral, cap_debt = await self._parse_assets(position_data)
            collateral.extend(cap_collateral)
            debt.extend(cap_debt)
            healthy = healthy and bool(position_data.get("is_position_healthy", True))
            liquidatable = liquidatable or bool(
                position_data.get("is_position_liquidatable", False)
            )

        if not onchain_ids:
            return None

        return self._build_position(
            wallet_address, collateral, debt, onchain_ids, healthy, liquidatable
        )

    async def _parse_assets(
        self, position_data: dict[str, Any]
    ) -> tuple[list[Asset], list[Asset]]:
        cfg = self._config
        collaterals_raw = (
            position_data.get("collaterals", {}).get("fields", {}).get("contents", [])
        )
        collateral: list[Asset] = []
        for entry in collaterals_raw:
            market_id = int(entry.get("fields", {}).get("key", 0))
            market_info = await self._get_market_info(market_id)
            collateral.append(
                parser.parse_collateral_entry(
                    entry, market_info, self._prices, cfg.token_decimals, cfg.token_aliases
                )
            )

        debt = [
            parser.parse_loan_entry(entry, self._prices, cfg.token_decimals, cfg.token_aliases)
            for entry in position_data.get("loans", [])
        ]

        for asset in collateral + debt:
            if asset.value_usd_decimal == 0 and asset.amount_decimal > 0:
                logger.warning("No price for %s, valued at $0", asset.symbol)

        return collateral, debt

    def _build_position(
        self,
        wallet_address: str,
        collateral: list[Asset],
        debt: list[Asset],
        onchain_ids: list[str],
        healthy: bool,
        liquidatable: bool,
    ) -> Position:
        total_collateral = sum((a.value_usd_decimal for a in collateral), Decimal(0))
        total_debt = sum((a.value_usd_decimal for a in debt), Decimal(0))
        threshold = Decimal(str(self._config.liquidation_threshold))
        ltv = calc_ltv(total_collateral, total_debt)
        health_factor = calc_health_factor(total_collateral, total_debt, threshold)

        logger.info(
            "AlphaLend %s — Collateral: %s ($%.2f)  Borrowed: %s ($%.2f)  HF: %s%s",
            wallet_address,
            parser.build_asset_summary(collateral),
            total_collateral,
            parser.build_asset_summary(debt),
            total_debt,
            f"{health_factor:.4f}" if health_factor is not None else "n/a",
            "  LIQUIDATABLE" if liquidatable else "",
        )

        now = utcnow()
        return Position(
            id=str(uuid.uuid4()),
            user_id="",
            protocol=self.protocol_name,
            wallet_address=wallet_address,
            chain_id=self._chain_id,
            health_factor=float(health_factor) if health_factor is not None else None,
            collateral=tuple(collateral),
            debt=tuple(debt),
            metadata=PositionMetadata(
                ltv=format_decimal(ltv) if ltv is not None else None,
                liquidation_threshold=format_decimal(threshold),
                total_collateral_usd=format_decimal(total_collateral),
                total_debt_usd=format_decimal(total_debt),
                additional_data={
                    "positionIds": onchain_ids,
                    "isPositionHealthy": healthy,
                    "isPositionLiquidatable": liquidatable,
                },
            ),
            snapshot_at=now,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # What-if simulation
    # ------------------------------------------------------------------

    async def simulate_price_change(
        self, position: Position, asset: str, percent_change: float
    ) -> float | None:
        return self._simulator.price_change(position, asset, percent_change)

    async def simulate_deposit(
        self, position: Position, asset: str, amount: float
    ) -> float | None:
        return self._simulator.deposit(position, asset, amount, self._prices)

    async def simulate_withdraw(
        self, position: Position, asset: str, amount: float
    ) -> float | None:
        return self._simulator.withdraw(position, asset, amount, self._prices)

    async def simulate_borrow(
        self, position: Position, asset: str, amount: float
    ) -> float | None:
        return self._simulator.borrow(position, asset, amount, self._prices)

    async def simulate_repay(
        self, position: Position, asset: str, amount: float
    ) -> float | None:
        return self._simulator.repay(position, asset, amount, self._prices)
