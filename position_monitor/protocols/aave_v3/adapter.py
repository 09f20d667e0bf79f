"""Aave V3 protocol adapter — account-level positions on EVM chains."""
from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from ...config import ProtocolConfig
from ...interfaces.chain import EvmChainClient
from ...interfaces.price_oracle import PriceOracle
from ...models import Asset, Position, PositionMetadata, format_decimal, utcnow
from ..risk import PositionSimulator, calc_ltv
from . import parser

logger = logging.getLogger(__name__)

# Account totals are reported in the pool's USD base currency, not per asset.
USD = "USD"


class AaveV3Adapter:
    """Read positions from an Aave V3 Pool via ``getUserAccountData``."""

    def __init__(
        self,
        chain_client: EvmChainClient,
        config: ProtocolConfig,
        oracle: PriceOracle | None = None,
        chain_id: int = 0,
    ) -> None:
        self._client = chain_client
        self._config = config
        self._oracle = oracle
        self._chain_id = chain_id
        self._pool = config.contracts.get("pool", "")
        self._prices: dict[str, Decimal] = {}
        self._simulator = PositionSimulator(config.liquidation_threshold)

    @property
    def protocol_name(self) -> str:
        return "aave_v3"

    async def get_position(self, wallet_address: str) -> Position | None:
        logger.info("Checking Aave V3 position for wallet: %s", wallet_address)
        if not self._pool:
            raise ValueError("Aave V3 protocol config is missing contracts.pool")

        pool = parser.checksum_address(self._pool, "pool")
        user = parser.checksum_address(wallet_address, "wallet_address")
        account = parser.decode_user_account_data(
            await self._client.call_function(
                pool, parser.POOL_ABI, parser.GET_USER_ACCOUNT_DATA, user
            )
        )

        if account.total_collateral_usd == 0 and account.total_debt_usd == 0:
            logger.info("No Aave V3 position for %s", wallet_address)
            return None

        if self._oracle is not None:
            self._prices = await self._oracle.fetch_prices()

        collateral = (_usd_asset(account.total_collateral_usd),) if account.total_collateral_usd else ()
        debt = (_usd_asset(account.total_debt_usd),) if account.total_debt_usd else ()
        ltv = calc_ltv(account.total_collateral_usd, account.total_debt_usd)

        logger.info(
            "Aave V3 %s — Collateral: $%.2f  Borrowed: $%.2f  HF: %s",
            wallet_address,
            account.total_collateral_usd,
            account.total_debt_usd,
            f"{account.health_factor:.4f}" if account.health_factor is not None else "n/a",
        )

        now = utcnow()
        return Position(
            id=str(uuid.uuid4()),
            user_id="",
            protocol=self.protocol_name,
            wallet_address=wallet_address,
            chain_id=self._chain_id,
            health_factor=(
                float(account.health_factor) if account.health_factor is not None else None
            ),
            collateral=collateral,
            debt=debt,
            metadata=PositionMetadata(
                ltv=format_decimal(ltv) if ltv is not None else None,
                liquidation_threshold=format_decimal(account.liquidation_threshold),
                available_borrows_usd=format_decimal(account.available_borrows_usd),
                total_collateral_usd=format_decimal(account.total_collateral_usd),
                total_debt_usd=format_decimal(account.total_debt_usd),
                additional_data={"maxLtv": format_decimal(account.ltv), "pool": self._pool},
            ),
            snapshot_at=now,
            created_at=now,
            updated_at=now,
        )

    # Per-asset balances are not read, so price moves on a named asset
    # only affect the position if that asset is the USD base itself.

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


def _usd_asset(value: Decimal) -> Asset:
    text = format_decimal(value)
    return Asset(symbol=USD, amount=text, value_usd=text)
