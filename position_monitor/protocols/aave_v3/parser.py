"""Aave V3 ``Pool.getUserAccountData`` ABI and result scaling."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Sequence

from web3 import Web3

from ...errors import DataIntegrityError

GET_USER_ACCOUNT_DATA = "getUserAccountData"

POOL_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": GET_USER_ACCOUNT_DATA,
        "outputs": [
            {"internalType": "uint256", "name": "totalCollateralBase", "type": "uint256"},
            {"internalType": "uint256", "name": "totalDebtBase", "type": "uint256"},
            {"internalType": "uint256", "name": "availableBorrowsBase", "type": "uint256"},
            {"internalType": "uint256", "name": "currentLiquidationThreshold", "type": "uint256"},
            {"internalType": "uint256", "name": "ltv", "type": "uint256"},
            {"internalType": "uint256", "name": "healthFactor", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    }
]

BASE_CURRENCY_DECIMALS = 8
HEALTH_FACTOR_DECIMALS = 18
BPS_PER_PERCENT = 100

# Aave reports type(uint256).max as the health factor of a debt-free account.
UINT256_MAX = 2**256 - 1

_ACCOUNT_DATA_FIELDS = len(POOL_ABI[0]["outputs"])


@dataclass(frozen=True)
class UserAccountData:
    """Decoded ``getUserAccountData`` result, scaled to human units."""

    total_collateral_usd: Decimal
    total_debt_usd: Decimal
    available_borrows_usd: Decimal
    liquidation_threshold: Decimal  # percent
    ltv: Decimal  # percent
    health_factor: Decimal | None


def checksum_address(address: str, field: str = "address") -> str:
    """EIP-55 checksum form of ``address``."""
    try:
        return Web3.to_checksum_address(address)
    except (TypeError, ValueError) as e:
        raise DataIntegrityError(f"Invalid EVM address for {field}: {address!r}", field) from e


def _as_uint(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DataIntegrityError(f"Expected uint256 for {field}, got {value!r}", field)
    return value


def decode_user_account_data(values: Sequence[Any]) -> UserAccountData:
    """Scale the raw ``getUserAccountData`` outputs.

    Raises:
        DataIntegrityError: wrong arity or non-integer outputs.
    """
    values = tuple(values)
    if len(values) != _ACCOUNT_DATA_FIELDS:
        raise DataIntegrityError(
            f"Expected {_ACCOUNT_DATA_FIELDS} values from {GET_USER_ACCOUNT_DATA}, got {len(values)}",
            GET_USER_ACCOUNT_DATA,
        )
    names = [output["name"] for output in POOL_ABI[0]["outputs"]]
    (
        collateral_base,
        debt_base,
        available_base,
        liquidation_threshold_bps,
        ltv_bps,
        health_factor_raw,
    ) = (_as_uint(value, name) for value, name in zip(values, names))

    health_factor: Decimal | None
    if debt_base == 0 or health_factor_raw == UINT256_MAX:
        health_factor = None
    else:
        health_factor = Decimal(health_factor_raw).scaleb(-HEALTH_FACTOR_DECIMALS)

    return UserAccountData(
        total_collateral_usd=Decimal(collateral_base).scaleb(-BASE_CURRENCY_DECIMALS),
        total_debt_usd=Decimal(debt_base).scaleb(-BASE_CURRENCY_DECIMALS),
        available_borrows_usd=Decimal(available_base).scaleb(-BASE_CURRENCY_DECIMALS),
        liquidation_threshold=Decimal(liquidation_threshold_bps) / BPS_PER_PERCENT,
        ltv=Decimal(ltv_bps) / BPS_PER_PERCENT,
        health_factor=health_factor,
    )
