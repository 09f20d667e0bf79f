"""Pure parsing functions for AlphaLend position data — no I/O."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from ...errors import DataIntegrityError
from ...models import Asset, format_decimal

XTOKEN_RATIO_SCALE = 10**18


def _as_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise DataIntegrityError(f"Invalid integer for {field}: {value!r}", field) from e


def get_token_symbol(coin_type: str) -> str:
    """Extract token symbol from a SUI coin type string.

    Examples:
        "0x2::sui::SUI" → "SUI"
        "0xabc::coin::USDC" → "USDC"
    """
    if "::" in coin_type:
        return coin_type.split("::")[-1].upper()
    return coin_type.upper()


def get_decimals(token_symbol: str, token_decimals: Mapping[str, int]) -> int:
    """Get token decimals from config, defaulting to 9 (SUI standard)."""
    return token_decimals.get(token_symbol, 9)


def resolve_price(
    token_symbol: str,
    prices: Mapping[str, Decimal],
    token_aliases: Mapping[str, str],
) -> Decimal:
    """Resolve the price for a token, falling back to aliases. Unknown → 0."""
    price = prices.get(token_symbol)
    if price is None and token_symbol in token_aliases:
        price = prices.get(token_aliases[token_symbol])
    return Decimal(price) if price is not None else Decimal(0)


def parse_collateral_entry(
    entry: dict[str, Any],
    market_info: dict[str, Any],
    prices: Mapping[str, Decimal],
    token_decimals: Mapping[str, int],
    token_aliases: Mapping[str, str],
) -> Asset:
    """Parse a single collateral entry.

    Collaterals are stored as xtoken *shares*. Conversion:
        actual_amount = shares * xtoken_ratio / 10^18 / 10^decimals
    """
    fields = entry.get("fields", {})
    shares = _as_int(fields.get("value", 0), "collateral.shares")

    coin_type = (
        market_info.get("coin_type", {}).get("fields", {}).get("name", "Unknown")
    )
    symbol = get_token_symbol(coin_type)
    decimals = get_decimals(symbol, token_decimals)

    xtoken_ratio_raw = market_info.get("xtoken_ratio", XTOKEN_RATIO_SCALE)
    if isinstance(xtoken_ratio_raw, dict):
        xtoken_ratio_raw = xtoken_ratio_raw.get("fields", {}).get("value", XTOKEN_RATIO_SCALE)
    xtoken_ratio = _as_int(xtoken_ratio_raw, "xtoken_ratio")

    amount = Decimal(shares * xtoken_ratio).scaleb(-18 - decimals)
    price = resolve_price(symbol, prices, token_aliases)

    return Asset(
        symbol=symbol,
        amount=format_decimal(amount),
        value_usd=format_decimal(amount * price),
    )


def parse_loan_entry(
    entry: dict[str, Any],
    prices: Mapping[str, Decimal],
    token_decimals: Mapping[str, int],
    token_aliases: Mapping[str, str],
) -> Asset:
    """Parse a single loan entry.

    Loans store raw token amounts (not shares):
        actual_amount = raw_amount / 10^decimals
    """
    fields = entry.get("fields", {})
    raw_amount = _as_int(fields.get("amount", 0), "loan.amount")

    coin_type = (
        fields.get("coin_type", {}).get("fields", {}).get("name", "Unknown")
    )
    symbol = get_token_symbol(coin_type)
    decimals = get_decimals(symbol, token_decimals)

    amount = Decimal(raw_amount).scaleb(-decimals)
    price = resolve_price(symbol, prices, token_aliases)

    return Asset(
        symbol=symbol,
        amount=format_decimal(amount),
        value_usd=format_decimal(amount * price),
    )


def build_asset_summary(assets: tuple[Asset, ...] | list[Asset]) -> str:
    """Build a human-readable summary string, e.g. ``SUI (500.0000 = $1,750.00)``."""
    parts = [
        f"{a.symbol} ({a.amount_decimal:.4f} = ${a.value_usd_decimal:,.2f})"
        for a in assets
    ]
    return ", ".join(parts) if parts else "N/A"
