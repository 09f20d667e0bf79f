"""Lending protocol adapters, keyed by the ``adapter`` name in config."""
from __future__ import annotations

from typing import Any, Callable

from ..config import ProtocolConfig
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.protocol_adapter import ProtocolAdapter
from .aave_v3 import AaveV3Adapter
from .alphalend import AlphaLendAdapter

AdapterFactory = Callable[[Any, ProtocolConfig, PriceOracle, int], ProtocolAdapter]

ADAPTERS: dict[str, AdapterFactory] = {
    "alphalend": AlphaLendAdapter,
    "aave_v3": AaveV3Adapter,
}


def create_adapter(
    chain_client: Any,
    config: ProtocolConfig,
    oracle: PriceOracle,
    chain_id: int = 0,
) -> ProtocolAdapter:
    """Instantiate the adapter named by ``config.adapter``."""
    try:
        factory = ADAPTERS[config.adapter]
    except KeyError:
        raise ValueError(
            f"Unknown protocol adapter '{config.adapter}'. Known: {sorted(ADAPTERS)}"
        ) from None
    return factory(chain_client, config, oracle, chain_id)


__all__ = ["ADAPTERS", "AaveV3Adapter", "AlphaLendAdapter", "create_adapter"]
