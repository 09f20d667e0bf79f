"""Protocol interfaces for the DeFi position monitor."""
from .chain import ChainClient, EvmChainClient
from .event_store import EventStore
from .notifier import Notifier
from .position_repository import PositionRepository
from .price_oracle import PriceOracle
from .protocol_adapter import ProtocolAdapter

__all__ = [
    "ChainClient",
    "EventStore",
    "EvmChainClient",
    "Notifier",
    "PositionRepository",
    "PriceOracle",
    "ProtocolAdapter",
]
