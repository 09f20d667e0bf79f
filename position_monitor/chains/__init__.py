"""Chain RPC clients."""
from .evm import EvmClient
from .sui import SuiClient

__all__ = ["EvmClient", "SuiClient"]
