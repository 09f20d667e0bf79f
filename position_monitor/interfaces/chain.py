"""Chain client protocols — blockchain RPC abstraction."""
from typing import Any, Protocol, Sequence


class ChainClient(Protocol):
    """Abstract interface for Sui-style object RPC interactions."""

    async def get_owned_objects(self, wallet_address: str) -> list[dict[str, Any]]: ...

    async def get_object(self, object_id: str) -> dict[str, Any]: ...

    async def get_dynamic_field_object(
        self, parent_id: str, key_type: str, key_value: str
    ) -> dict[str, Any]: ...


class EvmChainClient(Protocol):
    """Abstract interface for EVM contract reads."""

    async def call_function(
        self,
        address: str,
        abi: Sequence[dict[str, Any]],
        function_name: str,
        *args: Any,
    ) -> Any: ...
