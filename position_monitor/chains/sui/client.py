"""SUI RPC client."""
from __future__ import annotations

import logging
from typing import Any

from ..jsonrpc import JsonRpcClient

logger = logging.getLogger(__name__)

_OBJECT_OPTIONS = {"showType": True, "showContent": True, "showOwner": True}


class SuiClient(JsonRpcClient):
    """SUI blockchain RPC client with automatic endpoint fallback.

    Transport failures propagate as ``DataSourceUnavailable``; an empty
    result means the object genuinely does not exist.
    """

    chain_name = "sui"

    async def get_owned_objects(self, wallet_address: str) -> list[dict[str, Any]]:
        """Get all objects owned by the wallet (paginated)."""
        all_objects: list[dict[str, Any]] = []
        cursor = None

        while True:
            result = await self.rpc_call(
                "suix_getOwnedObjects",
                [wallet_address, {"filter": None, "options": _OBJECT_OPTIONS}, cursor, 50],
            )
            all_objects.extend(result.get("data", []))

            cursor = result.get("nextCursor")
            if not result.get("hasNextPage", False) or not cursor:
                break

        logger.debug("Wallet %s owns %d objects", wallet_address, len(all_objects))
        return all_objects

    async def get_object(self, object_id: str) -> dict[str, Any]:
        """Get detailed information about an object."""
        return await self.rpc_call("sui_getObject", [object_id, _OBJECT_OPTIONS])

    async def get_dynamic_field_object(
        self, parent_id: str, key_type: str, key_value: str
    ) -> dict[str, Any]:
        """Get a specific dynamic field object; ``{}`` when it does not exist."""
        result = await self.rpc_call(
            "suix_getDynamicFieldObject",
            [parent_id, {"type": key_type, "value": key_value}],
        )
        if result.get("error"):
            logger.debug("Dynamic field %s/%s not found: %s", parent_id, key_value, result["error"])
            return {}
        return result.get("data", {})
