"""EVM client — read-only contract calls through web3."""
from __future__ import annotations

import logging
import ssl
from typing import Any, Sequence

import aiohttp
import certifi
from web3 import AsyncHTTPProvider, AsyncWeb3

from ...config import ChainConfig
from ...errors import DataSourceUnavailable

logger = logging.getLogger(__name__)


class EvmClient:
    """EVM node client with automatic endpoint fallback."""

    chain_name = "evm"

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.chain_id = config.chain_id
        self.current_rpc_index = 0
        self._connections: dict[str, AsyncWeb3] = {}

    def _connect(self, rpc_url: str) -> AsyncWeb3:
        w3 = self._connections.get(rpc_url)
        if w3 is None:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            w3 = AsyncWeb3(
                AsyncHTTPProvider(
                    rpc_url,
                    request_kwargs={
                        "timeout": aiohttp.ClientTimeout(total=self.timeout),
                        "ssl": ssl_context,
                    },
                )
            )
            self._connections[rpc_url] = w3
        return w3

    async def call_function(
        self,
        address: str,
        abi: Sequence[dict[str, Any]],
        function_name: str,
        *args: Any,
    ) -> Any:
        """Call a view function on ``address`` at the latest block.

        ``address`` and any address arguments must already be checksummed.

        Raises:
            DataSourceUnavailable: every endpoint failed.
        """
        if not self.endpoints:
            raise DataSourceUnavailable(
                f"No RPC endpoints configured for {self.chain_name}", self.chain_name
            )

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                contract = self._connect(rpc_url).eth.contract(address=address, abi=list(abi))
                result = await getattr(contract.functions, function_name)(*args).call()
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed on %s: %s", rpc_url, function_name, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

            if rpc_index != self.current_rpc_index:
                logger.info("Switched to RPC endpoint: %s", rpc_url)
                self.current_rpc_index = rpc_index
            logger.debug("%s.%s -> %r", address, function_name, result)
            return result

        raise DataSourceUnavailable(
            f"All RPC endpoints failed. Last error: {last_error}", self.chain_name
        )
