"""Pyth Network price oracle service."""
from __future__ import annotations

import logging
import ssl
from decimal import Decimal

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import DataIntegrityError, DataSourceUnavailable

logger = logging.getLogger(__name__)


def parse_price(price_data: dict) -> Decimal:
    """Convert a Pyth ``{price, expo}`` pair into an exact Decimal."""
    try:
        price_raw = int(price_data.get("price", 0))
        expo = int(price_data.get("expo", 0))
    except (TypeError, ValueError) as e:
        raise DataIntegrityError(f"Malformed Pyth price: {price_data!r}", "price") from e
    return Decimal(price_raw).scaleb(expo)


class PythOracle:
    """Fetch prices from Pyth Network oracle."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, Decimal]:
        """Fetch current prices from Pyth Network.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.

        Raises:
            DataSourceUnavailable: Hermes returned an error or was unreachable.
        """
        prices: dict[str, Decimal] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise DataSourceUnavailable(
                            f"Pyth Hermes returned HTTP {response.status}", "pyth"
                        )
                    data = await response.json()
        except DataSourceUnavailable:
            raise
        except Exception as e:
            raise DataSourceUnavailable(f"Error fetching prices from Pyth: {e}", "pyth") from e

        id_to_assets: dict[str, list[str]] = {}
        for asset, feed_id in feeds.items():
            id_to_assets.setdefault(feed_id, []).append(asset)

        for item in data.get("parsed", []):
            feed_id = item.get("id")
            if feed_id not in id_to_assets:
                continue
            price = parse_price(item.get("price", {}))
            for asset in id_to_assets[feed_id]:
                prices[asset] = price

        logger.info("Fetched %d prices from Pyth Network", len(prices))
        for asset, price in sorted(prices.items()):
            logger.debug("  %s: $%s", asset, price)

        return prices
