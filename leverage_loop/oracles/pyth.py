"""Pyth Network price oracle — Hermes REST client returning WAD prices."""
from __future__ import annotations

import asyncio
import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..wad import format_wad

logger = logging.getLogger(__name__)

_WAD_DECIMALS = 18


def to_wad_price(price: int, expo: int) -> int:
    """Convert a Pyth ``price * 10^expo`` pair into an exact WAD integer."""
    shift = _WAD_DECIMALS + expo
    if shift >= 0:
        return price * 10**shift
    return price // 10**-shift


class PythOracle:
    """Fetch prices from Pyth Network oracle."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, int]:
        """Fetch current prices from Pyth Network as WAD-scaled USD integers.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.

        A failed request is logged and yields an empty mapping; callers decide
        whether a missing price is fatal.
        """
        prices: dict[str, int] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        query_params = "&".join(f"ids[]={fid}" for fid in feed_ids)
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return prices

        id_to_assets: dict[str, list[str]] = {}
        for asset, feed_id in feeds.items():
            id_to_assets.setdefault(feed_id.lower().removeprefix("0x"), []).append(asset)

        for item in data.get("parsed", []):
            feed_id = str(item.get("id", "")).lower().removeprefix("0x")
            if feed_id not in id_to_assets:
                continue
            price_data = item.get("price", {})
            try:
                price = to_wad_price(int(price_data["price"]), int(price_data["expo"]))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed Pyth price for feed %s: %s", feed_id, e)
                continue
            if price <= 0:
                logger.warning("Skipping non-positive Pyth price for feed %s", feed_id)
                continue
            for asset in id_to_assets[feed_id]:
                prices[asset] = price

        logger.info("Fetched prices from Pyth Network:")
        for asset, price in sorted(prices.items()):
            logger.info("  %s: $%s", asset, format_wad(price))

        return prices
