"""Pyth Network price oracle service."""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..constants import WAD

logger = logging.getLogger(__name__)

_WAD_DECIMALS = 18


def _to_wad_price(price_raw: int, expo: int) -> int:
    """Scale a Pyth ``price * 10**expo`` quote to a WAD integer exactly."""
    shift = _WAD_DECIMALS + expo
    if shift >= 0:
        return price_raw * 10**shift
    return price_raw // 10**-shift


class PythOracle:
    """Fetch WAD-scaled USD prices from Pyth Hermes."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, int]:
        """Fetch current prices from Pyth Network.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.

        Returns a symbol -> WAD price mapping; symbols that failed to resolve
        are absent.
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

            id_to_symbols: dict[str, list[str]] = {}
            for symbol, feed_id in feeds.items():
                id_to_symbols.setdefault(feed_id.removeprefix("0x"), []).append(symbol)

            for item in data.get("parsed", []):
                feed_id = str(item.get("id", "")).removeprefix("0x")
                price_data = item.get("price", {})
                price = _to_wad_price(
                    int(price_data.get("price", 0)), int(price_data.get("expo", 0))
                )
                for symbol in id_to_symbols.get(feed_id, []):
                    prices[symbol] = price

            for symbol, price in sorted(prices.items()):
                logger.debug("Pyth %s: %d", symbol, price)

        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)

        return prices

    async def fetch_ratio(self, collateral: str, asset: str) -> int | None:
        """Collateral price in units of asset, WAD-scaled; None if unavailable."""
        prices = await self.fetch_prices([collateral, asset])
        collateral_price = prices.get(collateral)
        asset_price = prices.get(asset)
        if not collateral_price or not asset_price:
            logger.warning("Pyth ratio %s/%s unavailable", collateral, asset)
            return None
        return collateral_price * WAD // asset_price
