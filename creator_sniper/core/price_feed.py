from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Protocol

import httpx

from creator_sniper.config import Settings
from creator_sniper.constants import BASE_CHAIN_ID
from creator_sniper.exceptions import NetworkException


class PriceFeed(Protocol):
    async def get_price(self, token_address: str) -> float: ...


class DexScreenerPriceFeed:
    """Price in ETH per token, taken from the most liquid Base pair on DexScreener."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self.base_url = settings.DEXSCREENER_API_BASE.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=settings.API_TIMEOUT_SEC)
        self.logger = logging.getLogger("creator_sniper.prices")

    async def close(self) -> None:
        await self.client.aclose()

    async def get_price(self, token_address: str) -> float:
        url = f"{self.base_url}/latest/dex/tokens/{token_address}"
        try:
            response = await self.client.get(url)
            if response.status_code == 429:
                raise NetworkException("DexScreener rate limited", token=token_address)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise NetworkException(f"DexScreener request failed: {exc}", token=token_address) from exc

        price = self._best_price(payload, token_address)
        if price is None:
            raise NetworkException("No priced Base pair on DexScreener", token=token_address)
        self.logger.debug("Price %s = %.10f ETH", token_address, price)
        return price

    @staticmethod
    def _best_price(payload: Any, token_address: str) -> float | None:
        pairs = payload.get("pairs") if isinstance(payload, dict) else None
        best: tuple[float, float] | None = None
        for pair in pairs or []:
            if pair.get("chainId") != BASE_CHAIN_ID:
                continue
            base_token = (pair.get("baseToken") or {}).get("address", "")
            if base_token.lower() != token_address.lower():
                continue
            try:
                price = float(pair.get("priceNative") or 0)
                liquidity = float((pair.get("liquidity") or {}).get("usd") or 0)
            except (TypeError, ValueError):
                continue
            if price <= 0:
                continue
            if best is None or liquidity > best[0]:
                best = (liquidity, price)
        return best[1] if best else None


class SimulatedPriceFeed:
    """
    Random-walk prices for paper trading.

    Each token starts at `initial_price` and moves by up to
    +/- volatility per read. `set_price` pins a value (tests, replays).
    """

    def __init__(self, volatility: float = 0.08, initial_price: float = 1e-6, seed: int | None = None) -> None:
        self.volatility = volatility
        self.initial_price = initial_price
        self.rng = random.Random(seed)
        self._prices: dict[str, float] = {}
        self._pinned: set[str] = set()
        self._lock = asyncio.Lock()

    def set_price(self, token_address: str, price: float) -> None:
        key = token_address.lower()
        self._prices[key] = price
        self._pinned.add(key)

    async def get_price(self, token_address: str) -> float:
        key = token_address.lower()
        async with self._lock:
            if key not in self._prices:
                self._prices[key] = self.initial_price
            elif key not in self._pinned:
                drift = self.rng.uniform(-self.volatility, self.volatility)
                self._prices[key] = max(1e-12, self._prices[key] * (1 + drift))
            return self._prices[key]


def build_price_feed(settings: Settings) -> DexScreenerPriceFeed | SimulatedPriceFeed:
    if settings.PRICE_FEED == "simulated":
        return SimulatedPriceFeed(volatility=settings.SIM_VOLATILITY_PCT)
    return DexScreenerPriceFeed(settings)
