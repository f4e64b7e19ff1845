"""
Trade execution.

`TradeExecutor` is the boundary to whatever actually swaps on-chain.
`PaperBroker` fills against the price feed with simulated slippage and fees.
"""

from __future__ import annotations

import abc
import logging
import random

from creator_sniper.core.models import TradeFill
from creator_sniper.core.price_feed import PriceFeed
from creator_sniper.exceptions import ConfigurationException, SwapException
from creator_sniper.utils.time import utc_ts


class TradeExecutor(abc.ABC):
    """Raises SwapException on any failed buy or sell."""

    @abc.abstractmethod
    async def buy(self, token_address: str, amount_base: float) -> TradeFill: ...

    @abc.abstractmethod
    async def sell(self, token_address: str, fraction: float) -> TradeFill: ...


class PaperBroker(TradeExecutor):
    def __init__(
        self,
        price_feed: PriceFeed,
        slippage_pct: float = 0.02,
        fee_bps: float = 100.0,
        seed: int | None = None,
    ) -> None:
        self.price_feed = price_feed
        self.slippage_pct = slippage_pct
        self.fee_bps = fee_bps
        self.rng = random.Random(seed)
        self.holdings: dict[str, float] = {}
        self.logger = logging.getLogger("creator_sniper.paper")

    async def buy(self, token_address: str, amount_base: float) -> TradeFill:
        if amount_base <= 0:
            raise SwapException("Buy amount must be positive", token=token_address)
        price = await self._quote(token_address)
        fill_price = self._fill_price(price, "BUY")
        tokens = amount_base / fill_price
        key = token_address.lower()
        self.holdings[key] = self.holdings.get(key, 0.0) + tokens
        return TradeFill(
            token_address=token_address,
            side="BUY",
            amount_base=amount_base,
            price=fill_price,
            tx_hash=self._fake_tx_hash(),
            ts=utc_ts(),
        )

    async def sell(self, token_address: str, fraction: float) -> TradeFill:
        key = token_address.lower()
        held = self.holdings.get(key, 0.0)
        if held <= 0:
            raise SwapException("No holding to sell", token=token_address)
        if not 0 < fraction <= 1:
            raise SwapException("Sell fraction must be in (0, 1]", token=token_address, fraction=fraction)

        price = await self._quote(token_address)
        fill_price = self._fill_price(price, "SELL")
        tokens = held * fraction
        self.holdings[key] = held - tokens
        if fraction >= 1:
            self.holdings.pop(key, None)
        return TradeFill(
            token_address=token_address,
            side="SELL",
            amount_base=tokens * fill_price,
            price=fill_price,
            fraction=fraction,
            tx_hash=self._fake_tx_hash(),
            ts=utc_ts(),
        )

    async def _quote(self, token_address: str) -> float:
        try:
            return await self.price_feed.get_price(token_address)
        except Exception as e:
            raise SwapException(f"No quote for simulated fill: {e}", token=token_address) from e

    def _fill_price(self, price: float, side: str) -> float:
        slippage = self.rng.uniform(0, self.slippage_pct)
        fee_pct = min(0.5, self.fee_bps / 10000.0)
        if side == "BUY":
            fill_price = price * (1 + slippage) * (1 + fee_pct)
        else:
            fill_price = price * (1 - slippage) * (1 - fee_pct)
        return max(1e-18, fill_price)

    def _fake_tx_hash(self) -> str:
        return "0x" + "".join(self.rng.choice("0123456789abcdef") for _ in range(64))


def build_executor(settings, price_feed: PriceFeed, live_executor: TradeExecutor | None = None) -> TradeExecutor:
    """PaperBroker in simulation mode; live mode needs a real executor passed in."""
    if settings.SIMULATION_MODE:
        return PaperBroker(price_feed, slippage_pct=settings.SIM_SLIPPAGE_PCT, fee_bps=settings.SIM_FEE_BPS)
    if live_executor is None:
        raise ConfigurationException(
            "Live trading needs an on-chain TradeExecutor; run with SIMULATION_MODE=true or wire one in"
        )
    return live_executor
