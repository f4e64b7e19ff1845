"""
Unit tests for paper execution and price sources
"""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from creator_sniper.config import load_settings
from creator_sniper.core.executor import PaperBroker, build_executor
from creator_sniper.core.price_feed import DexScreenerPriceFeed, SimulatedPriceFeed, build_price_feed
from creator_sniper.exceptions import ConfigurationException, SwapException
from creator_sniper.tests.fakes import FakePriceFeed, addr
from creator_sniper.utils.retry import CircuitBreaker

TOKEN = addr(2)


class TestPaperBroker:
    def test_buy_pays_slippage_and_fee(self):
        broker = PaperBroker(FakePriceFeed({TOKEN: 1.0}), slippage_pct=0.02, fee_bps=100, seed=1)
        fill = asyncio.run(broker.buy(TOKEN, 0.01))
        assert fill.side == "BUY"
        assert 1.01 <= fill.price <= 1.0 * 1.02 * 1.01
        assert fill.tx_hash.startswith("0x") and len(fill.tx_hash) == 66
        assert broker.holdings[TOKEN.lower()] == pytest.approx(0.01 / fill.price)

    def test_partial_then_full_sell(self):
        broker = PaperBroker(FakePriceFeed({TOKEN: 1.0}), slippage_pct=0.0, fee_bps=0, seed=1)

        async def scenario():
            await broker.buy(TOKEN, 1.0)
            half = await broker.sell(TOKEN, 0.5)
            rest = await broker.sell(TOKEN, 1.0)
            return half, rest

        half, rest = asyncio.run(scenario())
        assert half.amount_base == pytest.approx(0.5)
        assert rest.amount_base == pytest.approx(0.5)
        assert TOKEN.lower() not in broker.holdings

    def test_sell_without_holding(self):
        broker = PaperBroker(FakePriceFeed({TOKEN: 1.0}))
        with pytest.raises(SwapException):
            asyncio.run(broker.sell(TOKEN, 1.0))

    def test_no_quote_is_swap_failure(self):
        broker = PaperBroker(FakePriceFeed())
        with pytest.raises(SwapException):
            asyncio.run(broker.buy(TOKEN, 0.01))

    def test_live_mode_needs_executor(self):
        settings = load_settings(env={"SIMULATION_MODE": "false"})
        with pytest.raises(ConfigurationException):
            build_executor(settings, FakePriceFeed())

    def test_simulation_builds_paper_broker(self):
        settings = load_settings(env={})
        assert isinstance(build_executor(settings, FakePriceFeed()), PaperBroker)


class TestPriceFeeds:
    def test_simulated_walk_and_pin(self):
        feed = SimulatedPriceFeed(volatility=0.1, initial_price=1.0, seed=7)

        async def scenario():
            first = await feed.get_price(TOKEN)
            second = await feed.get_price(TOKEN)
            feed.set_price(TOKEN, 5.0)
            pinned = [await feed.get_price(TOKEN) for _ in range(3)]
            return first, second, pinned

        first, second, pinned = asyncio.run(scenario())
        assert first == 1.0
        assert 0.9 <= second <= 1.1
        assert pinned == [5.0, 5.0, 5.0]

    def test_dexscreener_picks_most_liquid_base_pair(self):
        payload = {
            "pairs": [
                {"chainId": "ethereum", "baseToken": {"address": TOKEN}, "priceNative": "9", "liquidity": {"usd": 1e9}},
                {"chainId": "base", "baseToken": {"address": TOKEN}, "priceNative": "0.002", "liquidity": {"usd": 100}},
                {"chainId": "base", "baseToken": {"address": TOKEN.upper()}, "priceNative": "0.003", "liquidity": {"usd": 5000}},
                {"chainId": "base", "baseToken": {"address": addr(9)}, "priceNative": "7", "liquidity": {"usd": 1e6}},
            ]
        }
        assert DexScreenerPriceFeed._best_price(payload, TOKEN) == 0.003

    def test_dexscreener_no_pairs(self):
        assert DexScreenerPriceFeed._best_price({"pairs": None}, TOKEN) is None

    def test_build_price_feed(self):
        assert isinstance(build_price_feed(load_settings(env={"PRICE_FEED": "simulated"})), SimulatedPriceFeed)


class TestCircuitBreaker:
    def test_opens_and_recovers(self):
        now = [0.0]
        cb = CircuitBreaker(failure_threshold=2, recovery_timeout=30, name="Test", clock=lambda: now[0])
        cb.record_failure()
        assert cb.can_execute()
        cb.record_failure()
        assert cb.state == "OPEN"
        assert not cb.can_execute()

        now[0] = 31
        assert cb.can_execute()
        assert cb.state == "HALF_OPEN"
        cb.record_success()
        assert cb.state == "CLOSED"

    def test_half_open_failure_reopens(self):
        now = [0.0]
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=lambda: now[0])
        cb.record_failure()
        now[0] = 11
        assert cb.can_execute()
        cb.record_failure()
        assert cb.state == "OPEN"
        assert not cb.can_execute()
