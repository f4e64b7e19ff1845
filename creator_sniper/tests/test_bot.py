"""
End-to-end pipeline tests: poll -> qualify -> open -> monitor
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from creator_sniper.config import load_settings
from creator_sniper.core.bot import SniperBot
from creator_sniper.core.models import ExitReason
from creator_sniper.core.reputation import ReputationGate
from creator_sniper.main import apply_overrides, build_parser
from creator_sniper.tests.fakes import (
    FakeChain,
    FakeExecutor,
    FakePriceFeed,
    FakeProfileSource,
    addr,
    make_log,
    make_policy,
)

GOOD_CREATOR = addr(10)
WEAK_CREATOR = addr(11)
ANON_CREATOR = addr(12)


def make_bot(chain, profiles, prices):
    feed = FakePriceFeed(prices)
    executor = FakeExecutor(feed)
    bot = SniperBot(
        load_settings(env={}),
        make_policy(),
        chain,
        ReputationGate(FakeProfileSource(profiles)),
        executor,
        feed,
    )
    return bot, executor, feed


PROFILES = {
    GOOD_CREATOR: {"social_handle": "good", "reputation_score": 2100},
    WEAK_CREATOR: {"social_handle": "weak", "reputation_score": 1341},
    ANON_CREATOR: {"social_handle": None, "reputation_score": None},
}


class TestPipeline:
    def test_only_qualified_creator_is_bought(self):
        logs = [
            make_log(1001, tx="0x01", creator=GOOD_CREATOR, coin=addr(20)),
            make_log(1002, tx="0x02", creator=WEAK_CREATOR, coin=addr(21)),
            make_log(1003, tx="0x03", creator=ANON_CREATOR, coin=addr(22)),
        ]
        chain = FakeChain(head=1000, logs=logs)
        bot, executor, _ = make_bot(chain, PROFILES, {addr(20): 1.0, addr(21): 1.0, addr(22): 1.0})

        async def scenario():
            await bot.poll_cycle()   # anchor
            chain.head = 1005
            return await bot.poll_cycle()

        opened = asyncio.run(scenario())
        assert opened == 1
        assert [token for token, _ in executor.buys] == [addr(20)]
        stats = bot.state.stats
        assert stats.verdicts_qualified == 1
        assert stats.verdicts_rejected == {"score-below-threshold": 1, "no-social-handle": 1}

    def test_history_before_start_ignored(self):
        chain = FakeChain(head=1000, logs=[make_log(999, creator=GOOD_CREATOR, coin=addr(20))])
        bot, executor, _ = make_bot(chain, PROFILES, {addr(20): 1.0})
        asyncio.run(bot.poll_cycle())
        assert executor.buys == []
        assert bot.state.last_processed_block == 1000

    def test_rpc_failure_does_not_advance(self):
        chain = FakeChain(head=1000, logs=[make_log(1004, creator=GOOD_CREATOR, coin=addr(20))])
        bot, executor, _ = make_bot(chain, PROFILES, {addr(20): 1.0})

        async def scenario():
            await bot.poll_cycle()
            chain.head = 1005
            chain.fail = True
            await bot.poll_cycle()
            checkpoint = bot.state.last_processed_block
            chain.fail = False
            await bot.poll_cycle()
            return checkpoint

        checkpoint = asyncio.run(scenario())
        assert checkpoint == 1000
        assert [token for token, _ in executor.buys] == [addr(20)]

    def test_failed_buy_does_not_stop_batch(self):
        logs = [
            make_log(1001, tx="0x01", creator=GOOD_CREATOR, coin=addr(20)),
            make_log(1002, tx="0x02", creator=GOOD_CREATOR, coin=addr(21)),
        ]
        chain = FakeChain(head=1000, logs=logs)
        # No price for the first coin, so its buy fails
        bot, executor, _ = make_bot(chain, PROFILES, {addr(21): 1.0})

        async def scenario():
            await bot.poll_cycle()
            chain.head = 1005
            return await bot.poll_cycle()

        assert asyncio.run(scenario()) == 1
        assert bot.state.stats.buys_failed == 1
        assert [token for token, _ in executor.buys] == [addr(21)]

    def test_monitor_loop_stops_out(self):
        chain = FakeChain(head=1000, logs=[make_log(1001, creator=GOOD_CREATOR, coin=addr(20))])
        bot, _, feed = make_bot(chain, PROFILES, {addr(20): 1.0})

        async def scenario():
            await bot.poll_cycle()
            chain.head = 1002
            await bot.poll_cycle()
            feed.set(addr(20), 0.5)
            await bot.positions.tick(bot.policy)

        asyncio.run(scenario())
        assert bot.state.positions == {}
        assert bot.state.history[0].exit_reason == ExitReason.STOP_LOSS

    def test_start_returns_after_stop(self):
        chain = FakeChain(head=1000)
        bot, _, _ = make_bot(chain, PROFILES, {})

        async def scenario():
            task = asyncio.create_task(bot.start())
            await asyncio.sleep(0)
            bot.stop()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(scenario())
        assert bot.state.last_processed_block == 1000


class TestCli:
    def test_overrides_revalidated(self):
        args = build_parser().parse_args(["--min-score", "1800", "--stop-loss", "25", "--max-positions", "2"])
        policy = apply_overrides(make_policy(), args)
        assert policy.min_reputation_score == 1800
        assert policy.stop_loss_pct == -25
        assert policy.max_positions == 2

    def test_short_flags(self):
        args = build_parser().parse_args(["-s", "degen", "-v", "-l"])
        assert args.strategy == "degen"
        assert args.verbose and args.list_strategies
