import argparse
import asyncio
import logging
import platform
import signal
import sys

import aiohttp

from creator_sniper.config import Settings, StrategyPolicy, describe_strategies, ensure_valid, load_settings
from creator_sniper.core.bot import SniperBot
from creator_sniper.core.executor import build_executor
from creator_sniper.core.notifier import TradeNotifier
from creator_sniper.core.price_feed import build_price_feed
from creator_sniper.core.reputation import ReputationGate
from creator_sniper.core.reputation_client import ReputationClient
from creator_sniper.core.rpc_client import ChainRpcClient
from creator_sniper.exceptions import ConfigurationException
from creator_sniper.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch the Zora factory on Base and buy coins from creators with a strong Ethos score."
    )
    parser.add_argument("--strategy", "-s", help="Strategy key (see --list-strategies).")
    parser.add_argument("--list-strategies", "-l", action="store_true", help="List strategies and exit.")
    parser.add_argument("--simulation", action="store_true", help="Force paper trading.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging on the console.")
    parser.add_argument("--min-score", type=int, help="Override the strategy's minimum reputation score.")
    parser.add_argument("--trade-amount", type=float, help="Override ETH spent per buy.")
    parser.add_argument("--max-positions", type=int, help="Override the open position cap.")
    parser.add_argument("--stop-loss", type=float, help="Override the stop loss percent, e.g. 30 or -30.")
    return parser


def apply_overrides(policy: StrategyPolicy, args: argparse.Namespace) -> StrategyPolicy:
    stop_loss = -abs(args.stop_loss) if args.stop_loss is not None else None
    return ensure_valid(
        policy.with_overrides(
            min_reputation_score=args.min_score,
            trade_amount_eth=args.trade_amount,
            max_positions=args.max_positions,
            stop_loss_pct=stop_loss,
        )
    )


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {"STRATEGY": args.strategy}
    if args.simulation:
        overrides["SIMULATION_MODE"] = True
    if args.verbose:
        overrides["LOG_LEVEL"] = "DEBUG"
    return load_settings(**overrides)


async def async_main(settings: Settings, policy: StrategyPolicy) -> None:
    price_feed = build_price_feed(settings)
    executor = build_executor(settings, price_feed)
    notifier = TradeNotifier(settings)
    rpc = ChainRpcClient(settings.RPC_URL, timeout=settings.API_TIMEOUT_SEC)

    async with aiohttp.ClientSession() as session:
        gate = ReputationGate(ReputationClient.from_settings(session, settings))
        bot = SniperBot(settings, policy, rpc, gate, executor, price_feed, notifier)

        loop = asyncio.get_running_loop()

        def handle_shutdown(sig):
            logger.warning(f"[SHUTDOWN] Received signal {sig}...")
            bot.stop()

        # Signal handlers are not supported on Windows event loops
        if platform.system() != "Windows":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, lambda s=sig: handle_shutdown(s))

        try:
            await bot.start()
        finally:
            logger.info("Initiating graceful shutdown...")
            await rpc.close()
            await notifier.close()
            close_feed = getattr(price_feed, "close", None)
            if close_feed is not None:
                await close_feed()
            report = bot.positions.stats()
            logger.warning(
                f"Session: {report['closed_positions']} closed, {report['open_positions']} still open, "
                f"realized PnL {report['realized_pnl_base']:+.4f} ETH"
            )
            logger.info("Shutdown complete")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = settings_from_args(args)
    except ConfigurationException as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.list_strategies:
        print("\n".join(describe_strategies(settings.extra_strategies)))
        return 0

    try:
        policy = apply_overrides(settings.strategy(), args)
        if not settings.SIMULATION_MODE:
            # No on-chain executor ships with the CLI
            build_executor(settings, price_feed=None)
    except ConfigurationException as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings)
    try:
        asyncio.run(async_main(settings, policy))
    except KeyboardInterrupt:
        logger.warning("Bot stopped by user.")
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
