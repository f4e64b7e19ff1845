from __future__ import annotations

import asyncio
import logging

from creator_sniper.config import Settings, StrategyPolicy
from creator_sniper.core.event_poller import ChainReader, EventPoller
from creator_sniper.core.executor import TradeExecutor
from creator_sniper.core.models import CreationEvent
from creator_sniper.core.notifier import TradeNotifier
from creator_sniper.core.position_manager import PositionManager
from creator_sniper.core.price_feed import PriceFeed
from creator_sniper.core.qualification import QualificationEngine
from creator_sniper.core.reputation import ReputationGate
from creator_sniper.core.state import BotState
from creator_sniper.exceptions import NetworkException, StateException
from creator_sniper.utils.time import format_duration, utc_ts

logger = logging.getLogger(__name__)


class SniperBot:
    """
    Two loops over one BotState:
    - acquisition: poll factory logs -> qualify creator -> open position
    - monitoring: PositionManager.tick on the strategy's interval
    """

    def __init__(
        self,
        settings: Settings,
        policy: StrategyPolicy,
        rpc: ChainReader,
        gate: ReputationGate,
        executor: TradeExecutor,
        price_feed: PriceFeed,
        notifier: TradeNotifier | None = None,
        state: BotState | None = None,
    ) -> None:
        self.settings = settings
        self.policy = policy
        self.state = state or BotState()
        self.poller = EventPoller(
            rpc,
            settings.FACTORY_ADDRESS,
            self.state,
            stale_block_threshold=settings.STALE_BLOCK_THRESHOLD,
            max_block_range=settings.MAX_BLOCK_RANGE,
        )
        self.engine = QualificationEngine(gate, self.state)
        self.positions = PositionManager(self.state, executor, price_feed, notifier)
        self.stop_event = asyncio.Event()
        self.started_at = utc_ts()
        self._last_status_ts = 0.0

    async def start(self) -> None:
        mode = "SIMULATION" if self.settings.SIMULATION_MODE else "LIVE"
        logger.warning("=" * 60)
        logger.warning(f"Creator sniper starting [{mode}] strategy={self.policy.name}")
        logger.warning(
            f"min score {self.policy.min_reputation_score} | {self.policy.trade_amount_eth} ETH/trade | "
            f"stop {self.policy.stop_loss_pct}% | max hold {format_duration(self.policy.max_hold_sec)} | "
            f"max positions {self.policy.max_positions}"
        )
        logger.warning("=" * 60)

        self.started_at = utc_ts()
        await asyncio.gather(
            self.run_acquisition_loop(),
            self.positions.run(self.policy, self.stop_event),
        )

    def stop(self) -> None:
        self.stop_event.set()

    async def run_acquisition_loop(self) -> None:
        logger.info(f"Watching factory {self.settings.FACTORY_ADDRESS} every {self.settings.POLL_INTERVAL_SEC}s")
        while not self.stop_event.is_set():
            await self.poll_cycle()
            self._maybe_log_status()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.settings.POLL_INTERVAL_SEC)
            except asyncio.TimeoutError:
                pass
        logger.info("Acquisition loop stopped")

    async def poll_cycle(self) -> int:
        """One poll plus qualification of whatever it found. Returns positions opened."""
        try:
            events = await self.poller.poll_once()
        except NetworkException as e:
            logger.warning(f"Poll failed, retrying from block {self.state.last_processed_block}: {e}")
            return 0
        except Exception as e:
            logger.error(f"Unexpected poll error: {e}", exc_info=True)
            return 0

        opened = 0
        for event in events:
            if self.stop_event.is_set():
                break
            try:
                if await self.handle_event(event):
                    opened += 1
            except StateException as e:
                logger.error(f"Invariant violated for {event.label}: {e}")
            except Exception as e:
                logger.error(f"Error handling {event.label}: {e}", exc_info=True)
        return opened

    async def handle_event(self, event: CreationEvent) -> bool:
        logger.info(
            f"NEW COIN {event.label} {event.token_address} by {event.creator_address} "
            f"(block {event.block_number}, {event.block_age} blocks old)"
        )
        verdict = await self.engine.evaluate(event, self.policy)
        if not verdict.qualifies:
            return False
        position = await self.positions.open_position(verdict, self.policy)
        return position is not None

    def _maybe_log_status(self) -> None:
        now = utc_ts()
        if now - self._last_status_ts < self.settings.STATUS_LOG_EVERY_SEC:
            return
        self._last_status_ts = now
        s = self.state.stats
        report = self.positions.stats()
        rejected = ", ".join(f"{k}={v}" for k, v in sorted(s.verdicts_rejected.items())) or "none"
        logger.info(
            f"STATUS uptime {format_duration(now - self.started_at)} | block {self.state.last_processed_block} | "
            f"events {s.events_seen} (stale {s.events_stale}, invalid {s.events_invalid}) | "
            f"qualified {s.verdicts_qualified} | rejected {rejected}"
        )
        logger.info(
            f"STATUS positions open {report['open_positions']} closed {report['closed_positions']} | "
            f"realized PnL {report['realized_pnl_base']:+.4f} ETH | win rate {report['win_rate']:.0f}%"
        )
