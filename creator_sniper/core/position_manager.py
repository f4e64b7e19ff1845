"""
Position Manager

Opens positions on qualifying verdicts and walks every open position
through its exit rules on a fixed monitoring interval.

Per tick, for each position not already mid-trade:
1. Time limit: held >= max_hold_sec -> sell everything, close
2. Stop loss: profit <= stop_loss_pct -> sell everything, close
3. Ladder: unapplied steps in ascending trigger order; each sells
   sell_pct of what is left and is marked applied only once the sell fills

A step whose sell fails stays unapplied and is retried next tick.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from creator_sniper.config import StrategyPolicy
from creator_sniper.constants import DUST_FRACTION
from creator_sniper.core.executor import TradeExecutor
from creator_sniper.core.models import (
    ExitReason,
    Position,
    PositionStatus,
    QualificationVerdict,
    TradeFill,
)
from creator_sniper.core.notifier import TradeNotifier
from creator_sniper.core.price_feed import PriceFeed
from creator_sniper.core.state import BotState
from creator_sniper.exceptions import StateException, SwapException
from creator_sniper.utils.time import format_duration, utc_ts

logger = logging.getLogger(__name__)


class PositionManager:
    def __init__(
        self,
        state: BotState,
        executor: TradeExecutor,
        price_feed: PriceFeed,
        notifier: TradeNotifier | None = None,
        clock: Callable[[], float] = utc_ts,
    ) -> None:
        self.state = state
        self.executor = executor
        self.price_feed = price_feed
        self.notifier = notifier
        self.clock = clock

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    async def open_position(self, verdict: QualificationVerdict, policy: StrategyPolicy) -> Position | None:
        """
        Buy into a qualifying token.

        Returns None when the buy is refused or fails. Raises StateException
        if the token already has an open position.
        """
        if not verdict.qualifies:
            raise StateException("Refusing to open on a rejected verdict", token=verdict.event.token_address)

        event = verdict.event
        key = event.token_address.lower()

        async with self.state.lock:
            if self.state.has_open_position(key):
                raise StateException("Token already has an open position", token=event.token_address)
            if self.state.open_count() >= policy.max_positions:
                logger.warning(
                    f"SKIPPED {event.label}: max positions reached "
                    f"({self.state.open_count()}/{policy.max_positions})"
                )
                return None
            self.state.pending_buys.add(key)

        try:
            fill = await self.executor.buy(event.token_address, policy.trade_amount_eth)
            if not fill.price > 0:
                raise SwapException(f"Fill price {fill.price!r} is not positive", tx=fill.tx_hash)
        except Exception as e:
            async with self.state.lock:
                self.state.pending_buys.discard(key)
                self.state.stats.buys_failed += 1
            logger.error(f"BUY FAILED {event.label}: {e}")
            return None

        profile = verdict.profile
        position = Position(
            token_address=event.token_address,
            creator_address=event.creator_address,
            entry_price=fill.price,
            entry_timestamp=fill.ts or self.clock(),
            amount_base=fill.amount_base,
            symbol=event.symbol,
            social_handle=profile.social_handle if profile else None,
            reputation_score=profile.reputation_score if profile else None,
            buy_tx_hash=fill.tx_hash,
            last_price=fill.price,
        )

        async with self.state.lock:
            self.state.pending_buys.discard(key)
            self.state.positions[key] = position
            self.state.stats.positions_opened += 1

        logger.warning(
            f"BUY {position.label}: {fill.amount_base:.4f} ETH @ {fill.price:.10f} "
            f"[{policy.name}] tx={fill.tx_hash}"
        )
        await self._notify("BUY", position)
        return position

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def tick(self, policy: StrategyPolicy, now: float | None = None) -> None:
        """One pass over every open position."""
        now = self.clock() if now is None else now

        async with self.state.lock:
            keys = list(self.state.positions)

        for key in keys:
            position = await self._claim(key)
            if position is None:
                continue
            try:
                await self._evaluate(position, policy, now)
            except StateException as e:
                logger.error(f"Invariant violated on {position.label}: {e}")
            except Exception as e:
                logger.error(f"Error monitoring {position.label}: {e}", exc_info=True)
            finally:
                async with self.state.lock:
                    self.state.busy.discard(key)

    async def run(self, policy: StrategyPolicy, stop_event: asyncio.Event) -> None:
        logger.info(f"Monitoring loop started (every {policy.monitoring_interval_sec}s)")
        while not stop_event.is_set():
            try:
                await self.tick(policy)
            except Exception as e:
                logger.error(f"Monitoring tick failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=policy.monitoring_interval_sec)
            except asyncio.TimeoutError:
                pass
        logger.info("Monitoring loop stopped")

    async def close_position(self, token_address: str, reason: ExitReason = ExitReason.MANUAL) -> bool:
        """Force-close. Returns False if there is nothing to close or the sell failed."""
        key = token_address.lower()
        position = await self._claim(key)
        if position is None:
            logger.info(f"Nothing to close for {token_address} (not open or busy)")
            return False
        try:
            price = await self._price_or_none(position)
            return await self._close(position, reason, price, self.clock())
        finally:
            async with self.state.lock:
                self.state.busy.discard(key)

    async def _claim(self, key: str) -> Position | None:
        async with self.state.lock:
            position = self.state.positions.get(key)
            if position is None or key in self.state.busy or not position.is_open:
                return None
            self.state.busy.add(key)
            return position

    async def _price_or_none(self, position: Position) -> float | None:
        try:
            price = await self.price_feed.get_price(position.token_address)
        except Exception as e:
            logger.info(f"No price for {position.label} this tick: {e}")
            return None
        if not price > 0:
            logger.info(f"Ignoring non-positive price {price!r} for {position.label}")
            return None
        async with self.state.lock:
            position.last_price = price
        return price

    async def _evaluate(self, position: Position, policy: StrategyPolicy, now: float) -> None:
        price = await self._price_or_none(position)

        # Time limit first: it must fire whatever the price looks like
        held = now - position.entry_timestamp
        if held >= policy.max_hold_sec:
            logger.warning(
                f"TIME LIMIT {position.label}: held {format_duration(held)} "
                f">= {format_duration(policy.max_hold_sec)}"
            )
            await self._close(position, ExitReason.TIME_LIMIT, price, now)
            return

        if price is None:
            return
        if not position.entry_price > 0:
            raise StateException("Position has no usable entry price", token=position.token_address)

        profit = position.profit_pct(price)
        logger.debug(f"{position.label}: {profit:+.1f}% @ {price:.10f}")
        if profit <= policy.stop_loss_pct:
            logger.warning(f"STOP LOSS {position.label}: {profit:+.1f}% <= {policy.stop_loss_pct}%")
            await self._close(position, ExitReason.STOP_LOSS, price, now)
            return

        await self._apply_ladder(position, policy, profit, price, now)

    async def _apply_ladder(
        self,
        position: Position,
        policy: StrategyPolicy,
        profit: float,
        price: float,
        now: float,
    ) -> None:
        for index, step in enumerate(policy.ladder):
            if index in position.applied_ladder_steps:
                continue
            if profit < step.trigger_pct:
                break

            try:
                fill = await self.executor.sell(position.token_address, step.sell_pct / 100.0)
            except Exception as e:
                logger.error(f"LADDER SELL FAILED {position.label} step {index + 1}: {e}")
                return

            async with self.state.lock:
                if index in position.applied_ladder_steps:
                    raise StateException("Ladder step applied twice", token=position.token_address, step=index)
                position.applied_ladder_steps.add(index)
                position.size_remaining_fraction *= 1 - step.sell_pct / 100.0
                position.realized_base += fill.amount_base
                remaining = position.size_remaining_fraction
                self.state.stats.ladder_steps_applied += 1

            logger.warning(
                f"LADDER {position.label} step {index + 1}: +{step.trigger_pct:g}% hit at {profit:+.1f}%, "
                f"sold {step.sell_pct:g}% for {fill.amount_base:.4f} ETH, {remaining * 100:.1f}% left"
            )
            await self._notify("LADDER", position, step.description or None)

            if remaining <= DUST_FRACTION:
                await self._finalize(position, ExitReason.LADDER_EXHAUSTED, fill.price, now)
                return

    async def _close(
        self,
        position: Position,
        reason: ExitReason,
        price: float | None,
        now: float,
    ) -> bool:
        try:
            fill = await self.executor.sell(position.token_address, 1.0)
        except Exception as e:
            logger.error(f"CLOSE FAILED {position.label} ({reason.value}): {e}, retrying next tick")
            return False

        async with self.state.lock:
            position.realized_base += fill.amount_base
        await self._finalize(position, reason, fill.price if fill.price else price, now, fill)
        return True

    async def _finalize(
        self,
        position: Position,
        reason: ExitReason,
        price: float | None,
        now: float,
        fill: TradeFill | None = None,
    ) -> None:
        key = position.token_address.lower()
        async with self.state.lock:
            if self.state.positions.get(key) is not position:
                raise StateException("Closing a position that is not tracked", token=position.token_address)
            position.size_remaining_fraction = 0.0
            position.status = PositionStatus.CLOSED
            position.exit_reason = reason
            position.exit_price = price
            position.exit_timestamp = now
            del self.state.positions[key]
            self.state.history.append(position)
            self.state.stats.record_close(position)

        pnl = position.realized_base - position.amount_base
        logger.warning(
            f"CLOSED {position.label} ({reason.value}): realized {position.realized_base:.4f} ETH, "
            f"PnL {pnl:+.4f} ETH, held {format_duration(now - position.entry_timestamp)}"
            + (f" tx={fill.tx_hash}" if fill else "")
        )
        await self._notify(reason.value, position)

    async def _notify(self, event: str, position: Position, detail: str | None = None) -> None:
        if self.notifier is not None:
            await self.notifier.send_trade_event(event, position, detail)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        totals = self.state.stats
        open_positions = list(self.state.positions.values())
        closed = totals.positions_closed
        invested = totals.invested_closed_base
        realized = totals.realized_closed_base

        return {
            "open_positions": len(open_positions),
            "pending_buys": len(self.state.pending_buys),
            "closed_positions": closed,
            "wins": totals.wins,
            "losses": closed - totals.wins,
            "win_rate": (totals.wins / closed * 100.0) if closed else 0.0,
            "invested_base": invested,
            "realized_base": realized,
            "realized_pnl_base": realized - invested,
            "open_exposure_base": sum(p.amount_base * p.size_remaining_fraction for p in open_positions),
            "ladder_steps_applied": totals.ladder_steps_applied,
            "exit_reasons": dict(totals.exit_reasons),
            "buys_failed": totals.buys_failed,
        }
