from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field

from creator_sniper.core.models import BotStats, Position

HISTORY_LIMIT = 500


@dataclass
class BotState:
    """
    Shared state for the acquisition and monitoring loops.

    Every read or write of `positions`, `pending_buys`, `busy` or a Position's
    mutable fields happens under `lock`. The lock is never held across a
    network call.
    """

    positions: dict[str, Position] = field(default_factory=dict)
    # Most recent closes only; totals live in stats
    history: deque[Position] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))
    pending_buys: set[str] = field(default_factory=set)
    busy: set[str] = field(default_factory=set)
    last_processed_block: int | None = None
    stats: BotStats = field(default_factory=BotStats)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def has_open_position(self, token_address: str) -> bool:
        key = token_address.lower()
        return key in self.positions or key in self.pending_buys

    def open_count(self) -> int:
        return len(self.positions) + len(self.pending_buys)
