from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RejectReason(str, Enum):
    NO_SOCIAL_HANDLE = "no-social-handle"
    SCORE_BELOW_THRESHOLD = "score-below-threshold"
    LOOKUP_ERROR = "lookup-error"
    ALREADY_OPEN = "token-already-has-open-position"


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ExitReason(str, Enum):
    LADDER_EXHAUSTED = "LADDER_EXHAUSTED"
    STOP_LOSS = "STOP_LOSS"
    TIME_LIMIT = "TIME_LIMIT"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class CreationEvent:
    contract_address: str
    creator_address: str
    token_address: str
    block_number: int
    transaction_hash: str
    log_index: int
    block_age: int
    name: str = ""
    symbol: str = ""
    uri: str = ""
    payout_recipient: str = ""
    topic: str = ""

    @property
    def key(self) -> tuple[int, str, int]:
        return (self.block_number, self.transaction_hash, self.log_index)

    @property
    def label(self) -> str:
        if self.symbol:
            return f"{self.name} ({self.symbol})"
        return self.token_address


@dataclass(frozen=True)
class ReputationProfile:
    wallet_address: str
    social_handle: str | None = None
    reputation_score: int | None = None
    lookup_error: str | None = None


@dataclass(frozen=True)
class QualificationVerdict:
    event: CreationEvent
    profile: ReputationProfile | None
    qualifies: bool
    reason: RejectReason | None = None
    detail: str = ""


@dataclass
class TradeFill:
    token_address: str
    side: str
    amount_base: float          # ETH spent (buy) or received (sell)
    price: float                # ETH per token
    fraction: float = 1.0       # Share of the holding sold (sells only)
    tx_hash: str = ""
    ts: float = 0.0


@dataclass
class Position:
    token_address: str
    creator_address: str
    entry_price: float
    entry_timestamp: float
    amount_base: float
    symbol: str = ""
    social_handle: str | None = None
    reputation_score: int | None = None
    buy_tx_hash: str = ""
    size_remaining_fraction: float = 1.0
    applied_ladder_steps: set[int] = field(default_factory=set)
    status: PositionStatus = PositionStatus.OPEN
    realized_base: float = 0.0
    last_price: float = 0.0
    exit_reason: ExitReason | None = None
    exit_price: float | None = None
    exit_timestamp: float | None = None

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    def profit_pct(self, price: float) -> float:
        return (price - self.entry_price) / self.entry_price * 100.0

    @property
    def label(self) -> str:
        return self.symbol or self.token_address[:10]


@dataclass
class BotStats:
    events_seen: int = 0
    events_stale: int = 0
    events_invalid: int = 0
    verdicts_qualified: int = 0
    verdicts_rejected: dict[str, int] = field(default_factory=dict)
    buys_failed: int = 0
    positions_opened: int = 0
    positions_closed: int = 0
    wins: int = 0
    invested_closed_base: float = 0.0
    realized_closed_base: float = 0.0
    ladder_steps_applied: int = 0
    exit_reasons: dict[str, int] = field(default_factory=dict)

    def record_rejection(self, reason: RejectReason) -> None:
        self.verdicts_rejected[reason.value] = self.verdicts_rejected.get(reason.value, 0) + 1

    def record_close(self, position: Position) -> None:
        self.positions_closed += 1
        self.invested_closed_base += position.amount_base
        self.realized_closed_base += position.realized_base
        if position.realized_base > position.amount_base:
            self.wins += 1
        if position.exit_reason is not None:
            key = position.exit_reason.value
            self.exit_reasons[key] = self.exit_reasons.get(key, 0) + 1
