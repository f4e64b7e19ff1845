"""
Trading Strategies

Named, immutable policies describing who qualifies for a buy, how big the
buy is, and how the position is laddered out.

Built-in presets can be extended with a YAML/JSON file (STRATEGY_FILE).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from ..constants import MAX_REPUTATION_SCORE, MIN_REPUTATION_SCORE
from ..exceptions import ConfigurationException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LadderStep:
    """Take-profit step: at +trigger_pct profit, sell sell_pct of what is left."""
    trigger_pct: float
    sell_pct: float
    description: str = ""


@dataclass(frozen=True)
class StrategyPolicy:
    name: str
    min_reputation_score: int
    trade_amount_eth: float
    ladder: tuple[LadderStep, ...]
    stop_loss_pct: float            # Negative, e.g. -50.0
    max_hold_sec: float
    max_positions: int = 5
    description: str = ""
    aggressiveness: str = "BALANCED"
    monitoring_interval_sec: float = 30.0

    def with_overrides(self, **changes: Any) -> "StrategyPolicy":
        """Copy with some fields replaced. None values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            return self
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "StrategyPolicy":
        """Build from a config-file mapping."""
        try:
            ladder = tuple(
                LadderStep(
                    trigger_pct=float(step["trigger_pct"]),
                    sell_pct=float(step["sell_pct"]),
                    description=str(step.get("description", "")),
                )
                for step in data.get("ladder", [])
            )
            hold_sec = data.get("max_hold_sec")
            if hold_sec is None:
                hold_sec = float(data["max_hold_minutes"]) * 60
            return cls(
                name=str(data.get("name", name)),
                min_reputation_score=int(data["min_reputation_score"]),
                trade_amount_eth=float(data["trade_amount_eth"]),
                ladder=ladder,
                stop_loss_pct=float(data["stop_loss_pct"]),
                max_hold_sec=float(hold_sec),
                max_positions=int(data.get("max_positions", 5)),
                description=str(data.get("description", "")),
                aggressiveness=str(data.get("aggressiveness", "BALANCED")).upper(),
                monitoring_interval_sec=float(data.get("monitoring_interval_sec", 30.0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationException(f"Invalid strategy definition '{name}': {e}") from e


def validate_strategy(policy: StrategyPolicy) -> list[str]:
    """Return a list of problems; empty means the policy is usable."""
    errors = []

    if not MIN_REPUTATION_SCORE <= policy.min_reputation_score <= MAX_REPUTATION_SCORE:
        errors.append(
            f"min_reputation_score must be between {MIN_REPUTATION_SCORE} and {MAX_REPUTATION_SCORE}"
        )

    if policy.trade_amount_eth <= 0 or policy.trade_amount_eth > 10:
        errors.append("trade_amount_eth must be between 0 and 10 ETH")

    if not -100 < policy.stop_loss_pct < 0:
        errors.append("stop_loss_pct must be negative and greater than -100")

    if policy.max_hold_sec <= 0:
        errors.append("max_hold_sec must be > 0")

    if policy.max_positions < 1:
        errors.append("max_positions must be >= 1")

    if policy.monitoring_interval_sec <= 0:
        errors.append("monitoring_interval_sec must be > 0")

    if not policy.ladder:
        errors.append("Strategy must have at least one ladder step")

    for i, step in enumerate(policy.ladder):
        if step.trigger_pct <= 0:
            errors.append(f"ladder[{i}].trigger_pct must be > 0")
        if not 0 < step.sell_pct <= 100:
            errors.append(f"ladder[{i}].sell_pct must be in (0, 100]")
        if i and step.trigger_pct <= policy.ladder[i - 1].trigger_pct:
            errors.append("Ladder steps must be in strictly ascending order of trigger_pct")

    return errors


def ensure_valid(policy: StrategyPolicy) -> StrategyPolicy:
    errors = validate_strategy(policy)
    if errors:
        raise ConfigurationException(
            f"Strategy '{policy.name}' is invalid: " + "; ".join(errors)
        )
    return policy


def _ladder(*steps: tuple[float, float, str]) -> tuple[LadderStep, ...]:
    return tuple(LadderStep(trigger, sell, desc) for trigger, sell, desc in steps)


# ============================================
# PRESETS
# ============================================
CONSERVATIVE_STRATEGY = StrategyPolicy(
    name="Conservative",
    description="Capital preservation with steady profit taking",
    min_reputation_score=1226,
    trade_amount_eth=0.005,
    max_positions=3,
    stop_loss_pct=-30.0,
    max_hold_sec=12 * 3600,
    ladder=_ladder(
        (50, 40, "1.5x - Early profit taking"),
        (100, 30, "2x - Secure gains"),
        (150, 20, "2.5x - More profits"),
        (250, 15, "3.5x - Conservative exit"),
        (400, 100, "5x - Final exit"),
    ),
    aggressiveness="CONSERVATIVE",
    monitoring_interval_sec=20.0,
)

BALANCED_STRATEGY = StrategyPolicy(
    name="Balanced",
    description="Balanced risk/reward with moderate moon bag",
    min_reputation_score=1226,
    trade_amount_eth=0.01,
    max_positions=5,
    stop_loss_pct=-50.0,
    max_hold_sec=24 * 3600,
    ladder=_ladder(
        (100, 25, "2x - Secure 25%"),
        (200, 20, "3x - Take more profits"),
        (400, 15, "5x - Steady exit"),
        (900, 12, "10x - Big gains exit"),
        (1900, 8, "20x - Moon territory"),
        (4900, 5, "50x - Keep moon bag"),
    ),
    aggressiveness="BALANCED",
    monitoring_interval_sec=30.0,
)

AGGRESSIVE_STRATEGY = StrategyPolicy(
    name="Aggressive",
    description="Higher risk tolerance with significant moon bag",
    min_reputation_score=1226,
    trade_amount_eth=0.02,
    max_positions=8,
    stop_loss_pct=-60.0,
    max_hold_sec=48 * 3600,
    ladder=_ladder(
        (100, 20, "2x - Light profit taking"),
        (300, 15, "4x - Some profits"),
        (900, 12, "10x - Let it run"),
        (1900, 8, "20x - Small exit"),
        (4900, 5, "50x - Tiny exit"),
        (9900, 3, "100x - Keep riding"),
    ),
    aggressiveness="AGGRESSIVE",
    monitoring_interval_sec=15.0,
)

DEGEN_STRATEGY = StrategyPolicy(
    name="Degen",
    description="Maximum moon bag strategy for 10000%+ potential",
    min_reputation_score=1600,
    trade_amount_eth=0.015,
    max_positions=1,
    stop_loss_pct=-70.0,
    max_hold_sec=15 * 60,
    ladder=_ladder(
        (50, 30, "1.5x - Light profit taking"),
        (100, 25, "2x - Light profit taking"),
        (200, 20, "3x - Tiny exit to secure investment"),
        (900, 10, "10x - Minimal profit taking"),
        (1900, 5, "20x - Keep riding"),
        (4900, 3, "50x - Still holding"),
        (9900, 2, "100x - Diamond hands"),
        (24900, 5, "250x - TRUE DEGEN"),
    ),
    aggressiveness="DEGEN",
    monitoring_interval_sec=10.0,
)

HIGH_CONVICTION_STRATEGY = StrategyPolicy(
    name="High Conviction",
    description="Selective high-ethos creators with large positions",
    min_reputation_score=1500,
    trade_amount_eth=0.1,
    max_positions=3,
    stop_loss_pct=-40.0,
    max_hold_sec=72 * 3600,
    ladder=_ladder(
        (150, 20, "2.5x - Minimal early exit"),
        (400, 15, "5x - Some profits"),
        (900, 10, "10x - Let conviction run"),
        (1900, 8, "20x - Still believing"),
        (4900, 5, "50x - High conviction pays"),
        (9900, 3, "100x - Moon mission"),
    ),
    aggressiveness="AGGRESSIVE",
    monitoring_interval_sec=25.0,
)

AVAILABLE_STRATEGIES: dict[str, StrategyPolicy] = {
    "conservative": CONSERVATIVE_STRATEGY,
    "balanced": BALANCED_STRATEGY,
    "aggressive": AGGRESSIVE_STRATEGY,
    "degen": DEGEN_STRATEGY,
    "high-conviction": HIGH_CONVICTION_STRATEGY,
}


def load_strategy_file(path: str | Path) -> dict[str, StrategyPolicy]:
    """
    Load extra strategies from YAML or JSON.

    Expected shape:
        strategies:
          sniper:
            min_reputation_score: 1400
            trade_amount_eth: 0.01
            stop_loss_pct: -35
            max_hold_minutes: 60
            ladder:
              - {trigger_pct: 100, sell_pct: 50}
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationException(f"Strategy file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationException(f"Cannot parse strategy file {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigurationException(f"Strategy file {path} must contain a mapping")

    entries = (data or {}).get("strategies", {})
    if not isinstance(entries, dict):
        raise ConfigurationException(f"'strategies' in {path} must be a mapping")

    loaded = {}
    for key, body in entries.items():
        policy = ensure_valid(StrategyPolicy.from_dict(key, body or {}))
        loaded[key.lower()] = policy
    logger.info(f"Loaded {len(loaded)} strategies from {path}")
    return loaded


def get_strategy(name: str, extra: dict[str, StrategyPolicy] | None = None) -> StrategyPolicy:
    """Look up a strategy by key. Unknown names are a configuration error."""
    registry = {**AVAILABLE_STRATEGIES, **(extra or {})}
    policy = registry.get(name.lower())
    if policy is None:
        raise ConfigurationException(
            f"Unknown strategy '{name}'", available=", ".join(sorted(registry))
        )
    return ensure_valid(policy)


def describe_strategies(extra: dict[str, StrategyPolicy] | None = None) -> list[str]:
    """Human-readable listing for --list-strategies."""
    lines = ["AVAILABLE TRADING STRATEGIES:"]
    for key, policy in {**AVAILABLE_STRATEGIES, **(extra or {})}.items():
        lines.append("")
        lines.append(f"{policy.name.upper()} (--strategy={key})")
        lines.append(f"   {policy.description}")
        lines.append(f"   Aggressiveness: {policy.aggressiveness}")
        lines.append(
            f"   Min score: {policy.min_reputation_score} | Trade amount: {policy.trade_amount_eth} ETH"
        )
        lines.append(
            f"   Stop loss: {policy.stop_loss_pct:.0f}% | Max hold: {policy.max_hold_sec / 3600:.1f}h"
        )
        lines.append(f"   Ladder steps: {len(policy.ladder)} | Max positions: {policy.max_positions}")
    return lines
