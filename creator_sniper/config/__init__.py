"""Config package"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping
from urllib.parse import urlparse

from dotenv import load_dotenv
from web3 import Web3

# Load environment variables
load_dotenv()

from ..constants import (
    DEXSCREENER_API_BASE,
    ETHOS_API_BASE,
    ETHOS_CLIENT_NAME,
    MAX_BLOCK_RANGE,
    MAX_REPUTATION_SCORE,
    MIN_REPUTATION_SCORE,
    POLL_INTERVAL_SEC,
    STALE_BLOCK_THRESHOLD,
    ZORA_API_BASE,
    ZORA_FACTORY_ADDRESS,
)
from ..exceptions import ConfigurationException
from .strategies import (
    AVAILABLE_STRATEGIES,
    LadderStep,
    StrategyPolicy,
    describe_strategies,
    ensure_valid,
    get_strategy,
    load_strategy_file,
    validate_strategy,
)

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}
PRICE_FEEDS = ("dexscreener", "simulated")


@dataclass(frozen=True)
class Settings:
    # ============================================
    # CHAIN
    # ============================================
    RPC_URL: str = "https://mainnet.base.org"
    FACTORY_ADDRESS: str = ZORA_FACTORY_ADDRESS
    POLL_INTERVAL_SEC: float = POLL_INTERVAL_SEC
    STALE_BLOCK_THRESHOLD: int = STALE_BLOCK_THRESHOLD
    MAX_BLOCK_RANGE: int = MAX_BLOCK_RANGE

    # ============================================
    # STRATEGY
    # ============================================
    STRATEGY: str = "balanced"
    STRATEGY_FILE: str | None = None
    MIN_REPUTATION_SCORE: int | None = None     # Overrides the strategy bar when set

    # ============================================
    # REPUTATION / PROFILE APIS
    # ============================================
    ZORA_API_BASE: str = ZORA_API_BASE
    ZORA_API_KEY: str | None = None
    ETHOS_API_BASE: str = ETHOS_API_BASE
    ETHOS_CLIENT_NAME: str = ETHOS_CLIENT_NAME
    SOCIAL_HANDLE_FIELDS: tuple[str, ...] = ("username", "handle")
    API_TIMEOUT_SEC: float = 10.0

    # ============================================
    # PRICES
    # ============================================
    DEXSCREENER_API_BASE: str = DEXSCREENER_API_BASE
    PRICE_FEED: str = "dexscreener"             # dexscreener | simulated

    # ============================================
    # PAPER TRADING
    # ============================================
    # Default to True for safety if env var missing
    SIMULATION_MODE: bool = True
    SIM_SLIPPAGE_PCT: float = 0.02
    SIM_FEE_BPS: float = 100.0
    SIM_VOLATILITY_PCT: float = 0.08

    # ============================================
    # NOTIFICATIONS
    # ============================================
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_CHAT_ID: str | None = None

    # ============================================
    # LOGGING
    # ============================================
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    STATUS_LOG_EVERY_SEC: float = 300.0

    extra_strategies: dict[str, StrategyPolicy] = field(default_factory=dict)

    @property
    def TELEGRAM_ENABLED(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN and self.TELEGRAM_CHAT_ID)

    def strategy(self) -> StrategyPolicy:
        """Active strategy with the env score override applied."""
        policy = get_strategy(self.STRATEGY, self.extra_strategies)
        if self.MIN_REPUTATION_SCORE is not None:
            policy = ensure_valid(policy.with_overrides(min_reputation_score=self.MIN_REPUTATION_SCORE))
        return policy


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_number(env: Mapping[str, str], key: str, default, cast=float):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationException(f"{key} must be a number", value=raw) from e


def _check_url(key: str, url: str, schemes: tuple[str, ...] = ("http", "https", "ws", "wss")) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in schemes or not parsed.netloc:
        raise ConfigurationException(f"{key} is not a valid URL", value=url)


def normalize_log_level(level: str) -> str:
    level = level.strip().upper()
    if level == "WARN":
        level = "WARNING"
    if level not in LOG_LEVELS:
        raise ConfigurationException("LOG_LEVEL must be one of DEBUG, INFO, WARN, ERROR", value=level)
    return level


def load_settings(env: Mapping[str, str] | None = None, **overrides) -> Settings:
    """
    Build Settings from the environment and validate them.

    Any problem raises ConfigurationException; callers treat that as fatal
    at startup.
    """
    env = os.environ if env is None else env

    handle_fields = tuple(
        f.strip() for f in env.get("SOCIAL_HANDLE_FIELDS", "username,handle").split(",") if f.strip()
    )

    values = dict(
        RPC_URL=env.get("BASE_RPC_URL") or Settings.RPC_URL,
        FACTORY_ADDRESS=env.get("ZORA_FACTORY_ADDRESS") or ZORA_FACTORY_ADDRESS,
        POLL_INTERVAL_SEC=_env_number(env, "POLL_INTERVAL_SEC", POLL_INTERVAL_SEC),
        STALE_BLOCK_THRESHOLD=_env_number(env, "STALE_BLOCK_THRESHOLD", STALE_BLOCK_THRESHOLD, int),
        MAX_BLOCK_RANGE=_env_number(env, "MAX_BLOCK_RANGE", MAX_BLOCK_RANGE, int),
        STRATEGY=env.get("STRATEGY") or "balanced",
        STRATEGY_FILE=env.get("STRATEGY_FILE") or None,
        MIN_REPUTATION_SCORE=_env_number(env, "MIN_REPUTATION_SCORE", None, int),
        ZORA_API_BASE=env.get("ZORA_API_BASE") or ZORA_API_BASE,
        ZORA_API_KEY=env.get("ZORA_API_KEY") or None,
        ETHOS_API_BASE=env.get("ETHOS_API_BASE") or ETHOS_API_BASE,
        ETHOS_CLIENT_NAME=env.get("ETHOS_CLIENT_NAME") or ETHOS_CLIENT_NAME,
        SOCIAL_HANDLE_FIELDS=handle_fields,
        API_TIMEOUT_SEC=_env_number(env, "API_TIMEOUT_SEC", 10.0),
        DEXSCREENER_API_BASE=env.get("DEXSCREENER_API_BASE") or DEXSCREENER_API_BASE,
        PRICE_FEED=(env.get("PRICE_FEED") or "dexscreener").strip().lower(),
        SIMULATION_MODE=_env_bool(env, "SIMULATION_MODE", True),
        SIM_SLIPPAGE_PCT=_env_number(env, "SIM_SLIPPAGE_PCT", 0.02),
        SIM_FEE_BPS=_env_number(env, "SIM_FEE_BPS", 100.0),
        SIM_VOLATILITY_PCT=_env_number(env, "SIM_VOLATILITY_PCT", 0.08),
        STATUS_LOG_EVERY_SEC=_env_number(env, "STATUS_LOG_EVERY_SEC", 300.0),
        TELEGRAM_BOT_TOKEN=env.get("TELEGRAM_BOT_TOKEN") or None,
        TELEGRAM_CHAT_ID=env.get("TELEGRAM_CHAT_ID") or None,
        LOG_LEVEL=env.get("LOG_LEVEL") or "INFO",
        LOG_DIR=env.get("LOG_DIR") or "logs",
    )
    values.update({k: v for k, v in overrides.items() if v is not None})
    values["LOG_LEVEL"] = normalize_log_level(values["LOG_LEVEL"])

    _check_url("BASE_RPC_URL", values["RPC_URL"])
    for key in ("ZORA_API_BASE", "ETHOS_API_BASE", "DEXSCREENER_API_BASE"):
        _check_url(key, values[key], ("http", "https"))

    if not Web3.is_address(values["FACTORY_ADDRESS"]):
        raise ConfigurationException("ZORA_FACTORY_ADDRESS is not a valid address", value=values["FACTORY_ADDRESS"])

    score = values["MIN_REPUTATION_SCORE"]
    if score is not None and not MIN_REPUTATION_SCORE <= score <= MAX_REPUTATION_SCORE:
        raise ConfigurationException(
            f"MIN_REPUTATION_SCORE must be between {MIN_REPUTATION_SCORE} and {MAX_REPUTATION_SCORE}",
            value=score,
        )

    for key in ("POLL_INTERVAL_SEC", "STALE_BLOCK_THRESHOLD", "MAX_BLOCK_RANGE", "API_TIMEOUT_SEC"):
        if values[key] <= 0:
            raise ConfigurationException(f"{key} must be > 0", value=values[key])

    if values["PRICE_FEED"] not in PRICE_FEEDS:
        raise ConfigurationException("PRICE_FEED must be one of " + ", ".join(PRICE_FEEDS), value=values["PRICE_FEED"])

    if not values["SOCIAL_HANDLE_FIELDS"]:
        raise ConfigurationException("SOCIAL_HANDLE_FIELDS must name at least one field")

    if values["STRATEGY_FILE"]:
        values["extra_strategies"] = load_strategy_file(values["STRATEGY_FILE"])

    settings = Settings(**values)
    # Resolve once so an unknown or invalid strategy fails startup
    settings.strategy()
    return settings


__all__ = [
    "AVAILABLE_STRATEGIES",
    "LadderStep",
    "Settings",
    "StrategyPolicy",
    "describe_strategies",
    "ensure_valid",
    "get_strategy",
    "load_settings",
    "load_strategy_file",
    "normalize_log_level",
    "validate_strategy",
]
