"""
Reputation Gate

Normalizes a creator's identity into a ReputationProfile and decides
whether it clears a strategy's bar.

Outcomes are kept apart on purpose:
- no social handle     -> valid profile, not an error
- lookup failed        -> profile.lookup_error set
- score out of [0, 3000] or missing -> treated as lookup failure
- score below the bar  -> policy rejection
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from creator_sniper.config import StrategyPolicy
from creator_sniper.constants import MAX_REPUTATION_SCORE, MIN_REPUTATION_SCORE, RISK_BANDS
from creator_sniper.core.models import RejectReason, ReputationProfile
from creator_sniper.exceptions import BotException

logger = logging.getLogger(__name__)


class ProfileSource(Protocol):
    async def get_profile(self, wallet_address: str) -> dict[str, Any]: ...


def score_in_range(score: Any) -> bool:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return False
    return MIN_REPUTATION_SCORE <= score <= MAX_REPUTATION_SCORE


def risk_assessment(score: float) -> str:
    for floor, label in RISK_BANDS:
        if score >= floor:
            return label
    return "VERY_HIGH"


class ReputationGate:
    def __init__(self, source: ProfileSource) -> None:
        self.source = source

    async def resolve(self, creator_address: str) -> ReputationProfile:
        """Never raises; failures land in profile.lookup_error."""
        try:
            raw = await self.source.get_profile(creator_address)
        except BotException as e:
            logger.info(f"Reputation lookup failed for {creator_address}: {e}")
            return ReputationProfile(wallet_address=creator_address, lookup_error=str(e))
        except Exception as e:
            logger.error(f"Unexpected reputation lookup error for {creator_address}: {e!r}")
            return ReputationProfile(wallet_address=creator_address, lookup_error=repr(e))

        handle = raw.get("social_handle") or None
        score = raw.get("reputation_score")

        if handle is None:
            return ReputationProfile(wallet_address=creator_address)

        if score is None:
            return ReputationProfile(
                wallet_address=creator_address,
                social_handle=handle,
                lookup_error="no reputation score for handle",
            )

        if not score_in_range(score):
            logger.warning(
                f"Reputation score {score!r} for @{handle} is outside "
                f"[{MIN_REPUTATION_SCORE}, {MAX_REPUTATION_SCORE}], treating as lookup failure"
            )
            return ReputationProfile(
                wallet_address=creator_address,
                social_handle=handle,
                lookup_error=f"score out of range: {score!r}",
            )

        return ReputationProfile(
            wallet_address=creator_address,
            social_handle=handle,
            reputation_score=int(score),
        )

    @staticmethod
    def rejection_reason(profile: ReputationProfile, policy: StrategyPolicy) -> RejectReason | None:
        if profile.lookup_error is not None:
            return RejectReason.LOOKUP_ERROR
        if not profile.social_handle:
            return RejectReason.NO_SOCIAL_HANDLE
        if not score_in_range(profile.reputation_score):
            return RejectReason.LOOKUP_ERROR
        if profile.reputation_score < policy.min_reputation_score:
            return RejectReason.SCORE_BELOW_THRESHOLD
        return None

    @classmethod
    def passes(cls, profile: ReputationProfile, policy: StrategyPolicy) -> bool:
        return cls.rejection_reason(profile, policy) is None
