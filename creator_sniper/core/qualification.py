from __future__ import annotations

import logging

from creator_sniper.config import StrategyPolicy
from creator_sniper.core.models import CreationEvent, QualificationVerdict, RejectReason
from creator_sniper.core.reputation import ReputationGate, risk_assessment
from creator_sniper.core.state import BotState

logger = logging.getLogger(__name__)


class QualificationEngine:
    """Turns a creation event into exactly one verdict."""

    def __init__(self, gate: ReputationGate, state: BotState) -> None:
        self.gate = gate
        self.state = state

    async def evaluate(self, event: CreationEvent, policy: StrategyPolicy) -> QualificationVerdict:
        # Checked first so an already-held token never costs a lookup
        async with self.state.lock:
            already_open = self.state.has_open_position(event.token_address)
        if already_open:
            verdict = QualificationVerdict(
                event=event,
                profile=None,
                qualifies=False,
                reason=RejectReason.ALREADY_OPEN,
                detail=f"position already open for {event.token_address}",
            )
            self._record(verdict, policy)
            return verdict

        profile = await self.gate.resolve(event.creator_address)
        reason = self.gate.rejection_reason(profile, policy)

        if reason is None:
            detail = f"score {profile.reputation_score} >= {policy.min_reputation_score}"
        elif reason == RejectReason.SCORE_BELOW_THRESHOLD:
            detail = f"score {profile.reputation_score} < {policy.min_reputation_score}"
        elif reason == RejectReason.LOOKUP_ERROR:
            detail = profile.lookup_error or "score unavailable"
        else:
            detail = "creator has no linked social account"

        verdict = QualificationVerdict(
            event=event,
            profile=profile,
            qualifies=reason is None,
            reason=reason,
            detail=detail,
        )
        self._record(verdict, policy)
        return verdict

    def _record(self, verdict: QualificationVerdict, policy: StrategyPolicy) -> None:
        event = verdict.event
        handle = verdict.profile.social_handle if verdict.profile else None
        who = f"@{handle}" if handle else event.creator_address

        if verdict.qualifies:
            self.state.stats.verdicts_qualified += 1
            score = verdict.profile.reputation_score
            logger.warning(
                f"QUALIFIES: {event.label} by {who} | score {score} ({risk_assessment(score)} risk) "
                f">= {policy.min_reputation_score} [{policy.name}]"
            )
            return

        self.state.stats.record_rejection(verdict.reason)
        if verdict.reason == RejectReason.LOOKUP_ERROR:
            logger.warning(f"REJECTED {event.label} by {who}: lookup error ({verdict.detail})")
        else:
            logger.warning(f"REJECTED {event.label} by {who}: {verdict.reason.value} ({verdict.detail})")
