"""
Unit tests for the reputation gate and qualification engine

Covers handle/score normalization, lookup failures, the 0-3000 score
range and the reject reason chosen for each outcome.
"""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from creator_sniper.core.models import Position, RejectReason, ReputationProfile
from creator_sniper.core.qualification import QualificationEngine
from creator_sniper.core.reputation import ReputationGate, risk_assessment, score_in_range
from creator_sniper.core.reputation_client import extract_social_handle
from creator_sniper.core.state import BotState
from creator_sniper.exceptions import ReputationLookupException
from creator_sniper.tests.fakes import FakeProfileSource, addr, make_event, make_policy

CREATOR = addr(1)


def evaluate(profiles, policy=None, state=None, event=None):
    source = FakeProfileSource(profiles)
    engine = QualificationEngine(ReputationGate(source), state or BotState())
    verdict = asyncio.run(engine.evaluate(event or make_event(creator=CREATOR), policy or make_policy()))
    return verdict, source


class TestScoreHelpers:
    @pytest.mark.parametrize("score", [0, 1, 1600, 3000])
    def test_in_range(self, score):
        assert score_in_range(score)

    @pytest.mark.parametrize("score", [-1, 3001, None, "1500", True, float("nan")])
    def test_out_of_range(self, score):
        assert not score_in_range(score)

    def test_risk_bands(self):
        assert risk_assessment(2000) == "LOW"
        assert risk_assessment(800) == "MEDIUM"
        assert risk_assessment(600) == "HIGH"
        assert risk_assessment(599) == "VERY_HIGH"


class TestHandleExtraction:
    def test_username_preferred(self):
        profile = {"socialAccounts": {"twitter": {"username": "alice", "handle": "other"}}}
        assert extract_social_handle(profile, ("username", "handle")) == "alice"

    def test_falls_back_and_strips_at(self):
        profile = {"socialAccounts": {"twitter": {"username": "", "handle": "@bob "}}}
        assert extract_social_handle(profile, ("username", "handle")) == "bob"

    def test_no_twitter(self):
        assert extract_social_handle({"socialAccounts": {"twitter": None}}, ("username",)) is None
        assert extract_social_handle({}, ("username",)) is None


class TestGateResolve:
    def test_no_handle_is_not_an_error(self):
        profile = asyncio.run(ReputationGate(FakeProfileSource()).resolve(CREATOR))
        assert profile.social_handle is None
        assert profile.lookup_error is None

    def test_exception_becomes_lookup_error(self):
        source = FakeProfileSource({CREATOR: ReputationLookupException("Ethos returned HTTP 500")})
        profile = asyncio.run(ReputationGate(source).resolve(CREATOR))
        assert "HTTP 500" in profile.lookup_error

    def test_unexpected_exception_contained(self):
        source = FakeProfileSource({CREATOR: RuntimeError("boom")})
        profile = asyncio.run(ReputationGate(source).resolve(CREATOR))
        assert profile.lookup_error is not None

    def test_out_of_range_score_not_clamped(self):
        source = FakeProfileSource({CREATOR: {"social_handle": "alice", "reputation_score": 4000}})
        profile = asyncio.run(ReputationGate(source).resolve(CREATOR))
        assert profile.reputation_score is None
        assert profile.lookup_error is not None

    def test_passes(self):
        policy = make_policy(min_reputation_score=1600)
        good = ReputationProfile(CREATOR, social_handle="alice", reputation_score=1600)
        low = ReputationProfile(CREATOR, social_handle="alice", reputation_score=1599)
        no_handle = ReputationProfile(CREATOR, reputation_score=2500)
        assert ReputationGate.passes(good, policy)
        assert not ReputationGate.passes(low, policy)
        assert not ReputationGate.passes(no_handle, policy)


class TestQualification:
    def test_score_below_threshold(self):
        """minReputationScore=1600, creator score 1341"""
        verdict, _ = evaluate({CREATOR: {"social_handle": "alice", "reputation_score": 1341}})
        assert verdict.qualifies is False
        assert verdict.reason == RejectReason.SCORE_BELOW_THRESHOLD

    def test_no_social_handle(self):
        verdict, _ = evaluate({CREATOR: {"social_handle": None, "reputation_score": 2900}})
        assert verdict.qualifies is False
        assert verdict.reason == RejectReason.NO_SOCIAL_HANDLE

    def test_qualifies(self):
        verdict, _ = evaluate({CREATOR: {"social_handle": "alice", "reputation_score": 1700}})
        assert verdict.qualifies is True
        assert verdict.reason is None
        assert verdict.profile.social_handle == "alice"

    @pytest.mark.parametrize("score", [None, -5, 3001, 10_000])
    def test_missing_or_out_of_range_score_is_lookup_error(self, score):
        verdict, _ = evaluate({CREATOR: {"social_handle": "alice", "reputation_score": score}})
        assert verdict.qualifies is False
        assert verdict.reason == RejectReason.LOOKUP_ERROR

    def test_lookup_failure_is_not_score_rejection(self):
        verdict, _ = evaluate({CREATOR: ReputationLookupException("Zora request failed: timeout")})
        assert verdict.reason == RejectReason.LOOKUP_ERROR
        assert "timeout" in verdict.detail

    def test_already_open_skips_lookup(self):
        event = make_event(creator=CREATOR)
        state = BotState()
        state.positions[event.token_address.lower()] = Position(
            token_address=event.token_address,
            creator_address=CREATOR,
            entry_price=1.0,
            entry_timestamp=0.0,
            amount_base=0.01,
        )
        verdict, source = evaluate(
            {CREATOR: {"social_handle": "alice", "reputation_score": 2000}}, state=state, event=event
        )
        assert verdict.reason == RejectReason.ALREADY_OPEN
        assert source.calls == []

    def test_stats_recorded(self):
        state = BotState()
        evaluate({CREATOR: {"social_handle": "alice", "reputation_score": 100}}, state=state)
        evaluate({CREATOR: {"social_handle": "alice", "reputation_score": 2000}}, state=state)
        assert state.stats.verdicts_qualified == 1
        assert state.stats.verdicts_rejected == {"score-below-threshold": 1}

    def test_same_event_same_verdict(self):
        profiles = {CREATOR: {"social_handle": "alice", "reputation_score": 1341}}
        first, _ = evaluate(profiles)
        second, _ = evaluate(profiles)
        assert (first.qualifies, first.reason) == (second.qualifies, second.reason)
