"""
Unit Tests for Recommendation Engine
"""

import pytest

from parlay_quant.betting.recommendations import (
    CHECK_CURRENT_ODDS, DO_NOT_BET, REDUCE_STAKE, WAIT_FOR_INJURIES, RecommendationEngine
)
from parlay_quant.betting.risk_assessment import ParlayRiskAssessor
from parlay_quant.core.models import (
    KellyStake, ParlayMetrics, RecommendationType, Risk, RiskAssessment, RiskType, Severity
)


def make_metrics(ev_percent=10.0, recommended=0.01):
    stake = KellyStake(recommended * 4, recommended * 2, recommended, recommended, recommended * 100)
    return ParlayMetrics(
        combined_decimal_odds=6.25, combined_american_odds=525, raw_probability=0.2,
        correlation_adjustment=1.0, combined_probability=0.2, parlay_ev_percent=ev_percent,
        kelly_stake=stake, correlation_score=0.0, expected_return=ev_percent / 100,
        variance=1.0, volatility=1.0, sharpe_ratio=0.1
    )


def make_assessment(*risks):
    return RiskAssessment(risks=tuple(risks), overall_risk=ParlayRiskAssessor.overall_risk(risks))


class TestRecommendationEngine:
    """Test suite for RecommendationEngine"""

    def setup_method(self):
        self.engine = RecommendationEngine()

    def test_rejected_gives_single_critical(self):
        risk = Risk(RiskType.CORRELATION, Severity.CRITICAL, 'Negative correlation detected between legs: A')
        result = self.engine.generate(make_metrics(ev_percent=40), make_assessment(risk))

        assert len(result) == 1
        only = result.recommendations[0]
        assert only.priority == Severity.CRITICAL
        assert only.type == RecommendationType.REJECTION
        assert only.message == 'Parlay REJECTED due to: Negative correlation detected between legs: A'
        assert only.action == DO_NOT_BET
        assert result.primary_action == 'DO NOT BET.'

    @pytest.mark.parametrize("ev,priority,prefix", [
        (20.0, Severity.HIGH, 'Strong positive EV (+20.0%)'),
        (8.0, Severity.MEDIUM, 'Moderate positive EV (+8.0%)'),
        (2.0, Severity.LOW, 'Marginal positive EV (+2.0%)'),
        (-4.0, Severity.HIGH, 'Negative EV (-4.0%)'),
    ])
    def test_ev_tiers(self, ev, priority, prefix):
        result = self.engine.generate(make_metrics(ev_percent=ev), make_assessment())
        ev_rec = next(rec for rec in result if rec.type == RecommendationType.EV)

        assert ev_rec.priority == priority
        assert ev_rec.message.startswith(prefix)

    def test_low_risk_positive_edge(self):
        result = self.engine.generate(make_metrics(ev_percent=8.0, recommended=0.0064), make_assessment())

        assert [rec.type for rec in result] == [RecommendationType.EV, RecommendationType.STAKE]
        assert result.primary_action == 'Consider betting 0.6% of bankroll.'

    def test_minimal_stake_primary_action(self):
        result = self.engine.generate(make_metrics(ev_percent=2.0, recommended=0.001), make_assessment())
        assert result.primary_action == 'Consider minimum stake or pass due to low edge.'

    def test_negative_ev_primary_action(self):
        result = self.engine.generate(make_metrics(ev_percent=-3.0, recommended=0.0), make_assessment())
        assert result.primary_action == 'AVOID due to negative EV.'

    def test_injury_takes_precedence(self):
        injury = Risk(RiskType.INJURY, Severity.HIGH, 'Critical player statuses unresolved: X (Out)')
        result = self.engine.generate(make_metrics(ev_percent=-3.0), make_assessment(injury))

        assert result.primary_action == 'WAIT for injury updates before betting.'
        actions = [rec.action for rec in result if rec.type == RecommendationType.ACTION]
        assert actions == [WAIT_FOR_INJURIES]

    def test_high_risk_recommendation(self):
        value = Risk(RiskType.VALUE, Severity.HIGH, 'Low or negative overall EV')
        result = self.engine.generate(make_metrics(ev_percent=0.5), make_assessment(value))

        risk_rec = next(rec for rec in result if rec.type == RecommendationType.RISK)
        assert risk_rec.message == 'High risk factors identified. VALUE'
        assert risk_rec.action == 'Reduce stake significantly or avoid.'
        assert result.primary_action == 'REDUCE STAKE significantly due to high risk.'

    def test_medium_risk_action_items(self):
        stale = Risk(RiskType.DATA_STALE, Severity.MEDIUM, 'stale')
        result = self.engine.generate(make_metrics(), make_assessment(stale))

        risk_rec = next(rec for rec in result if rec.type == RecommendationType.RISK)
        assert risk_rec.priority == Severity.MEDIUM
        assert risk_rec.message == 'Medium risk factors present. DATA_STALE'
        assert CHECK_CURRENT_ODDS in [rec.action for rec in result]

    def test_sorted_by_priority_and_truncated(self):
        risks = (
            Risk(RiskType.INJURY, Severity.HIGH, 'injury'),
            Risk(RiskType.MARKET_SIGNAL, Severity.MEDIUM, 'signal'),
            Risk(RiskType.DATA_STALE, Severity.MEDIUM, 'stale'),
        )
        engine = RecommendationEngine(max_recommendations=4)
        result = engine.generate(make_metrics(ev_percent=2.0, recommended=0.001), make_assessment(*risks))

        ranks = [rec.priority.rank for rec in result]
        assert len(result) == 4
        assert ranks == sorted(ranks, reverse=True)
        # Generation order is kept within a priority
        high = [rec.type for rec in result if rec.priority == Severity.HIGH]
        assert high == [RecommendationType.RISK, RecommendationType.ACTION]
        assert REDUCE_STAKE in [rec.action for rec in result]
