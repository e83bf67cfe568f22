"""
Unit Tests for Parlay Risk Assessment

Covers each risk check, the overall verdict precedence and staleness parsing.
"""

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from parlay_quant.betting.risk_assessment import ParlayRiskAssessor, summarize_risk_types
from parlay_quant.core.models import (
    CorrelationTag, KellyStake, Leg, MarketSignals, OverallRisk, ParlayMetrics, Risk, RiskType, Severity
)

NOW = datetime(2024, 11, 16, 18, 0, tzinfo=timezone.utc)


def make_leg(selection='Team A', price=150, probability=0.42, minutes_old=1.0, **kwargs):
    timestamp = kwargs.pop('timestamp', (NOW - timedelta(minutes=minutes_old)).isoformat())
    return Leg(market_type='Moneyline', selection=selection, price=price,
               model_probability=probability, timestamp=timestamp, **kwargs)


def make_metrics(ev_percent=10.0, correlation_score=0.0):
    stake = KellyStake(0.02, 0.01, 0.005, 0.005, 0.5)
    return ParlayMetrics(
        combined_decimal_odds=6.25, combined_american_odds=525, raw_probability=0.1764,
        correlation_adjustment=1.0, combined_probability=0.1764, parlay_ev_percent=ev_percent,
        kelly_stake=stake, correlation_score=correlation_score, expected_return=ev_percent / 100,
        variance=1.0, volatility=1.0, sharpe_ratio=0.1
    )


class TestParlayRiskAssessor:
    """Test suite for ParlayRiskAssessor"""

    def setup_method(self):
        self.assessor = ParlayRiskAssessor()
        self.legs = [make_leg('Team A'), make_leg('Team B')]

    def test_clean_parlay_is_low_risk(self):
        assessment = self.assessor.assess(self.legs, make_metrics(), now=NOW)

        assert assessment.risks == ()
        assert assessment.overall_risk == OverallRisk.LOW

    def test_empty_legs_rejected(self):
        assessment = self.assessor.assess([], make_metrics(), now=NOW)

        assert assessment.overall_risk == OverallRisk.REJECTED
        assert assessment.risks[0].type == RiskType.INPUT

    def test_injury_gate_is_high(self):
        legs = [make_leg('Team A', injury_gates=('Star Player (Questionable)',)), make_leg('Team B')]
        assessment = self.assessor.assess(legs, make_metrics(), now=NOW)

        risk = assessment.first(RiskType.INJURY)
        assert risk.severity == Severity.HIGH
        assert 'Star Player (Questionable)' in risk.message
        assert assessment.overall_risk == OverallRisk.HIGH

    def test_injury_gate_without_marker_ignored(self):
        legs = [make_leg('Team A', injury_gates=('Star Player (Probable)',)), make_leg('Team B')]
        assessment = self.assessor.assess(legs, make_metrics(), now=NOW)

        assert assessment.first(RiskType.INJURY) is None

    def test_injury_message_truncates_after_two_gates(self):
        gates = ('A (Out)', 'B (Doubtful)', 'C (Questionable)')
        legs = [make_leg('Team A', injury_gates=gates), make_leg('Team B')]
        risk = self.assessor.assess(legs, make_metrics(), now=NOW).first(RiskType.INJURY)

        assert risk.message == 'Critical player statuses unresolved: A (Out), B (Doubtful)...'

    def test_negative_correlation_rejects(self):
        legs = [make_leg('Team A', correlation_notes=CorrelationTag.NEGATIVE), make_leg('Team B')]
        assessment = self.assessor.assess(legs, make_metrics(), now=NOW)

        risk = assessment.first(RiskType.CORRELATION)
        assert risk.severity == Severity.CRITICAL
        assert 'Team A' in risk.message
        assert assessment.overall_risk == OverallRisk.REJECTED

    def test_correlation_score_above_threshold(self):
        assessment = self.assessor.assess(self.legs, make_metrics(correlation_score=0.45), now=NOW)

        risk = assessment.first(RiskType.CORRELATION)
        assert risk.severity == Severity.MEDIUM
        assert 'Score: 0.45' in risk.message
        assert assessment.overall_risk == OverallRisk.MEDIUM

    def test_two_high_positive_legs_flagged(self):
        legs = [make_leg('Team A', correlation_notes=CorrelationTag.POSITIVE_HIGH),
                make_leg('Team B', correlation_notes=CorrelationTag.POSITIVE_HIGH)]
        assessment = self.assessor.assess(legs, make_metrics(correlation_score=0.1), now=NOW)

        assert assessment.first(RiskType.CORRELATION).severity == Severity.MEDIUM

    def test_reverse_line_movement_conflict(self):
        signals = MarketSignals(reverse_line_movement='Line moving AGAINST MODEL since open')
        legs = [make_leg('Team A', market_signals=signals), make_leg('Team B')]
        assessment = self.assessor.assess(legs, make_metrics(), now=NOW)

        risk = assessment.first(RiskType.MARKET_SIGNAL)
        assert risk.severity == Severity.MEDIUM
        assert '1 leg(s)' in risk.message

    def test_low_combined_ev_is_high(self):
        assessment = self.assessor.assess(self.legs, make_metrics(ev_percent=0.5), now=NOW)

        risk = assessment.first(RiskType.VALUE)
        assert risk.severity == Severity.HIGH
        assert '(0.50%)' in risk.message
        assert assessment.overall_risk == OverallRisk.HIGH

    def test_marginal_leg_ev_is_low(self):
        # +100 at 0.501 is a 0.2% edge
        legs = [make_leg('Team A', price=100, probability=0.501), make_leg('Team B')]
        assessment = self.assessor.assess(legs, make_metrics(), now=NOW)

        risk = assessment.first(RiskType.VALUE)
        assert risk.severity == Severity.LOW
        assert assessment.overall_risk == OverallRisk.LOW

    def test_stale_odds(self):
        legs = [make_leg('Team A', minutes_old=30), make_leg('Team B', timestamp=None)]
        assessment = self.assessor.assess(legs, make_metrics(), now=NOW)

        risk = assessment.first(RiskType.DATA_STALE)
        assert risk.severity == Severity.MEDIUM
        assert risk.message.startswith('2 leg(s)')
        assert '>15 min old' in risk.message

    def test_two_mediums_compound_to_high(self):
        legs = [make_leg('Team A', minutes_old=30), make_leg('Team B')]
        assessment = self.assessor.assess(legs, make_metrics(correlation_score=0.5), now=NOW)

        assert assessment.risk_factors == [RiskType.CORRELATION, RiskType.DATA_STALE]
        assert assessment.overall_risk == OverallRisk.HIGH

    def test_risks_in_check_order(self):
        signals = MarketSignals(reverse_line_movement='conflicts with edge')
        legs = [make_leg('Team A', injury_gates=('X (Out)',), market_signals=signals, minutes_old=60),
                make_leg('Team B')]
        assessment = self.assessor.assess(legs, make_metrics(ev_percent=-5, correlation_score=0.5), now=NOW)

        assert assessment.risk_factors == [
            RiskType.INJURY, RiskType.CORRELATION, RiskType.MARKET_SIGNAL, RiskType.VALUE, RiskType.DATA_STALE
        ]

    @pytest.mark.parametrize("severities,expected", [
        ([], OverallRisk.LOW),
        ([Severity.LOW], OverallRisk.LOW),
        ([Severity.MEDIUM], OverallRisk.MEDIUM),
        ([Severity.MEDIUM, Severity.LOW], OverallRisk.MEDIUM),
        ([Severity.MEDIUM, Severity.MEDIUM], OverallRisk.HIGH),
        ([Severity.HIGH], OverallRisk.HIGH),
        ([Severity.HIGH, Severity.CRITICAL], OverallRisk.REJECTED),
    ])
    def test_overall_risk_precedence(self, severities, expected):
        risks = [Risk(RiskType.VALUE, severity, 'x') for severity in severities]
        assert ParlayRiskAssessor.overall_risk(risks) == expected

    def test_is_stale_handles_bad_timestamps(self):
        reference = pd.Timestamp(NOW)

        assert self.assessor.is_stale(None, reference)
        assert self.assessor.is_stale('not a date', reference)
        assert not self.assessor.is_stale(NOW - timedelta(minutes=5), reference)
        # Naive timestamps are read as UTC
        assert not self.assessor.is_stale('2024-11-16T17:59:00', reference)

    def test_summarize_risk_types(self):
        risks = [Risk(RiskType.INJURY, Severity.HIGH, 'a'), Risk(RiskType.VALUE, Severity.HIGH, 'b'),
                 Risk(RiskType.DATA_STALE, Severity.MEDIUM, 'c')]
        assert summarize_risk_types(risks, Severity.HIGH) == ['INJURY', 'VALUE']
