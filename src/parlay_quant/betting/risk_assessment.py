"""
Parlay risk assessment.
Leg-level risk taxonomy covering injury gates, correlation conflicts, market
signals, value thresholds and stale odds, reduced to one overall verdict.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional, Sequence, Union

import pandas as pd

from ..core.models import (
    CorrelationTag, Leg, OverallRisk, ParlayMetrics, Risk, RiskAssessment, RiskType, Severity
)
from .correlation import LegCorrelationModel
from .odds_utils import OddsMath

logger = logging.getLogger(__name__)


class ParlayRiskAssessor:
    """
    Evaluates a leg list independently of portfolio weights.

    Each check appends at most one Risk; the overall verdict follows a fixed
    precedence where two MEDIUM risks compound to HIGH.
    """

    def __init__(
        self,
        stale_after_minutes: float = 15.0,
        min_combined_ev_percent: float = 1.0,
        min_leg_ev_percent: float = 0.5,
        correlation_score_threshold: float = 0.3,
        high_positive_leg_threshold: int = 2,
        injury_markers: Sequence[str] = ('Questionable', 'Doubtful', 'Out'),
        line_movement_conflicts: Sequence[str] = ('against model', 'conflicts with edge'),
        odds_math: OddsMath = None,
        correlation_model: LegCorrelationModel = None
    ):
        self.stale_after = pd.Timedelta(minutes=stale_after_minutes)
        self.stale_after_minutes = stale_after_minutes
        self.min_combined_ev_percent = min_combined_ev_percent
        self.min_leg_ev_percent = min_leg_ev_percent
        self.correlation_score_threshold = correlation_score_threshold
        self.high_positive_leg_threshold = high_positive_leg_threshold
        self.odds_math = odds_math or OddsMath()
        self.correlation_model = correlation_model or LegCorrelationModel()

        self._injury_pattern = re.compile(
            r'\((' + '|'.join(re.escape(marker) for marker in injury_markers) + r')\)',
            re.IGNORECASE
        )
        self._conflict_pattern = re.compile(
            '|'.join(re.escape(phrase) for phrase in line_movement_conflicts),
            re.IGNORECASE
        )

    @classmethod
    def from_config(cls, risk_config, odds_math: OddsMath = None,
                    correlation_model: LegCorrelationModel = None) -> 'ParlayRiskAssessor':
        return cls(
            stale_after_minutes=risk_config.stale_after_minutes,
            min_combined_ev_percent=risk_config.min_combined_ev_percent,
            min_leg_ev_percent=risk_config.min_leg_ev_percent,
            correlation_score_threshold=risk_config.correlation_score_threshold,
            high_positive_leg_threshold=risk_config.high_positive_leg_threshold,
            injury_markers=risk_config.injury_markers,
            line_movement_conflicts=risk_config.line_movement_conflicts,
            odds_math=odds_math,
            correlation_model=correlation_model
        )

    def assess(
        self,
        legs: Sequence[Leg],
        metrics: ParlayMetrics,
        now: Optional[Union[datetime, pd.Timestamp]] = None
    ) -> RiskAssessment:
        """
        Run every risk check over the legs.

        Args:
            legs: Parlay legs
            metrics: Combined parlay metrics (EV and correlation score)
            now: Reference instant for staleness, defaults to the current UTC time

        Returns:
            RiskAssessment with the risks found and the overall verdict
        """
        if not legs:
            risk = Risk(RiskType.INPUT, Severity.CRITICAL, 'No legs provided for risk assessment.')
            return RiskAssessment(risks=(risk,), overall_risk=OverallRisk.REJECTED)

        reference = self._reference_time(now)
        checks = (
            self._check_injuries(legs),
            self._check_correlation(legs, metrics),
            self._check_market_signals(legs),
            self._check_value(legs, metrics),
            self._check_staleness(legs, reference),
        )
        risks = tuple(risk for risk in checks if risk is not None)
        overall = self.overall_risk(risks)

        logger.debug(f"Risk assessment: {[r.type.value for r in risks]} -> {overall.value}",
                     extra={'stage': 'ASSESS_RISK'})
        return RiskAssessment(risks=risks, overall_risk=overall)

    @staticmethod
    def overall_risk(risks: Sequence[Risk]) -> OverallRisk:
        severities = [risk.severity for risk in risks]
        if Severity.CRITICAL in severities:
            return OverallRisk.REJECTED
        if Severity.HIGH in severities:
            return OverallRisk.HIGH
        medium_count = severities.count(Severity.MEDIUM)
        if medium_count >= 2:
            return OverallRisk.HIGH
        if medium_count == 1:
            return OverallRisk.MEDIUM
        return OverallRisk.LOW

    def _check_injuries(self, legs: Sequence[Leg]) -> Optional[Risk]:
        gates = [gate for leg in legs for gate in leg.injury_gates
                 if self._injury_pattern.search(gate)]
        if not gates:
            return None

        listed = ', '.join(gates[:2]) + ('...' if len(gates) > 2 else '')
        return Risk(
            type=RiskType.INJURY,
            severity=Severity.HIGH,
            message=f"Critical player statuses unresolved: {listed}",
            impact='Parlay validity depends on player availability.'
        )

    def _check_correlation(self, legs: Sequence[Leg], metrics: ParlayMetrics) -> Optional[Risk]:
        negative = [leg for leg in legs if leg.correlation_tag == CorrelationTag.NEGATIVE]
        if negative:
            return Risk(
                type=RiskType.CORRELATION,
                severity=Severity.CRITICAL,
                message=f"Negative correlation detected between legs: "
                        f"{' vs '.join(leg.selection for leg in negative)}",
                impact='Parlay likely invalid or has significantly reduced true odds.'
            )

        score = metrics.correlation_score
        high_positive = self.correlation_model.count_high_positive(legs)
        score_exceeded = score is not None and score > self.correlation_score_threshold
        if score_exceeded or high_positive >= self.high_positive_leg_threshold:
            score_text = f"{score:.2f}" if score is not None else 'N/A'
            return Risk(
                type=RiskType.CORRELATION,
                severity=Severity.MEDIUM,
                message=f"Potential positive correlation detected (Score: {score_text}).",
                impact='Joint probability might be slightly lower than product.'
            )
        return None

    def _check_market_signals(self, legs: Sequence[Leg]) -> Optional[Risk]:
        conflicts = [
            leg for leg in legs
            if leg.market_signals.reverse_line_movement
            and self._conflict_pattern.search(leg.market_signals.reverse_line_movement)
        ]
        if not conflicts:
            return None

        return Risk(
            type=RiskType.MARKET_SIGNAL,
            severity=Severity.MEDIUM,
            message=f"Reverse line movement conflicts with model edge on {len(conflicts)} leg(s).",
            impact='Sharp money may disagree with the model.'
        )

    def _check_value(self, legs: Sequence[Leg], metrics: ParlayMetrics) -> Optional[Risk]:
        if metrics.parlay_ev_percent < self.min_combined_ev_percent:
            return Risk(
                type=RiskType.VALUE,
                severity=Severity.HIGH,
                message=f"Low or negative overall EV ({metrics.parlay_ev_percent:.2f}%) after analysis.",
                impact='Parlay is likely unprofitable long-term.'
            )

        leg_evs = [self.odds_math.ev_percent(leg.decimal_odds, leg.model_probability) for leg in legs]
        if any(ev < self.min_leg_ev_percent for ev in leg_evs):
            return Risk(
                type=RiskType.VALUE,
                severity=Severity.LOW,
                message='One or more legs have very marginal EV.',
                impact='Reduces overall parlay value and robustness.'
            )
        return None

    def _check_staleness(self, legs: Sequence[Leg], reference: pd.Timestamp) -> Optional[Risk]:
        stale = [leg for leg in legs if self.is_stale(leg.timestamp, reference)]
        if not stale:
            return None

        return Risk(
            type=RiskType.DATA_STALE,
            severity=Severity.MEDIUM,
            message=f"{len(stale)} leg(s) based on potentially stale odds "
                    f"(>{self.stale_after_minutes:g} min old).",
            impact='Current market price may differ, affecting EV.'
        )

    def is_stale(self, timestamp, reference: pd.Timestamp) -> bool:
        """Missing, unparseable or too old timestamps are stale"""
        if timestamp is None:
            return True
        try:
            parsed = pd.to_datetime(timestamp, utc=True)
        except (ValueError, TypeError, OverflowError):
            return True
        if pd.isna(parsed):
            return True
        return (reference - parsed) > self.stale_after

    @staticmethod
    def _reference_time(now) -> pd.Timestamp:
        if now is None:
            return pd.Timestamp.now(tz='UTC')
        reference = pd.Timestamp(now)
        if reference.tzinfo is None:
            return reference.tz_localize('UTC')
        return reference.tz_convert('UTC')


def summarize_risk_types(risks: Sequence[Risk], severity: Severity) -> List[str]:
    return [risk.type.value for risk in risks if risk.severity == severity]
