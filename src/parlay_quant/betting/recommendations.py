"""
Recommendation engine for parlay bets.
Turns combined metrics and the risk verdict into a prioritized list of
recommendations and a single primary action.
"""

import logging
from typing import List, Optional

from ..core.models import (
    OverallRisk, ParlayMetrics, Recommendation, RecommendationSet, RecommendationType,
    RiskAssessment, RiskType, Severity
)
from .risk_assessment import summarize_risk_types
from .staking import KellyStaking

logger = logging.getLogger(__name__)

WAIT_FOR_INJURIES = 'WAIT/CHECK INJURIES'
CHECK_CURRENT_ODDS = 'CHECK CURRENT ODDS'
REDUCE_STAKE = 'REDUCE STAKE'
DO_NOT_BET = 'DO NOT BET. Re-evaluate legs or wait for updates (e.g., injuries).'


class RecommendationEngine:
    """
    Prioritized, human-actionable advice for one evaluated parlay.
    """

    def __init__(
        self,
        staking: KellyStaking = None,
        strong_ev_percent: float = 15.0,
        moderate_ev_percent: float = 5.0,
        marginal_ev_percent: float = 0.0,
        max_recommendations: int = 5
    ):
        """
        Initialize recommendation engine.

        Args:
            staking: Capped Kelly calculator used for the stake tier
            strong_ev_percent: EV above which the edge is strong
            moderate_ev_percent: EV above which the edge is moderate
            marginal_ev_percent: EV above which the edge is marginal
            max_recommendations: Length of the returned list
        """
        self.staking = staking or KellyStaking()
        self.strong_ev_percent = strong_ev_percent
        self.moderate_ev_percent = moderate_ev_percent
        self.marginal_ev_percent = marginal_ev_percent
        self.max_recommendations = max_recommendations

    @classmethod
    def from_config(cls, recommendation_config, staking: KellyStaking = None) -> 'RecommendationEngine':
        return cls(
            staking=staking,
            strong_ev_percent=recommendation_config.strong_ev_percent,
            moderate_ev_percent=recommendation_config.moderate_ev_percent,
            marginal_ev_percent=recommendation_config.marginal_ev_percent,
            max_recommendations=recommendation_config.max_recommendations
        )

    def generate(self, metrics: ParlayMetrics, assessment: RiskAssessment) -> RecommendationSet:
        """
        Build the recommendation set.

        A rejected parlay gets exactly one CRITICAL recommendation and nothing else.
        """
        if assessment.overall_risk == OverallRisk.REJECTED:
            critical = assessment.with_severity(Severity.CRITICAL)
            reason = critical[0].message if critical else 'Critical risk factors.'
            rejection = Recommendation(
                priority=Severity.CRITICAL,
                type=RecommendationType.REJECTION,
                message=f"Parlay REJECTED due to: {reason}",
                action=DO_NOT_BET
            )
            return RecommendationSet(recommendations=(rejection,), primary_action='DO NOT BET.')

        ev = metrics.parlay_ev_percent
        recommended = metrics.kelly_stake.recommended_fraction

        recommendations = [self._ev_recommendation(ev), self._stake_recommendation(recommended)]
        risk_recommendation = self._risk_recommendation(assessment)
        if risk_recommendation is not None:
            recommendations.append(risk_recommendation)
        recommendations.extend(self._action_items(assessment))

        primary_action = self._primary_action(recommendations, assessment.overall_risk, ev, recommended)

        # Stable sort keeps generation order within a priority
        recommendations.sort(key=lambda rec: rec.priority.rank, reverse=True)
        return RecommendationSet(
            recommendations=tuple(recommendations[:self.max_recommendations]),
            primary_action=primary_action
        )

    def _ev_recommendation(self, ev: float) -> Recommendation:
        if ev > self.strong_ev_percent:
            return Recommendation(Severity.HIGH, RecommendationType.EV,
                                  f"Strong positive EV (+{ev:.1f}%) detected.")
        if ev > self.moderate_ev_percent:
            return Recommendation(Severity.MEDIUM, RecommendationType.EV,
                                  f"Moderate positive EV (+{ev:.1f}%) detected.")
        if ev > self.marginal_ev_percent:
            return Recommendation(Severity.LOW, RecommendationType.EV,
                                  f"Marginal positive EV (+{ev:.1f}%). Consider risk.")
        return Recommendation(Severity.HIGH, RecommendationType.EV,
                              f"Negative EV ({ev:.1f}%) detected.")

    def _stake_recommendation(self, recommended: float) -> Recommendation:
        return Recommendation(
            priority=self.staking.stake_tier(recommended),
            type=RecommendationType.STAKE,
            message=self.staking.stake_message(recommended)
        )

    def _risk_recommendation(self, assessment: RiskAssessment) -> Optional[Recommendation]:
        if assessment.overall_risk == OverallRisk.HIGH:
            types = ', '.join(summarize_risk_types(assessment.risks, Severity.HIGH))
            return Recommendation(Severity.HIGH, RecommendationType.RISK,
                                  f"High risk factors identified. {types}".rstrip(),
                                  action='Reduce stake significantly or avoid.')
        if assessment.overall_risk == OverallRisk.MEDIUM:
            types = ', '.join(summarize_risk_types(assessment.risks, Severity.MEDIUM))
            return Recommendation(Severity.MEDIUM, RecommendationType.RISK,
                                  f"Medium risk factors present. {types}".rstrip(),
                                  action='Consider slightly reduced stake.')
        return None

    def _action_items(self, assessment: RiskAssessment) -> List[Recommendation]:
        items = []
        for risk in assessment.risks:
            if risk.type == RiskType.INJURY and risk.severity == Severity.HIGH:
                items.append(Recommendation(Severity.HIGH, RecommendationType.ACTION,
                                            'Re-evaluate parlay once injury statuses are final.',
                                            action=WAIT_FOR_INJURIES))
            elif risk.type == RiskType.DATA_STALE:
                items.append(Recommendation(Severity.MEDIUM, RecommendationType.ACTION,
                                            'Odds may be stale. Verify current prices before betting.',
                                            action=CHECK_CURRENT_ODDS))
            elif risk.type == RiskType.MARKET_SIGNAL and risk.severity == Severity.MEDIUM:
                items.append(Recommendation(Severity.MEDIUM, RecommendationType.ACTION,
                                            'Sharp money may conflict with model. Consider reducing stake.',
                                            action=REDUCE_STAKE))
        return items

    def _primary_action(self, recommendations: List[Recommendation], overall_risk: OverallRisk,
                        ev: float, recommended: float) -> str:
        if overall_risk == OverallRisk.REJECTED:
            return 'DO NOT BET.'
        if any(rec.action == WAIT_FOR_INJURIES for rec in recommendations):
            return 'WAIT for injury updates before betting.'
        if ev <= 0:
            return 'AVOID due to negative EV.'
        if overall_risk == OverallRisk.HIGH:
            return 'REDUCE STAKE significantly due to high risk.'
        if recommended > self.staking.min_stake_threshold:
            return f"Consider betting {recommended * 100:.1f}% of bankroll."
        return 'Consider minimum stake or pass due to low edge.'
