"""
Evaluation pipeline.

Entry point for parlay and portfolio evaluation. A pipeline is built per
configuration and holds no state between calls; the module-level functions
construct a fresh pipeline for every call.

Parlay evaluation stages:
    VALIDATE_INPUT -> COMPUTE_COMBINED_METRICS -> ASSESS_RISK -> RECOMMEND -> SUMMARIZE -> DONE

Any stage may end in ERROR, which is distinct from a REJECTED verdict.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..betting.correlation import LegCorrelationModel
from ..betting.odds_utils import OddsMath, combine_decimal_odds, decimal_to_american
from ..betting.recommendations import RecommendationEngine
from ..betting.risk_assessment import ParlayRiskAssessor
from ..betting.staking import KellyStaking
from ..portfolio.covariance import CovarianceEstimate, CovarianceEstimator
from ..portfolio.expected_returns import ExpectedReturnEstimator, ReturnEstimate
from ..portfolio.metrics import PortfolioMetricsCalculator
from ..portfolio.optimizer import OptimizationResult, PortfolioOptimizer
from ..portfolio.risk_overlay import RiskOverlay
from ..portfolio.simulation import CorrelatedShockSimulator, ParlaySimulation, simulate_parlay
from ..utils.logging_config import (
    InputError, OptimizationError, ParlayQuantError, create_performance_logger, log_exception
)
from ..utils.unified_config import UnifiedConfig
from ..utils.validation.leg_validator import AssetInput, LegInput, LegValidator
from .models import (
    Confidence, EvaluationResult, Leg, LegSensitivity, Objective, OverallRisk,
    ParlayMetrics, PipelineStage, PortfolioConstraints, PortfolioMetrics, RecommendationSet,
    RiskAssessment, SensitivityReport, Severity, Summary, Verdict
)

logger = logging.getLogger(__name__)

ConstraintsInput = Union[PortfolioConstraints, Mapping[str, Any], None]


@dataclass
class PortfolioEvaluation:
    """Container for every intermediate of a portfolio evaluation."""
    metrics: PortfolioMetrics
    optimization: OptimizationResult
    covariance: CovarianceEstimate
    expected_returns: List[ReturnEstimate]


class EvaluationPipeline:
    """
    Orchestrates parlay and portfolio evaluation.
    """

    def __init__(self, config: UnifiedConfig = None, clock: Callable[[], datetime] = None):
        """
        Initialize evaluation pipeline.

        Args:
            config: Configuration, defaults to UnifiedConfig.from_environment()
            clock: Returns the reference instant for staleness checks
        """
        self.config = config or UnifiedConfig.from_environment()
        self.config.raise_if_invalid()
        self.clock = clock
        self.perf_logger = create_performance_logger(__name__)

        cfg = self.config
        self.odds_math = OddsMath.from_config(cfg.odds)
        self.staking = KellyStaking.from_config(cfg.staking, self.odds_math)
        self.correlation_model = LegCorrelationModel.from_config(cfg.correlation)
        self.risk_assessor = ParlayRiskAssessor.from_config(cfg.risk, self.odds_math, self.correlation_model)
        self.recommendation_engine = RecommendationEngine.from_config(cfg.recommendations, self.staking)
        self.validator = LegValidator()

    # Parlay evaluation

    def evaluate_parlay(self, legs: Sequence[LegInput]) -> EvaluationResult:
        """
        Evaluate a parlay end to end.

        Typed errors end the run in the ERROR stage and are reported on the
        result; any other exception propagates.
        """
        stages: List[PipelineStage] = []
        validated: Tuple[Leg, ...] = ()
        stage = PipelineStage.VALIDATE_INPUT

        try:
            stages.append(stage)
            validated = self.validator.validate_legs(legs)

            stage = PipelineStage.COMPUTE_COMBINED_METRICS
            stages.append(stage)
            metrics = self.combined_metrics(validated)

            stage = PipelineStage.ASSESS_RISK
            stages.append(stage)
            assessment = self.risk_assessor.assess(validated, metrics, now=self._now())
            metrics = replace(metrics, overall_risk=assessment.overall_risk,
                              rejection_reason=self._rejection_reason(assessment))

            stage = PipelineStage.RECOMMEND
            stages.append(stage)
            recommendations = self.recommendation_engine.generate(metrics, assessment)

            stage = PipelineStage.SUMMARIZE
            stages.append(stage)
            summary = self.summarize(metrics, assessment, recommendations)
        except ParlayQuantError as e:
            log_exception(logger, e, {'stage': stage.value})
            stages.append(PipelineStage.ERROR)
            return EvaluationResult(
                legs=validated,
                combined_metrics=None,
                risk_assessment=None,
                recommendations=None,
                summary=Summary(
                    verdict=Verdict.ERROR,
                    confidence=Confidence.LOW,
                    key_metric='N/A',
                    risk_level=None,
                    primary_action='Internal analysis error occurred.'
                ),
                stages=tuple(stages),
                error=f"Analysis failed: {e.message}",
                failed_stage=stage
            )

        stages.append(PipelineStage.DONE)
        logger.info(f"Parlay evaluation complete. Verdict: {summary.verdict.value}, "
                    f"EV: {metrics.parlay_ev_percent:.2f}%, Risk: {assessment.overall_risk.value}",
                    extra={'stage': PipelineStage.DONE.value})

        return EvaluationResult(
            legs=validated,
            combined_metrics=metrics,
            risk_assessment=assessment,
            recommendations=recommendations,
            summary=summary,
            stages=tuple(stages)
        )

    def combined_metrics(self, legs: Sequence[Leg]) -> ParlayMetrics:
        """
        Combined parlay metrics for a unit stake.

        The joint probability is the product of clamped leg probabilities,
        reduced by the correlation adjustment and clamped again.
        """
        decimal_odds = combine_decimal_odds(leg.decimal_odds for leg in legs)

        raw_probability = float(np.prod([self.odds_math.clamp(leg.model_probability) for leg in legs]))
        adjustment = self.correlation_model.adjustment_factor(legs)
        probability = self.odds_math.clamp(raw_probability * adjustment)

        ev = self.odds_math.ev_percent(decimal_odds, probability)
        expected_return = probability * decimal_odds - 1
        # Unit-stake payoff is d * Bernoulli(p) - 1
        variance = decimal_odds ** 2 * probability * (1 - probability)
        volatility = math.sqrt(variance)

        simulation = None
        if self.config.optimizer.parlay_simulations > 0:
            with self.perf_logger.timed_operation('parlay_simulation'):
                simulation = self._simulate(legs, decimal_odds, self.config.optimizer.parlay_simulations,
                                            self.config.optimizer.random_seed)

        return ParlayMetrics(
            combined_decimal_odds=decimal_odds,
            combined_american_odds=decimal_to_american(decimal_odds),
            raw_probability=raw_probability,
            correlation_adjustment=adjustment,
            combined_probability=probability,
            parlay_ev_percent=ev,
            kelly_stake=self.staking.stake(decimal_odds, probability),
            correlation_score=self.correlation_model.correlation_score(legs),
            expected_return=expected_return,
            variance=variance,
            volatility=volatility,
            sharpe_ratio=expected_return / volatility if volatility > 0 else 0.0,
            value_at_risk=simulation.value_at_risk if simulation else None,
            conditional_value_at_risk=simulation.conditional_value_at_risk if simulation else None,
            simulated_probability=simulation.win_probability if simulation else None
        )

    def summarize(self, metrics: ParlayMetrics, assessment: RiskAssessment,
                  recommendations: RecommendationSet) -> Summary:
        ev = metrics.parlay_ev_percent
        overall = assessment.overall_risk

        if overall == OverallRisk.REJECTED:
            verdict = Verdict.REJECTED
        else:
            verdict = Verdict.POSITIVE_EV if ev > 0 else Verdict.NEGATIVE_EV

        confidence = Confidence.MEDIUM
        if overall == OverallRisk.LOW and ev > 5:
            confidence = Confidence.HIGH
        if overall in (OverallRisk.HIGH, OverallRisk.REJECTED) or ev <= 0:
            confidence = Confidence.LOW

        return Summary(
            verdict=verdict,
            confidence=confidence,
            key_metric=f"EV: {ev:.1f}%",
            risk_level=overall.value,
            primary_action=recommendations.primary_action
        )

    def quick_evaluate(self, legs: Sequence[LegInput]) -> Dict[str, Any]:
        """Flat summary of evaluate_parlay"""
        result = self.evaluate_parlay(legs)
        if result.error:
            return {'error': result.error, 'verdict': Verdict.ERROR.value}

        metrics = result.combined_metrics
        return {
            'verdict': result.summary.verdict.value,
            'confidence': result.summary.confidence.value,
            'ev_percent': metrics.parlay_ev_percent,
            'joint_probability': metrics.combined_probability,
            'risk_level': result.risk_assessment.overall_risk.value,
            'recommended_stake_fraction': metrics.kelly_stake.recommended_fraction,
            'primary_recommendation': result.summary.primary_action,
        }

    def sensitivity_analysis(self, legs: Sequence[LegInput]) -> SensitivityReport:
        """
        Break-even probability of each leg with the other legs fixed.

        Raises:
            InputError: Invalid legs
        """
        validated = self.validator.validate_legs(legs)
        decimal_odds = combine_decimal_odds(leg.decimal_odds for leg in validated)
        adjustment = self.correlation_model.adjustment_factor(validated)
        clamped = [self.odds_math.clamp(leg.model_probability) for leg in validated]

        entries = []
        for i, leg in enumerate(validated):
            others = float(np.prod(clamped[:i] + clamped[i + 1:]))
            # EV is zero where p_i * others * adjustment * d == 1
            break_even = 1 / (decimal_odds * others * adjustment)
            entries.append(LegSensitivity(
                label=leg.label,
                model_probability=leg.model_probability,
                break_even_probability=break_even,
                margin=leg.model_probability - break_even,
                achievable=break_even < 1
            ))

        most_vulnerable = min(entries, key=lambda entry: entry.margin).label if entries else None
        return SensitivityReport(legs=tuple(entries), most_vulnerable=most_vulnerable)

    def simulate_parlay(self, legs: Sequence[LegInput], n_simulations: int = None,
                        random_seed: int = None) -> ParlaySimulation:
        """
        Monte Carlo simulation of correlated leg outcomes.

        Raises:
            InputError: Invalid legs
        """
        validated = self.validator.validate_legs(legs)
        decimal_odds = combine_decimal_odds(leg.decimal_odds for leg in validated)
        n_simulations = n_simulations or self.config.optimizer.parlay_simulations
        seed = random_seed if random_seed is not None else self.config.optimizer.random_seed
        return self._simulate(validated, decimal_odds, n_simulations, seed)

    def _simulate(self, legs: Sequence[Leg], decimal_odds: float, n_simulations: int,
                  random_seed: Optional[int]) -> ParlaySimulation:
        return simulate_parlay(
            probabilities=[self.odds_math.clamp(leg.model_probability) for leg in legs],
            correlation=self.correlation_model.correlation_matrix(legs),
            decimal_odds=decimal_odds,
            n_simulations=n_simulations,
            random_seed=random_seed,
            n_workers=self.config.optimizer.n_workers,
            confidence=self.config.optimizer.confidence_level
        )

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock is not None else None

    @staticmethod
    def _rejection_reason(assessment: RiskAssessment) -> Optional[str]:
        if assessment.overall_risk != OverallRisk.REJECTED:
            return None
        critical = assessment.with_severity(Severity.CRITICAL)
        return critical[0].message if critical else 'Critical risk factors identified.'

    # Portfolio evaluation

    def evaluate_portfolio(
        self,
        assets: Sequence[AssetInput],
        constraints: ConstraintsInput = None,
        objective: Union[Objective, str] = Objective.MAX_SHARPE
    ) -> PortfolioMetrics:
        """
        Optimize and risk-limit a portfolio.

        Raises:
            InputError, CovarianceError, InsufficientDataError, OptimizationError
        """
        return self.run_portfolio(assets, constraints, objective).metrics

    def run_portfolio(
        self,
        assets: Sequence[AssetInput],
        constraints: ConstraintsInput = None,
        objective: Union[Objective, str] = Objective.MAX_SHARPE
    ) -> PortfolioEvaluation:
        """evaluate_portfolio keeping the frontier, covariance and return estimates"""
        objective = self._objective(objective)
        constraints = self._constraints(constraints)
        validated = self.validator.validate_assets(assets)

        if len(validated) < 2:
            raise OptimizationError(
                f"Portfolio optimization needs at least 2 assets, got {len(validated)}",
                objective=objective.value
            )
        lower, upper = constraints.bounds(len(validated))

        cfg = self.config
        covariance = CovarianceEstimator.from_config(cfg.correlation).estimate(validated)
        estimates = ExpectedReturnEstimator.from_config(
            cfg.expected_returns, cfg.optimizer.risk_free_rate
        ).estimate(validated, covariance.matrix)

        simulator = CorrelatedShockSimulator(
            covariance.matrix,
            random_seed=cfg.optimizer.random_seed,
            n_workers=cfg.optimizer.n_workers,
            psd_tolerance=cfg.correlation.psd_tolerance
        )
        with self.perf_logger.timed_operation('shock_simulation'):
            shocks = simulator.draw(cfg.optimizer.n_simulations)

        calculator = PortfolioMetricsCalculator(
            asset_ids=covariance.asset_ids,
            expected_returns=np.array([est.expected_return for est in estimates]),
            covariance=covariance.matrix,
            shocks=shocks,
            risk_free_rate=cfg.optimizer.risk_free_rate,
            confidence_level=cfg.optimizer.confidence_level,
            drawdown_horizon=cfg.optimizer.drawdown_horizon,
            uncommitted_return=cfg.risk_limits.uncommitted_return
        )

        optimization = PortfolioOptimizer.from_config(cfg.optimizer).optimize(calculator, lower, upper, objective)
        overlay = RiskOverlay.from_config(cfg.risk_limits, constraints)
        final = overlay.apply(optimization.selected, calculator,
                              liquidity=[asset.liquidity for asset in validated])

        logger.info(f"Portfolio evaluation complete. Objective: {objective.value}, "
                    f"return={final.expected_return:.4f}, vol={final.volatility:.4f}, "
                    f"sharpe={final.sharpe_ratio:.3f}", extra={'objective': objective.value})

        return PortfolioEvaluation(
            metrics=final,
            optimization=optimization,
            covariance=covariance,
            expected_returns=estimates
        )

    @staticmethod
    def _objective(objective: Union[Objective, str]) -> Objective:
        try:
            return Objective(objective)
        except ValueError:
            raise InputError(
                f"Unknown objective '{objective}'; expected one of {[o.value for o in Objective]}",
                field='objective'
            ) from None

    @staticmethod
    def _constraints(constraints: ConstraintsInput) -> PortfolioConstraints:
        if constraints is None:
            return PortfolioConstraints()
        if isinstance(constraints, PortfolioConstraints):
            return constraints
        if isinstance(constraints, Mapping):
            try:
                return PortfolioConstraints(**constraints)
            except TypeError as e:
                raise InputError(f"Invalid constraints: {e}", field='constraints') from e
        raise InputError(f"Constraints must be a mapping, got {type(constraints).__name__}",
                         field='constraints')


def evaluate_parlay(legs: Sequence[LegInput], config: UnifiedConfig = None) -> EvaluationResult:
    return EvaluationPipeline(config).evaluate_parlay(legs)


def evaluate_portfolio(
    assets: Sequence[AssetInput],
    constraints: ConstraintsInput = None,
    objective: Union[Objective, str] = Objective.MAX_SHARPE,
    config: UnifiedConfig = None
) -> PortfolioMetrics:
    return EvaluationPipeline(config).evaluate_portfolio(assets, constraints, objective)


def quick_evaluate(legs: Sequence[LegInput], config: UnifiedConfig = None) -> Dict[str, Any]:
    return EvaluationPipeline(config).quick_evaluate(legs)


def sensitivity_analysis(legs: Sequence[LegInput], config: UnifiedConfig = None) -> SensitivityReport:
    return EvaluationPipeline(config).sensitivity_analysis(legs)


def simulate_parlay_legs(legs: Sequence[LegInput], n_simulations: int = None, random_seed: int = None,
                         config: UnifiedConfig = None) -> ParlaySimulation:
    return EvaluationPipeline(config).simulate_parlay(legs, n_simulations, random_seed)
