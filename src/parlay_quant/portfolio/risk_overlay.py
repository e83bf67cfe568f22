"""
Post-optimization risk overlay.

Applies, in a fixed order, a VaR cap, a drawdown cap, a concentration cap and
a liquidity cap. A violated limit moves the offending share of capital into
the zero-volatility uncommitted placeholder instead of rejecting the
portfolio; metrics are recomputed after every adjustment so later limits see
the adjusted weights.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..core.models import PortfolioMetrics
from .metrics import PortfolioMetricsCalculator

logger = logging.getLogger(__name__)

LIMIT_TOLERANCE = 1e-9


class RiskOverlay:
    """
    Risk limit enforcement on a selected portfolio.
    """

    def __init__(
        self,
        max_value_at_risk: Optional[float] = None,
        max_drawdown: Optional[float] = None,
        max_concentration: Optional[float] = None,
        enforce_liquidity: bool = True,
        max_iterations: int = 25
    ):
        """
        Initialize risk overlay.

        Args:
            max_value_at_risk: VaR cap as a loss fraction, None to disable
            max_drawdown: Cap on the mean simulated maximum drawdown
            max_concentration: Cap on any single asset weight
            enforce_liquidity: Cap weights at each asset's liquidity
            max_iterations: Rescaling rounds for the drawdown cap
        """
        for name, value in (('max_value_at_risk', max_value_at_risk),
                            ('max_drawdown', max_drawdown),
                            ('max_concentration', max_concentration)):
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

        self.max_value_at_risk = max_value_at_risk
        self.max_drawdown = max_drawdown
        self.max_concentration = max_concentration
        self.enforce_liquidity = enforce_liquidity
        self.max_iterations = max_iterations

    @classmethod
    def from_config(cls, limits_config, constraints=None) -> 'RiskOverlay':
        """Configured limits, overridden by any limit set on the constraints"""
        def pick(name):
            override = getattr(constraints, name, None) if constraints is not None else None
            return override if override is not None else getattr(limits_config, name)

        return cls(
            max_value_at_risk=pick('max_value_at_risk'),
            max_drawdown=pick('max_drawdown'),
            max_concentration=pick('max_concentration'),
            enforce_liquidity=limits_config.enforce_liquidity
        )

    def apply(
        self,
        metrics: PortfolioMetrics,
        calculator: PortfolioMetricsCalculator,
        liquidity: Optional[Sequence[Optional[float]]] = None
    ) -> PortfolioMetrics:
        """
        Enforce the limits on a selected portfolio.

        Args:
            metrics: Selected portfolio
            calculator: Calculator bound to the same inputs as the selection
            liquidity: Per-asset liquidity caps (None entries are uncapped)

        Returns:
            Adjusted PortfolioMetrics (the input is returned when nothing binds)
        """
        notes: List[str] = list(metrics.notes)
        current = metrics

        current = self._cap_value_at_risk(current, calculator, notes)
        current = self._cap_drawdown(current, calculator, notes)
        current = self._cap_concentration(current, calculator, notes)
        current = self._cap_liquidity(current, calculator, liquidity, notes)

        if current.uncommitted_weight > 0:
            logger.info(f"Risk overlay moved {current.uncommitted_weight:.2%} of capital to uncommitted")
        return current

    def _recompute(self, calculator: PortfolioMetricsCalculator, previous: PortfolioMetrics,
                   weights: np.ndarray, notes: List[str]) -> PortfolioMetrics:
        uncommitted = max(0.0, 1.0 - float(weights.sum()))
        return calculator.calculate(weights, uncommitted_weight=uncommitted,
                                    objective=previous.objective, notes=tuple(notes))

    def _cap_value_at_risk(self, metrics: PortfolioMetrics, calculator: PortfolioMetricsCalculator,
                           notes: List[str]) -> PortfolioMetrics:
        cap = self.max_value_at_risk
        if cap is None or metrics.value_at_risk <= cap + LIMIT_TOLERANCE:
            return metrics

        # Parametric VaR is linear in the committed scale
        scale = cap / metrics.value_at_risk
        weights = np.asarray(metrics.weights) * scale
        notes.append(f"VaR {metrics.value_at_risk:.4f} above cap {cap:.4f}: "
                     f"committed weights scaled by {scale:.4f}")
        logger.debug(notes[-1], extra={'operation': 'var_cap'})
        return self._recompute(calculator, metrics, weights, notes)

    def _cap_drawdown(self, metrics: PortfolioMetrics, calculator: PortfolioMetricsCalculator,
                      notes: List[str]) -> PortfolioMetrics:
        cap = self.max_drawdown
        if cap is None or metrics.max_drawdown_estimate <= cap + LIMIT_TOLERANCE:
            return metrics

        start = metrics.max_drawdown_estimate
        current = metrics
        for _ in range(self.max_iterations):
            if current.max_drawdown_estimate <= cap + LIMIT_TOLERANCE:
                break
            scale = cap / current.max_drawdown_estimate
            weights = np.asarray(current.weights) * scale
            current = calculator.calculate(weights, uncommitted_weight=max(0.0, 1.0 - float(weights.sum())),
                                           objective=metrics.objective, notes=tuple(notes))
        else:
            if current.max_drawdown_estimate > cap + LIMIT_TOLERANCE:
                logger.warning(f"Drawdown {current.max_drawdown_estimate:.4f} still above cap {cap:.4f} "
                               f"after {self.max_iterations} rescaling rounds",
                               extra={'operation': 'drawdown_cap'})

        committed_before = float(np.sum(metrics.weights))
        committed_after = float(np.sum(current.weights))
        notes.append(f"Drawdown {start:.4f} above cap {cap:.4f}: committed capital reduced "
                     f"from {committed_before:.4f} to {committed_after:.4f}")
        logger.debug(notes[-1], extra={'operation': 'drawdown_cap'})
        return self._recompute(calculator, metrics, np.asarray(current.weights), notes)

    def _cap_concentration(self, metrics: PortfolioMetrics, calculator: PortfolioMetricsCalculator,
                           notes: List[str]) -> PortfolioMetrics:
        cap = self.max_concentration
        weights = np.asarray(metrics.weights, dtype=float)
        if cap is None or np.all(weights <= cap + LIMIT_TOLERANCE):
            return metrics

        capped = [asset_id for asset_id, w in zip(metrics.asset_ids, weights) if w > cap + LIMIT_TOLERANCE]
        weights = np.minimum(weights, cap)
        notes.append(f"Concentration above cap {cap:.4f} for {', '.join(capped)}")
        logger.debug(notes[-1], extra={'operation': 'concentration_cap'})
        return self._recompute(calculator, metrics, weights, notes)

    def _cap_liquidity(self, metrics: PortfolioMetrics, calculator: PortfolioMetricsCalculator,
                       liquidity: Optional[Sequence[Optional[float]]], notes: List[str]) -> PortfolioMetrics:
        if not self.enforce_liquidity or liquidity is None:
            return metrics

        weights = np.asarray(metrics.weights, dtype=float)
        limits = np.array([np.inf if cap is None else float(cap) for cap in liquidity])
        if np.all(weights <= limits + LIMIT_TOLERANCE):
            return metrics

        capped = [asset_id for asset_id, w, cap in zip(metrics.asset_ids, weights, limits)
                  if w > cap + LIMIT_TOLERANCE]
        weights = np.minimum(weights, limits)
        notes.append(f"Liquidity cap binding for {', '.join(capped)}")
        logger.debug(notes[-1], extra={'operation': 'liquidity_cap'})
        return self._recompute(calculator, metrics, weights, notes)
