"""
Portfolio metrics for candidate weight vectors.
Return, variance, Sharpe ratio, parametric VaR, simulated CVaR, simulated
drawdown and diversification ratio.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from ..core.models import Objective, PortfolioMetrics
from .simulation import tail_loss

logger = logging.getLogger(__name__)


class PortfolioMetricsCalculator:
    """
    Metrics calculator bound to one set of inputs.

    The same shock draws are reused for every weight vector so candidates are
    compared on common random numbers.
    """

    def __init__(
        self,
        asset_ids: Sequence[str],
        expected_returns: np.ndarray,
        covariance: np.ndarray,
        shocks: np.ndarray,
        risk_free_rate: float = 0.02,
        confidence_level: float = 0.95,
        drawdown_horizon: int = 52,
        uncommitted_return: float = 0.0
    ):
        """
        Initialize metrics calculator.

        Args:
            asset_ids: Asset ids in matrix order
            expected_returns: Expected return per asset
            covariance: Covariance matrix
            shocks: Correlated shocks of shape (n_simulations, n_assets)
            risk_free_rate: Rate subtracted in the Sharpe ratio
            confidence_level: VaR confidence level
            drawdown_horizon: Periods per simulated drawdown path
            uncommitted_return: Return of capital held outside the assets
        """
        self.asset_ids = tuple(asset_ids)
        self.expected_returns = np.asarray(expected_returns, dtype=float)
        self.covariance = np.asarray(covariance, dtype=float)
        self.shocks = np.asarray(shocks, dtype=float)
        self.risk_free_rate = risk_free_rate
        self.confidence_level = confidence_level
        self.drawdown_horizon = max(1, int(drawdown_horizon))
        self.uncommitted_return = uncommitted_return

        self.z_score = float(norm.ppf(confidence_level))
        self.asset_volatilities = np.sqrt(np.clip(np.diag(self.covariance), 0, None))

    def calculate(
        self,
        weights: Sequence[float],
        uncommitted_weight: float = 0.0,
        objective: Optional[Objective] = None,
        notes: Tuple[str, ...] = ()
    ) -> PortfolioMetrics:
        """
        Calculate metrics of one weight vector.

        Args:
            weights: Committed asset weights
            uncommitted_weight: Capital parked in the zero-volatility placeholder

        Returns:
            PortfolioMetrics for the weights
        """
        w = np.asarray(weights, dtype=float)

        expected_return = float(w @ self.expected_returns + uncommitted_weight * self.uncommitted_return)
        variance = max(0.0, float(w @ self.covariance @ w))
        volatility = float(np.sqrt(variance))
        sharpe = (expected_return - self.risk_free_rate) / volatility if volatility > 0 else 0.0

        value_at_risk = self.z_score * volatility
        shock_returns = self.shocks @ w
        simulated = expected_return + shock_returns

        return PortfolioMetrics(
            asset_ids=self.asset_ids,
            weights=tuple(float(x) for x in w),
            expected_return=expected_return,
            variance=variance,
            volatility=volatility,
            sharpe_ratio=float(sharpe),
            value_at_risk=float(value_at_risk),
            conditional_value_at_risk=tail_loss(simulated, value_at_risk, self.confidence_level),
            max_drawdown_estimate=self.max_drawdown(expected_return, shock_returns),
            diversification_ratio=self.diversification_ratio(w, volatility),
            uncommitted_weight=float(uncommitted_weight),
            objective=objective,
            notes=tuple(notes)
        )

    def max_drawdown(self, expected_return: float, shock_returns: np.ndarray) -> float:
        """
        Mean maximum drawdown over simulated paths.

        Draws are cut into paths of drawdown_horizon periods; each period
        carries expected_return / horizon plus the shock scaled by 1/sqrt(horizon).
        """
        horizon = min(self.drawdown_horizon, shock_returns.size)
        n_paths = shock_returns.size // horizon
        if n_paths == 0:
            return 0.0

        shocks = shock_returns[:n_paths * horizon].reshape(n_paths, horizon)
        period_returns = expected_return / horizon + shocks / np.sqrt(horizon)

        wealth = np.cumprod(np.clip(1 + period_returns, 0, None), axis=1)
        wealth = np.hstack([np.ones((n_paths, 1)), wealth])
        running_max = np.maximum.accumulate(wealth, axis=1)
        drawdowns = 1 - wealth / running_max

        return float(drawdowns.max(axis=1).mean())

    def diversification_ratio(self, weights: np.ndarray, volatility: float) -> float:
        """Weighted standalone volatility over portfolio volatility"""
        weighted = float(np.abs(weights) @ self.asset_volatilities)
        if volatility <= 0:
            return 1.0
        return weighted / volatility

    def risk_contributions(self, weights: Sequence[float]) -> np.ndarray:
        """Marginal risk contribution w_i * (S w)_i / sigma_p of each asset"""
        w = np.asarray(weights, dtype=float)
        variance = float(w @ self.covariance @ w)
        if variance <= 0:
            return np.zeros_like(w)
        return w * (self.covariance @ w) / np.sqrt(variance)
