"""
Expected return estimation with Bayesian model averaging.

Up to four independent estimates per asset:
- historical: sample mean of the return series
- capm: risk-free rate plus beta times the market premium
- black_litterman: equilibrium prior blended with the asset's stated view
- trend: one-step linear trend extrapolation of the return series

Estimates are combined with weights proportional to their inverse estimation
variance. An estimate with zero variance is exact and takes all the weight
(shared equally with any other exact estimate).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..core.models import Asset
from ..utils.logging_config import InsufficientDataError

logger = logging.getLogger(__name__)

METHODS = ('historical', 'capm', 'black_litterman', 'trend')


@dataclass
class MethodEstimate:
    """One method's estimate and its estimation variance."""
    method: str
    value: float
    variance: Optional[float]


@dataclass
class ReturnEstimate:
    """Combined estimate for one asset."""
    asset_id: str
    expected_return: float
    variance: float
    weights: Dict[str, float] = field(default_factory=dict)
    estimates: Dict[str, MethodEstimate] = field(default_factory=dict)


class ExpectedReturnEstimator:
    """
    Multi-method expected return estimator.
    """

    def __init__(
        self,
        methods: Sequence[str] = METHODS,
        risk_free_rate: float = 0.02,
        market_return: float = 0.08,
        capm_sample_size: int = 60,
        risk_aversion: float = 2.5,
        tau: float = 0.05,
        view_confidence: float = 0.5,
        min_history: int = 2,
        min_trend_history: int = 3
    ):
        """
        Initialize expected return estimator.

        Args:
            methods: Methods to run, any subset of METHODS
            risk_free_rate: Risk-free rate for the CAPM estimate
            market_return: Expected market return for the CAPM estimate
            capm_sample_size: Number of periods behind the CAPM estimate
            risk_aversion: Risk aversion delta for the equilibrium prior
            tau: Scaling of the prior uncertainty
            view_confidence: Confidence in each asset's stated return, in (0, 1]
            min_history: Minimum observations for the historical mean
            min_trend_history: Minimum observations for the trend fit
        """
        unknown = set(methods) - set(METHODS)
        if unknown:
            raise ValueError(f"Unknown expected-return methods: {sorted(unknown)}")
        if not 0 < view_confidence <= 1:
            raise ValueError(f"View confidence must be in (0, 1]: {view_confidence}")

        self.methods = tuple(methods)
        self.risk_free_rate = risk_free_rate
        self.market_return = market_return
        self.capm_sample_size = capm_sample_size
        self.risk_aversion = risk_aversion
        self.tau = tau
        self.view_confidence = view_confidence
        self.min_history = max(2, min_history)
        self.min_trend_history = max(3, min_trend_history)

    @classmethod
    def from_config(cls, expected_return_config, risk_free_rate: float = 0.02) -> 'ExpectedReturnEstimator':
        return cls(
            methods=expected_return_config.methods,
            risk_free_rate=risk_free_rate,
            market_return=expected_return_config.market_return,
            capm_sample_size=expected_return_config.capm_sample_size,
            risk_aversion=expected_return_config.risk_aversion,
            tau=expected_return_config.tau,
            view_confidence=expected_return_config.view_confidence,
            min_history=expected_return_config.min_history,
            min_trend_history=expected_return_config.min_trend_history
        )

    def estimate(self, assets: Sequence[Asset], covariance: np.ndarray) -> List[ReturnEstimate]:
        """
        Estimate expected returns for all assets.

        Args:
            assets: Assets in covariance order
            covariance: Covariance matrix used by the equilibrium prior

        Returns:
            One ReturnEstimate per asset

        Raises:
            InsufficientDataError: No method produced an estimate for an asset
        """
        black_litterman = {}
        if 'black_litterman' in self.methods:
            black_litterman = self.black_litterman(assets, covariance)

        results = []
        for asset in assets:
            estimates = {}
            if 'historical' in self.methods:
                estimates['historical'] = self.historical(asset)
            if 'capm' in self.methods:
                estimates['capm'] = self.capm(asset)
            if 'black_litterman' in self.methods:
                estimates['black_litterman'] = black_litterman.get(asset.asset_id)
            if 'trend' in self.methods:
                estimates['trend'] = self.trend(asset)

            available = {name: est for name, est in estimates.items() if est is not None}
            if not available:
                raise InsufficientDataError(
                    f"No expected-return method could produce an estimate for {asset.asset_id}",
                    asset_id=asset.asset_id
                )

            results.append(combine_estimates(asset.asset_id, available))
            logger.debug(f"Expected return for {asset.asset_id}: {results[-1].expected_return:.4f} "
                         f"(weights {results[-1].weights})", extra={'asset_id': asset.asset_id})

        return results

    def expected_returns(self, assets: Sequence[Asset], covariance: np.ndarray) -> np.ndarray:
        return np.array([est.expected_return for est in self.estimate(assets, covariance)])

    def historical(self, asset: Asset) -> Optional[MethodEstimate]:
        """Sample mean; variance of the mean is s^2 / n"""
        if not asset.returns or len(asset.returns) < self.min_history:
            return None

        returns = np.asarray(asset.returns, dtype=float)
        if not np.all(np.isfinite(returns)):
            return None
        return MethodEstimate('historical', float(returns.mean()),
                              float(returns.var(ddof=1) / len(returns)))

    def capm(self, asset: Asset) -> Optional[MethodEstimate]:
        """rf + beta * (market - rf); variance of a capm_sample_size-period mean of the asset"""
        if asset.beta is None or not math.isfinite(asset.beta):
            return None

        value = self.risk_free_rate + asset.beta * (self.market_return - self.risk_free_rate)
        variance = asset.volatility ** 2 / self.capm_sample_size
        return MethodEstimate('capm', float(value), float(variance))

    def black_litterman(self, assets: Sequence[Asset], covariance: np.ndarray) -> Dict[str, MethodEstimate]:
        """
        Equilibrium prior pi = delta * S * w_mkt, updated with each asset's
        stated expected return as an absolute view.

        Market weights default to equal weights when none are supplied. An
        asset with neither a view nor a market weight gets no estimate.
        Without market weights the prior carries no information, so a stated
        return that is the asset's only evidence is taken at full confidence.
        """
        n_assets = len(assets)
        cov = np.asarray(covariance, dtype=float)

        supplied = [asset.market_weight for asset in assets]
        informative_prior = any(weight is not None for weight in supplied)
        if informative_prior:
            w_mkt = np.array([weight or 0.0 for weight in supplied], dtype=float)
            total = w_mkt.sum()
            w_mkt = w_mkt / total if total > 0 else np.full(n_assets, 1 / n_assets)
        else:
            w_mkt = np.full(n_assets, 1 / n_assets)

        prior = self.risk_aversion * cov @ w_mkt
        prior_cov = self.tau * cov

        view_idx = [i for i, asset in enumerate(assets)
                    if asset.expected_return is not None and math.isfinite(asset.expected_return)]

        if view_idx:
            P = np.zeros((len(view_idx), n_assets))
            P[np.arange(len(view_idx)), view_idx] = 1.0
            q = np.array([assets[i].expected_return for i in view_idx], dtype=float)

            confidence = [self.view_confidence if informative_prior or self._has_other_evidence(assets[i])
                          else 1.0 for i in view_idx]
            omega = np.diag([prior_cov[i, i] * (1 - c) / c for i, c in zip(view_idx, confidence)])

            # pi + tau S P' (P tau S P' + Omega)^-1 (q - P pi)
            gain = prior_cov @ P.T @ np.linalg.pinv(P @ prior_cov @ P.T + omega)
            posterior = prior + gain @ (q - P @ prior)
            posterior_cov = prior_cov - gain @ P @ prior_cov
        else:
            posterior = prior
            posterior_cov = prior_cov

        estimates = {}
        for i, asset in enumerate(assets):
            if i not in view_idx and asset.market_weight is None:
                continue
            variance = max(0.0, float(posterior_cov[i, i]))
            estimates[asset.asset_id] = MethodEstimate('black_litterman', float(posterior[i]), variance)
        return estimates

    def _has_other_evidence(self, asset: Asset) -> bool:
        checks = {'historical': self.historical, 'capm': self.capm, 'trend': self.trend}
        return any(check(asset) is not None for name, check in checks.items() if name in self.methods)

    def trend(self, asset: Asset) -> Optional[MethodEstimate]:
        """Least-squares line through the series, extrapolated one period"""
        if not asset.returns or len(asset.returns) < self.min_trend_history:
            return None

        returns = np.asarray(asset.returns, dtype=float)
        if not np.all(np.isfinite(returns)):
            return None

        n = len(returns)
        t = np.arange(n, dtype=float)
        slope, intercept = np.polyfit(t, returns, 1)
        x0 = float(n)
        forecast = intercept + slope * x0

        residuals = returns - (intercept + slope * t)
        s2 = float(residuals @ residuals) / (n - 2)
        sxx = float(((t - t.mean()) ** 2).sum())
        variance = s2 * (1 / n + (x0 - t.mean()) ** 2 / sxx)

        return MethodEstimate('trend', float(forecast), float(variance))


def combine_estimates(asset_id: str, estimates: Dict[str, MethodEstimate]) -> ReturnEstimate:
    """
    Bayesian model average with weights proportional to 1 / variance.

    Methods with undefined variance get weight 0.
    """
    defined = {name: est for name, est in estimates.items()
               if est.variance is not None and math.isfinite(est.variance) and est.variance >= 0}
    if not defined:
        raise InsufficientDataError(
            f"No expected-return estimate with a defined variance for {asset_id}",
            asset_id=asset_id
        )

    exact = [name for name, est in defined.items() if est.variance == 0]
    if exact:
        weights = {name: (1 / len(exact) if name in exact else 0.0) for name in estimates}
        combined_variance = 0.0
    else:
        precision = {name: 1 / est.variance for name, est in defined.items()}
        total = sum(precision.values())
        weights = {name: precision.get(name, 0.0) / total for name in estimates}
        combined_variance = 1 / total

    value = sum(weights[name] * est.value for name, est in estimates.items())
    return ReturnEstimate(
        asset_id=asset_id,
        expected_return=float(value),
        variance=float(combined_variance),
        weights=weights,
        estimates=dict(estimates)
    )
