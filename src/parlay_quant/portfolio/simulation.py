"""
Correlated shock simulation for Monte Carlo risk metrics.

Factorizes a covariance matrix and draws correlated normal shocks. Draws are
split across workers with deterministic per-worker seeds
(seed + worker_id * 10000), so output depends only on (seed, n_workers).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from scipy.stats import norm

from ..utils.logging_config import CovarianceError, InputError

logger = logging.getLogger(__name__)

WORKER_SEED_STRIDE = 10000


@dataclass
class ParlaySimulation:
    """Container for parlay Monte Carlo results."""
    n_simulations: int
    win_probability: float
    expected_return: float
    ev_percent: float
    value_at_risk: float
    conditional_value_at_risk: float
    leg_hit_rates: List[float]


class CorrelatedShockSimulator:
    """
    Draws correlated shocks with covariance equal to the given matrix.
    """

    def __init__(
        self,
        covariance: np.ndarray,
        random_seed: Optional[int] = None,
        n_workers: int = 1,
        psd_tolerance: float = 1e-10
    ):
        """
        Initialize shock simulator.

        Args:
            covariance: Symmetric positive semi-definite matrix
            random_seed: Base seed for reproducible draws
            n_workers: Number of worker threads sharing the draws
            psd_tolerance: Most negative eigenvalue accepted as PSD
        """
        if n_workers < 1:
            raise ValueError(f"n_workers must be positive, got {n_workers}")

        self.covariance = np.atleast_2d(np.asarray(covariance, dtype=float))
        self.n_assets = self.covariance.shape[0]
        self.psd_tolerance = psd_tolerance
        self.n_workers = n_workers
        self.random_seed = random_seed if random_seed is not None \
            else int(np.random.default_rng().integers(0, 2**31 - 1))
        self.factor = self._factorize(self.covariance)

    def _factorize(self, covariance: np.ndarray) -> np.ndarray:
        """Cholesky factor L with S = L L'; eigen square root for singular PSD matrices"""
        if covariance.shape != (self.n_assets, self.n_assets):
            raise CovarianceError(f"Covariance matrix must be square, got {covariance.shape}")

        try:
            return np.linalg.cholesky(covariance)
        except np.linalg.LinAlgError:
            eigenvalues, eigenvectors = np.linalg.eigh(covariance)
            min_eigenvalue = float(eigenvalues.min())
            if min_eigenvalue < -self.psd_tolerance:
                raise CovarianceError(
                    f"Cannot factorize covariance matrix (min eigenvalue {min_eigenvalue:.3e})",
                    min_eigenvalue=min_eigenvalue
                ) from None
            logger.debug("Covariance matrix is singular, using eigen decomposition factor")
            return eigenvectors * np.sqrt(np.clip(eigenvalues, 0, None))

    def worker_seeds(self) -> List[int]:
        return [self.random_seed + worker_id * WORKER_SEED_STRIDE for worker_id in range(self.n_workers)]

    def draw(self, n_simulations: int) -> np.ndarray:
        """
        Draw correlated shocks.

        Returns:
            Array of shape (n_simulations, n_assets)
        """
        if n_simulations < 1:
            raise InputError(f"n_simulations must be positive, got {n_simulations}",
                             field='n_simulations')

        sizes = [len(part) for part in np.array_split(np.arange(n_simulations), self.n_workers)]
        seeds = self.worker_seeds()

        if self.n_workers == 1:
            chunks = [self._draw_chunk(seeds[0], sizes[0])]
        else:
            with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
                chunks = list(executor.map(self._draw_chunk, seeds, sizes))

        return np.vstack(chunks)

    def _draw_chunk(self, worker_seed: int, size: int) -> np.ndarray:
        worker_rng = np.random.Generator(np.random.PCG64(worker_seed))
        standard_normals = worker_rng.standard_normal((size, self.n_assets))
        return standard_normals @ self.factor.T

    def portfolio_returns(
        self,
        expected_returns: Sequence[float],
        weights: Sequence[float],
        n_simulations: int = None,
        shocks: np.ndarray = None
    ) -> np.ndarray:
        """Simulated portfolio returns r = sum_i w_i * (mu_i + shock_i)"""
        if shocks is None:
            shocks = self.draw(n_simulations)
        mu = np.asarray(expected_returns, dtype=float)
        w = np.asarray(weights, dtype=float)
        return (mu + shocks) @ w


def tail_loss(returns: np.ndarray, threshold: float, confidence: float = 0.95) -> float:
    """
    Expected loss of the simulated returns at or below -threshold.

    Falls back to the worst (1 - confidence) share of draws when no draw
    reaches the threshold.
    """
    returns = np.asarray(returns, dtype=float)
    tail = returns[returns <= -threshold]
    if tail.size == 0:
        # 1 - confidence is inexact in binary, e.g. 100 * (1 - 0.95) > 5
        n_tail = max(1, int(np.ceil(round(returns.size * (1 - confidence), 9))))
        tail = np.sort(returns)[:n_tail]
    return float(-tail.mean())


def simulate_parlay(
    probabilities: Sequence[float],
    correlation: np.ndarray,
    decimal_odds: float,
    n_simulations: int = 2000,
    random_seed: Optional[int] = None,
    n_workers: int = 1,
    confidence: float = 0.95
) -> ParlaySimulation:
    """
    Gaussian copula simulation of correlated leg outcomes.

    A leg wins when its latent normal falls below the inverse normal of its
    probability; the parlay pays decimal_odds - 1 per unit stake only when
    every leg wins.

    Args:
        probabilities: Clamped leg win probabilities
        correlation: Leg correlation matrix
        decimal_odds: Combined parlay decimal odds
        n_simulations: Number of simulated parlays
        random_seed: Base seed
        n_workers: Worker threads
        confidence: VaR confidence level
    """
    probs = np.asarray(probabilities, dtype=float)
    simulator = CorrelatedShockSimulator(correlation, random_seed=random_seed, n_workers=n_workers)
    latent = simulator.draw(n_simulations)

    leg_wins = latent < norm.ppf(probs)
    parlay_wins = leg_wins.all(axis=1)
    returns = np.where(parlay_wins, decimal_odds - 1, -1.0)

    value_at_risk = float(-np.quantile(returns, 1 - confidence))
    expected_return = float(returns.mean())

    return ParlaySimulation(
        n_simulations=n_simulations,
        win_probability=float(parlay_wins.mean()),
        expected_return=expected_return,
        ev_percent=expected_return * 100,
        value_at_risk=value_at_risk,
        conditional_value_at_risk=tail_loss(returns, value_at_risk, confidence),
        leg_hit_rates=[float(rate) for rate in leg_wins.mean(axis=0)]
    )
