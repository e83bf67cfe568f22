"""
Monte Carlo efficient frontier search.

Samples feasible weight vectors under box and budget constraints, scores
every sample, keeps the Pareto-optimal ones as the efficient frontier and
selects the optimum for the requested objective. Risk parity is refined with
SLSQP starting from the best sample.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.optimize import minimize

from ..core.models import Objective, PortfolioMetrics
from ..utils.logging_config import OptimizationError, create_performance_logger
from .metrics import PortfolioMetricsCalculator
from .simulation import WORKER_SEED_STRIDE

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-9
# Keeps sampling seeds apart from the shock simulator's seeds
SAMPLER_SEED_OFFSET = 1


@dataclass
class OptimizationResult:
    """Container for frontier search results."""
    selected: PortfolioMetrics
    frontier: List[PortfolioMetrics]
    candidates_evaluated: int
    rejected_samples: int = 0
    objective: Objective = Objective.MAX_SHARPE
    candidates: List[PortfolioMetrics] = field(default_factory=list, repr=False)

    def frontier_frame(self) -> pd.DataFrame:
        """Efficient frontier as a DataFrame sorted by volatility"""
        rows = []
        for metrics in self.frontier:
            row = {
                'expected_return': metrics.expected_return,
                'volatility': metrics.volatility,
                'variance': metrics.variance,
                'sharpe_ratio': metrics.sharpe_ratio,
                'value_at_risk': metrics.value_at_risk,
                'conditional_value_at_risk': metrics.conditional_value_at_risk,
            }
            row.update(metrics.weight_map)
            rows.append(row)

        frame = pd.DataFrame(rows)
        if frame.empty:
            return frame
        return frame.sort_values('volatility').reset_index(drop=True)


def dominates(a: PortfolioMetrics, b: PortfolioMetrics) -> bool:
    """a has equal-or-better return at equal-or-lower variance, strictly better in one"""
    no_worse = a.expected_return >= b.expected_return and a.variance <= b.variance
    strictly = a.expected_return > b.expected_return or a.variance < b.variance
    return no_worse and strictly


def insert_into_frontier(frontier: List[PortfolioMetrics], candidate: PortfolioMetrics) -> bool:
    """
    Add candidate unless an accepted point dominates it; drop the points it dominates.

    Returns:
        True when the candidate was accepted
    """
    if any(dominates(accepted, candidate) for accepted in frontier):
        return False
    frontier[:] = [accepted for accepted in frontier if not dominates(candidate, accepted)]
    frontier.append(candidate)
    return True


class PortfolioOptimizer:
    """
    Constrained portfolio search over the efficient frontier.
    """

    def __init__(
        self,
        n_portfolios: int = 2000,
        max_retries: int = 100,
        random_seed: Optional[int] = None,
        n_workers: int = 1
    ):
        """
        Initialize portfolio optimizer.

        Args:
            n_portfolios: Number of weight vectors to sample
            max_retries: Resampling budget per weight vector
            random_seed: Base seed for reproducible sampling
            n_workers: Worker threads sharing the sampling
        """
        if n_portfolios < 1:
            raise ValueError(f"n_portfolios must be positive, got {n_portfolios}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be positive, got {max_retries}")

        self.n_portfolios = n_portfolios
        self.max_retries = max_retries
        self.random_seed = random_seed
        self.n_workers = max(1, n_workers)
        self.perf_logger = create_performance_logger(__name__)

    @classmethod
    def from_config(cls, optimizer_config) -> 'PortfolioOptimizer':
        return cls(
            n_portfolios=optimizer_config.n_portfolios,
            max_retries=optimizer_config.max_retries,
            random_seed=optimizer_config.random_seed,
            n_workers=optimizer_config.n_workers
        )

    def optimize(
        self,
        calculator: PortfolioMetricsCalculator,
        lower: Sequence[float],
        upper: Sequence[float],
        objective: Union[Objective, str] = Objective.MAX_SHARPE
    ) -> OptimizationResult:
        """
        Search the frontier and select the optimum.

        Args:
            calculator: Metrics calculator bound to returns, covariance and shocks
            lower: Minimum weight per asset
            upper: Maximum weight per asset
            objective: Selection objective

        Returns:
            OptimizationResult with the selected portfolio and the frontier

        Raises:
            OptimizationError: Fewer than 2 assets or no feasible weight vector
        """
        objective = Objective(objective)
        lower = np.asarray(lower, dtype=float)
        upper = np.asarray(upper, dtype=float)
        n_assets = len(calculator.asset_ids)

        if n_assets < 2:
            raise OptimizationError(
                f"Portfolio optimization needs at least 2 assets, got {n_assets}",
                objective=objective.value
            )
        if lower.sum() > 1 + WEIGHT_TOLERANCE or upper.sum() < 1 - WEIGHT_TOLERANCE:
            raise OptimizationError(
                f"Weight bounds cannot sum to 1 (min sum {lower.sum():.4f}, max sum {upper.sum():.4f})",
                objective=objective.value
            )

        with self.perf_logger.timed_operation('frontier_sampling'):
            samples, rejected = self.sample_weights(lower, upper, self.n_portfolios)

        if not samples:
            raise OptimizationError(
                f"No feasible weight vector found within {self.max_retries} retries",
                objective=objective.value
            )
        if rejected:
            logger.warning(f"{rejected} of {self.n_portfolios} samples exhausted the retry budget",
                           extra={'objective': objective.value})

        candidates = []
        frontier: List[PortfolioMetrics] = []
        for weights in samples:
            metrics = calculator.calculate(weights)
            candidates.append(metrics)
            insert_into_frontier(frontier, metrics)

        selected = self._select(candidates, objective, calculator, lower, upper)
        logger.debug(f"Selected {objective.value} portfolio: return={selected.expected_return:.4f} "
                     f"vol={selected.volatility:.4f} frontier={len(frontier)}",
                     extra={'objective': objective.value})

        return OptimizationResult(
            selected=selected,
            frontier=frontier,
            candidates_evaluated=len(candidates),
            rejected_samples=rejected,
            objective=objective,
            candidates=candidates
        )

    def sample_weights(self, lower: np.ndarray, upper: np.ndarray,
                       n_samples: int) -> Tuple[List[np.ndarray], int]:
        """
        Draw feasible weight vectors, partitioned across workers.

        Returns:
            (feasible samples, number of samples that exhausted the retry budget)
        """
        base_seed = self.random_seed if self.random_seed is not None \
            else int(np.random.default_rng().integers(0, 2**31 - 1))
        seeds = [base_seed + SAMPLER_SEED_OFFSET + worker_id * WORKER_SEED_STRIDE
                 for worker_id in range(self.n_workers)]
        sizes = [len(part) for part in np.array_split(np.arange(n_samples), self.n_workers)]

        def run(seed: int, size: int) -> Tuple[List[np.ndarray], int]:
            worker_rng = np.random.Generator(np.random.PCG64(seed))
            found, failed = [], 0
            for _ in range(size):
                weights = self._sample_one(worker_rng, lower, upper)
                if weights is None:
                    failed += 1
                else:
                    found.append(weights)
            return found, failed

        if self.n_workers == 1:
            results = [run(seeds[0], sizes[0])]
        else:
            with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
                results = list(executor.map(run, seeds, sizes))

        samples = [weights for found, _ in results for weights in found]
        rejected = sum(failed for _, failed in results)
        return samples, rejected

    def _sample_one(self, rng: np.random.Generator, lower: np.ndarray,
                    upper: np.ndarray) -> Optional[np.ndarray]:
        budget = 1.0 - lower.sum()
        for _ in range(self.max_retries):
            raw = rng.uniform(lower, upper)
            excess = raw - lower
            if excess.sum() <= 0:
                weights = lower + budget / len(lower)
            else:
                # Spread the remaining budget proportionally over the draws
                weights = lower + excess * (budget / excess.sum())
            if np.all(weights <= upper + WEIGHT_TOLERANCE) and np.all(weights >= lower - WEIGHT_TOLERANCE):
                return weights
        return None

    def _select(
        self,
        candidates: List[PortfolioMetrics],
        objective: Objective,
        calculator: PortfolioMetricsCalculator,
        lower: np.ndarray,
        upper: np.ndarray
    ) -> PortfolioMetrics:
        if objective == Objective.MAX_SHARPE:
            best = max(candidates, key=lambda m: m.sharpe_ratio)
        elif objective == Objective.MIN_VARIANCE:
            best = min(candidates, key=lambda m: m.variance)
        elif objective == Objective.MAX_RETURN:
            best = max(candidates, key=lambda m: m.expected_return)
        else:
            with self.perf_logger.timed_operation('risk_parity_search'):
                weights = self._risk_parity(candidates, calculator, lower, upper)
            return calculator.calculate(weights, objective=objective)

        return calculator.calculate(best.weights, objective=objective)

    def _risk_parity(
        self,
        candidates: List[PortfolioMetrics],
        calculator: PortfolioMetricsCalculator,
        lower: np.ndarray,
        upper: np.ndarray
    ) -> np.ndarray:
        """Minimize sum of squared deviations of risk contributions from total_risk / n"""
        n_assets = len(lower)

        def parity_error(weights):
            contributions = calculator.risk_contributions(weights)
            target = contributions.sum() / n_assets
            return float(((contributions - target) ** 2).sum())

        start = min(candidates, key=lambda m: parity_error(np.asarray(m.weights)))
        x0 = np.asarray(start.weights, dtype=float)

        result = minimize(
            parity_error,
            x0,
            method='SLSQP',
            bounds=list(zip(lower, upper)),
            constraints=[{'type': 'eq', 'fun': lambda x: np.sum(x) - 1}],
            options={'ftol': 1e-12, 'maxiter': 500}
        )

        if result.success:
            weights = np.clip(result.x, lower, upper)
            if abs(weights.sum() - 1) <= 1e-6 and parity_error(weights) <= parity_error(x0):
                return weights

        logger.warning(f"Risk parity refinement failed ({result.message}), using best sample",
                       extra={'objective': Objective.RISK_PARITY.value})
        return x0
