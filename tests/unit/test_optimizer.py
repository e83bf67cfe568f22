"""
Unit Tests for Portfolio Optimizer
"""

from dataclasses import replace

import numpy as np
import pytest

from parlay_quant.core.models import Objective
from parlay_quant.portfolio.metrics import PortfolioMetricsCalculator
from parlay_quant.portfolio.optimizer import PortfolioOptimizer, dominates, insert_into_frontier
from parlay_quant.portfolio.simulation import CorrelatedShockSimulator
from parlay_quant.utils.logging_config import OptimizationError

VOLS = np.array([0.18, 0.06, 0.10])
CORRELATION = np.array([[1.0, -0.2, 0.4], [-0.2, 1.0, 0.3], [0.4, 0.3, 1.0]])
COVARIANCE = CORRELATION * np.outer(VOLS, VOLS)
EXPECTED = np.array([0.09, 0.04, 0.06])


def make_calculator(covariance=COVARIANCE, expected=EXPECTED):
    shocks = CorrelatedShockSimulator(covariance, random_seed=42).draw(1000)
    ids = [f"asset_{i}" for i in range(len(expected))]
    return PortfolioMetricsCalculator(ids, expected, covariance, shocks, risk_free_rate=0.02)


class TestPortfolioOptimizer:
    """Test suite for PortfolioOptimizer"""

    def setup_method(self):
        self.optimizer = PortfolioOptimizer(n_portfolios=400, random_seed=42)
        self.calculator = make_calculator()

    def test_sampled_weights_respect_constraints(self):
        lower = np.array([0.1, 0.05, 0.0])
        upper = np.array([0.5, 0.6, 0.4])
        samples, rejected = self.optimizer.sample_weights(lower, upper, 300)

        assert len(samples) + rejected == 300
        for weights in samples:
            assert weights.sum() == pytest.approx(1.0, abs=1e-6)
            assert np.all(weights >= lower - 1e-9)
            assert np.all(weights <= upper + 1e-9)

    def test_frontier_is_pareto_optimal(self):
        result = self.optimizer.optimize(self.calculator, [0, 0, 0], [1, 1, 1], Objective.MAX_SHARPE)

        assert result.frontier
        for a in result.frontier:
            for b in result.frontier:
                assert not dominates(a, b)

    @pytest.mark.parametrize("objective,key,better", [
        (Objective.MAX_SHARPE, 'sharpe_ratio', max),
        (Objective.MIN_VARIANCE, 'variance', min),
        (Objective.MAX_RETURN, 'expected_return', max),
    ])
    def test_selection_objectives(self, objective, key, better):
        result = self.optimizer.optimize(self.calculator, [0, 0, 0], [1, 1, 1], objective)
        values = [getattr(candidate, key) for candidate in result.candidates]

        assert getattr(result.selected, key) == pytest.approx(better(values))
        assert result.selected.objective == objective
        assert result.candidates_evaluated == len(result.candidates)

    def test_risk_parity_equalizes_contributions(self):
        result = self.optimizer.optimize(self.calculator, [0, 0, 0], [1, 1, 1], 'risk_parity')
        contributions = self.calculator.risk_contributions(result.selected.weights)

        assert sum(result.selected.weights) == pytest.approx(1.0, abs=1e-6)
        np.testing.assert_allclose(contributions, contributions.mean(), rtol=0.05)

    def test_reproducible_with_seed(self):
        first = PortfolioOptimizer(n_portfolios=100, random_seed=3).optimize(self.calculator, [0] * 3, [1] * 3)
        second = PortfolioOptimizer(n_portfolios=100, random_seed=3).optimize(self.calculator, [0] * 3, [1] * 3)

        assert first.selected.weights == second.selected.weights

    def test_multiple_workers(self):
        optimizer = PortfolioOptimizer(n_portfolios=200, random_seed=3, n_workers=3)
        result = optimizer.optimize(self.calculator, [0] * 3, [1] * 3)

        assert result.candidates_evaluated == 200

    def test_infeasible_bounds(self):
        with pytest.raises(OptimizationError, match="cannot sum to 1"):
            self.optimizer.optimize(self.calculator, [0.5, 0.5, 0.5], [1, 1, 1])
        with pytest.raises(OptimizationError, match="cannot sum to 1"):
            self.optimizer.optimize(self.calculator, [0, 0, 0], [0.2, 0.2, 0.2])

    def test_single_asset_rejected(self):
        calculator = make_calculator(np.array([[0.04]]), np.array([0.05]))
        with pytest.raises(OptimizationError, match="at least 2 assets"):
            self.optimizer.optimize(calculator, [0], [1])

    def test_frontier_frame_sorted(self):
        result = self.optimizer.optimize(self.calculator, [0, 0, 0], [1, 1, 1])
        frame = result.frontier_frame()

        assert len(frame) == len(result.frontier)
        assert frame['volatility'].is_monotonic_increasing
        assert {'asset_0', 'asset_1', 'asset_2', 'sharpe_ratio'} <= set(frame.columns)


class TestFrontierHelpers:
    """Test dominance bookkeeping"""

    def test_insert_into_frontier(self):
        calculator = make_calculator()
        low_risk = calculator.calculate([0.1, 0.8, 0.1])
        high_return = calculator.calculate([0.8, 0.1, 0.1])
        worse = replace(low_risk, expected_return=low_risk.expected_return - 0.01)
        better = replace(low_risk, expected_return=low_risk.expected_return + 0.01)

        frontier = []
        assert insert_into_frontier(frontier, low_risk)
        assert insert_into_frontier(frontier, high_return)
        assert not insert_into_frontier(frontier, worse)
        assert len(frontier) == 2

        assert insert_into_frontier(frontier, better)
        assert low_risk not in frontier
        assert len(frontier) == 2

    def test_dominates(self):
        calculator = make_calculator()
        base = calculator.calculate([0.4, 0.3, 0.3])

        assert not dominates(base, base)
        assert dominates(base, replace(base, variance=base.variance * 2))
