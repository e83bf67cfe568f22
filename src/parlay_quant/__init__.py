"""
Parlay Quant

Quantitative evaluation of multi-leg parlays and small portfolios: joint
probability, expected value, Kelly staking, rule-based risk assessment,
recommendations, and frontier optimization under risk limits.

Usage:
    from parlay_quant import evaluate_parlay

    result = evaluate_parlay([
        {'selection': 'Team A ML', 'price': -110, 'model_probability': 0.55},
        {'selection': 'Team B ML', 'price': 150, 'model_probability': 0.42},
    ])
    print(result.summary.verdict, result.summary.primary_action)
"""

from .core.models import (
    Asset, Confidence, CorrelationTag, EvaluationResult, Leg, Objective, OverallRisk,
    ParlayMetrics, PortfolioConstraints, PortfolioMetrics, SensitivityReport, Verdict
)
from .core.pipeline import (
    EvaluationPipeline, evaluate_parlay, evaluate_portfolio, quick_evaluate,
    sensitivity_analysis, simulate_parlay_legs
)
from .utils.logging_config import (
    ConfigurationError, CovarianceError, InputError, InsufficientDataError,
    OptimizationError, ParlayQuantError, configure_from_config, setup_logging
)
from .utils.unified_config import UnifiedConfig

__version__ = '0.1.0'

__all__ = [
    'Asset',
    'Confidence',
    'CorrelationTag',
    'EvaluationResult',
    'Leg',
    'Objective',
    'OverallRisk',
    'ParlayMetrics',
    'PortfolioConstraints',
    'PortfolioMetrics',
    'SensitivityReport',
    'Verdict',
    'EvaluationPipeline',
    'evaluate_parlay',
    'evaluate_portfolio',
    'quick_evaluate',
    'sensitivity_analysis',
    'simulate_parlay_legs',
    'ConfigurationError',
    'CovarianceError',
    'InputError',
    'InsufficientDataError',
    'OptimizationError',
    'ParlayQuantError',
    'configure_from_config',
    'setup_logging',
    'UnifiedConfig'
]
