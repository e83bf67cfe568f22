"""
Pytest Configuration and Fixtures for Parlay Quant Testing
==========================================================

Shared fixtures for the parlay quant test suite: raw leg and asset inputs,
a fixed clock and a seeded testing configuration.

Usage:
    # Fixtures are automatically available in test functions
    def test_pipeline(standard_legs, pipeline):
        result = pipeline.evaluate_parlay(standard_legs)
        assert result.succeeded
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from parlay_quant.core.pipeline import EvaluationPipeline
from parlay_quant.utils.logging_config import configure_for_testing
from parlay_quant.utils.unified_config import Environment, UnifiedConfig

FIXED_NOW = datetime(2024, 11, 16, 18, 0, tzinfo=timezone.utc)


def fresh_timestamp(seconds_ago: int = 30) -> str:
    return (FIXED_NOW - timedelta(seconds=seconds_ago)).isoformat()


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def testing_config() -> UnifiedConfig:
    """Seeded configuration with reduced simulation counts"""
    return UnifiedConfig(Environment.TESTING)


@pytest.fixture
def pipeline(testing_config) -> EvaluationPipeline:
    return EvaluationPipeline(testing_config, clock=lambda: FIXED_NOW)


@pytest.fixture
def standard_legs() -> List[Dict[str, Any]]:
    """Three independent legs, each with a 5% edge, priced within the last minute"""
    return [
        {
            'market_type': 'Moneyline',
            'selection': 'Boston Celtics',
            'price': -110,
            'model_probability': 0.55,
            'timestamp': fresh_timestamp(20),
        },
        {
            'market_type': 'Moneyline',
            'selection': 'Denver Nuggets',
            'price': 150,
            'model_probability': 0.42,
            'timestamp': fresh_timestamp(40),
        },
        {
            'market_type': 'Spread',
            'selection': 'Miami Heat -3.5',
            'price': -200,
            'model_probability': 0.70,
            'timestamp': fresh_timestamp(55),
        },
    ]


@pytest.fixture
def injury_legs(standard_legs) -> List[Dict[str, Any]]:
    legs = [dict(leg) for leg in standard_legs]
    legs[1]['injury_gates'] = ['Star Player (Questionable)']
    return legs


@pytest.fixture
def hedged_assets() -> List[Dict[str, Any]]:
    """Two strongly negatively correlated assets"""
    return [
        {'asset_id': 'low_vol', 'expected_return': 0.06, 'volatility': 0.10,
         'correlations': {'high_vol': -0.9}},
        {'asset_id': 'high_vol', 'expected_return': 0.12, 'volatility': 0.30},
    ]


@pytest.fixture
def three_assets() -> List[Dict[str, Any]]:
    return [
        {'asset_id': 'equities', 'expected_return': 0.09, 'volatility': 0.18,
         'correlations': {'bonds': -0.2, 'credit': 0.4}, 'beta': 1.1, 'liquidity': 0.9},
        {'asset_id': 'bonds', 'expected_return': 0.04, 'volatility': 0.06,
         'correlations': {'credit': 0.3}, 'beta': 0.1},
        {'asset_id': 'credit', 'expected_return': 0.06, 'volatility': 0.10, 'beta': 0.5},
    ]


@pytest.fixture
def return_history() -> np.ndarray:
    rng = np.random.Generator(np.random.PCG64(7))
    return rng.normal(0.01, 0.05, size=(40, 3))


# Test markers
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


@pytest.fixture(autouse=True, scope='session')
def configure_test_logging():
    """Quiet logging for the whole session"""
    configure_for_testing()
    yield
