"""
Odds utilities for parlay analysis.
Conversions between American and decimal odds, implied probability,
expected value and the Kelly fraction.

Decimal odds are the internal representation; American odds only appear at
the input boundary and in presentation output.
"""

import logging
import math
from typing import Iterable, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

PROBABILITY_FLOOR = 0.01
PROBABILITY_CEILING = 0.99


def _require_finite(value: float, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite: {value}")
    return value


def american_to_decimal(american_odds: float) -> float:
    """Convert American odds to decimal odds."""
    _require_finite(american_odds, 'American odds')
    if american_odds == 0:
        raise ValueError("American odds cannot be 0")

    if american_odds > 0:
        return 1 + (american_odds / 100)
    return 1 + (100 / abs(american_odds))


def decimal_to_american(decimal_odds: float) -> int:
    """Convert decimal odds to American odds, rounded to the nearest integer."""
    _require_finite(decimal_odds, 'Decimal odds')
    if decimal_odds <= 1:
        raise ValueError(f"Invalid decimal odds: {decimal_odds}")

    if decimal_odds >= 2.0:
        # Positive American odds
        return int(round((decimal_odds - 1) * 100))
    # Negative American odds
    return int(round(-100 / (decimal_odds - 1)))


def implied_probability(decimal_odds: float) -> float:
    """Implied probability of decimal odds; 0 for odds that cannot pay out."""
    if decimal_odds <= 1:
        return 0.0
    return 1 / decimal_odds


def clamp_probability(
    probability: float,
    floor: float = PROBABILITY_FLOOR,
    ceiling: float = PROBABILITY_CEILING
) -> float:
    """
    Clamp a probability into [floor, ceiling].

    This is the only place a probability is adjusted silently; non-numeric or
    non-finite input is an error rather than a default.
    """
    _require_finite(probability, 'Probability')
    return max(floor, min(ceiling, probability))


def ev_percent(
    decimal_odds: float,
    probability: float,
    floor: float = PROBABILITY_FLOOR,
    ceiling: float = PROBABILITY_CEILING
) -> float:
    """
    Expected value per 100 units staked.

    EV = p * (d - 1) - (1 - p) = p * d - 1

    Returns:
        Expected value as percentage, -100 when the odds cannot pay out
    """
    if decimal_odds <= 1:
        return -100.0
    p = clamp_probability(probability, floor, ceiling)
    return (p * decimal_odds - 1) * 100


def kelly_fraction(
    decimal_odds: float,
    probability: float,
    floor: float = PROBABILITY_FLOOR,
    ceiling: float = PROBABILITY_CEILING
) -> float:
    """
    Full Kelly fraction f = (b * p - q) / b, floored at 0.

    Args:
        decimal_odds: Decimal odds offered
        probability: Estimated probability of winning
    """
    b = decimal_odds - 1
    if b <= 0:
        return 0.0
    p = clamp_probability(probability, floor, ceiling)
    q = 1 - p
    return max(0.0, (b * p - q) / b)


def required_probability(decimal_odds: float) -> float:
    """Minimum probability needed for positive EV."""
    if decimal_odds <= 1:
        raise ValueError(f"Invalid decimal odds: {decimal_odds}")
    return 1 / decimal_odds


def combine_decimal_odds(odds: Iterable[float]) -> float:
    """Parlay price: product of the leg decimal odds."""
    combined = 1.0
    for leg_odds in odds:
        if leg_odds <= 1:
            raise ValueError(f"Invalid decimal odds: {leg_odds}")
        combined *= leg_odds
    return combined


def format_american(american_odds: Optional[int]) -> str:
    """Display form of American odds ('+150', '-110', 'N/A')."""
    if american_odds is None:
        return 'N/A'
    return f"+{american_odds}" if american_odds > 0 else f"{american_odds}"


class OddsMath:
    """
    Odds helpers bound to a configured probability clamp.
    """

    def __init__(self, probability_floor: float = PROBABILITY_FLOOR,
                 probability_ceiling: float = PROBABILITY_CEILING):
        if not (0 < probability_floor < probability_ceiling < 1):
            raise ValueError(
                f"Invalid probability clamp [{probability_floor}, {probability_ceiling}]"
            )
        self.probability_floor = probability_floor
        self.probability_ceiling = probability_ceiling

    @classmethod
    def from_config(cls, odds_config) -> 'OddsMath':
        return cls(odds_config.probability_floor, odds_config.probability_ceiling)

    @property
    def bounds(self) -> Tuple[float, float]:
        return self.probability_floor, self.probability_ceiling

    american_to_decimal = staticmethod(american_to_decimal)
    decimal_to_american = staticmethod(decimal_to_american)
    implied_probability = staticmethod(implied_probability)

    def clamp(self, probability: float) -> float:
        return clamp_probability(probability, *self.bounds)

    def ev_percent(self, decimal_odds: float, probability: float) -> float:
        return ev_percent(decimal_odds, probability, *self.bounds)

    def kelly_fraction(self, decimal_odds: float, probability: float) -> float:
        return kelly_fraction(decimal_odds, probability, *self.bounds)


def describe_series(values: Iterable[float], label: str = 'default') -> Optional[dict]:
    """
    Descriptive statistics of a list of prices or returns.

    Returns:
        Dict with count, mean, population std, min, max and median,
        or None for empty input
    """
    series = pd.Series(list(values), dtype=float)
    if series.empty:
        return None

    return {
        'count': int(series.count()),
        'type': label,
        'mean': float(series.mean()),
        'std_dev': float(series.std(ddof=0)),
        'min': float(series.min()),
        'max': float(series.max()),
        'median': float(series.median()),
    }
