"""
Capped Kelly staking for parlay bets.
Full Kelly is scaled by a fractional cap and bounded by an absolute
bankroll ceiling.
"""

import logging

from ..core.models import KellyStake, Severity
from .odds_utils import OddsMath

logger = logging.getLogger(__name__)


class KellyStaking:
    """
    Kelly criterion staking with a fractional cap.
    """

    def __init__(
        self,
        kelly_cap: float = 0.25,
        max_stake_fraction: float = 0.10,
        high_stake_threshold: float = 0.02,
        min_stake_threshold: float = 0.005,
        odds_math: OddsMath = None
    ):
        """
        Initialize Kelly staking calculator.

        Args:
            kelly_cap: Fraction of full Kelly to use (0.25 is quarter Kelly)
            max_stake_fraction: Absolute ceiling as fraction of bankroll
            high_stake_threshold: Recommended fraction above which the stake tier is HIGH
            min_stake_threshold: Recommended fraction below which the stake is minimal
            odds_math: Odds helpers carrying the probability clamp
        """
        if not 0 < kelly_cap <= 1:
            raise ValueError(f"Kelly cap must be in (0, 1]: {kelly_cap}")
        if not 0 < max_stake_fraction <= 1:
            raise ValueError(f"Stake ceiling must be in (0, 1]: {max_stake_fraction}")

        self.kelly_cap = kelly_cap
        self.max_stake_fraction = max_stake_fraction
        self.high_stake_threshold = high_stake_threshold
        self.min_stake_threshold = min_stake_threshold
        self.odds_math = odds_math or OddsMath()

    @classmethod
    def from_config(cls, staking_config, odds_math: OddsMath = None) -> 'KellyStaking':
        return cls(
            kelly_cap=staking_config.kelly_cap,
            max_stake_fraction=staking_config.max_stake_fraction,
            high_stake_threshold=staking_config.high_stake_threshold,
            min_stake_threshold=staking_config.min_stake_threshold,
            odds_math=odds_math
        )

    def recommended_fraction(self, full_kelly: float) -> float:
        """Capped fraction of bankroll: min(full * cap, ceiling)"""
        return min(max(0.0, full_kelly) * self.kelly_cap, self.max_stake_fraction)

    def stake(self, decimal_odds: float, probability: float) -> KellyStake:
        """
        Calculate Kelly stake fractions for one bet.

        Args:
            decimal_odds: Decimal odds offered
            probability: Estimated probability of winning

        Returns:
            KellyStake with full, half, quarter and recommended fractions
        """
        full_kelly = self.odds_math.kelly_fraction(decimal_odds, probability)
        recommended = self.recommended_fraction(full_kelly)

        return KellyStake(
            full_kelly_fraction=full_kelly,
            half_kelly_fraction=full_kelly * 0.5,
            quarter_kelly_fraction=full_kelly * 0.25,
            recommended_fraction=recommended,
            bankroll_allocation_percent=recommended * 100
        )

    def stake_tier(self, recommended: float) -> Severity:
        if recommended > self.high_stake_threshold:
            return Severity.HIGH
        if recommended > self.min_stake_threshold:
            return Severity.MEDIUM
        return Severity.LOW

    def stake_message(self, recommended: float) -> str:
        percent = recommended * 100
        tier = self.stake_tier(recommended)
        if tier == Severity.HIGH:
            return f"Significant edge warrants consideration. Recommended stake: {percent:.1f}% bankroll."
        if tier == Severity.MEDIUM:
            return f"Modest edge. Recommended stake: {percent:.1f}% bankroll."
        return f"Minimal edge. Consider minimum stake or passing. Recommended: {percent:.1f}% bankroll."
