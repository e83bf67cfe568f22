"""
Unit Tests for Capped Kelly Staking
"""

import pytest

from parlay_quant.betting.odds_utils import OddsMath
from parlay_quant.betting.staking import KellyStaking
from parlay_quant.core.models import Severity
from parlay_quant.utils.unified_config import StakingConfig


class TestKellyStaking:
    """Test suite for KellyStaking"""

    def setup_method(self):
        self.staking = KellyStaking()

    def test_stake_fractions(self):
        stake = self.staking.stake(2.5, 0.5)
        full = (1.5 * 0.5 - 0.5) / 1.5

        assert stake.full_kelly_fraction == pytest.approx(full)
        assert stake.half_kelly_fraction == pytest.approx(full / 2)
        assert stake.quarter_kelly_fraction == pytest.approx(full / 4)
        assert stake.recommended_fraction == pytest.approx(full * 0.25)
        assert stake.bankroll_allocation_percent == pytest.approx(full * 25)

    def test_recommended_fraction_capped_by_ceiling(self):
        # Full Kelly 0.8 -> quarter 0.2, above the 0.10 ceiling
        assert self.staking.recommended_fraction(0.8) == pytest.approx(0.10)

    def test_negative_kelly_never_recommended(self):
        assert self.staking.recommended_fraction(-0.3) == 0.0
        assert self.staking.stake(2.0, 0.3).recommended_fraction == 0.0

    def test_invalid_parameters(self):
        with pytest.raises(ValueError, match="Kelly cap"):
            KellyStaking(kelly_cap=0)
        with pytest.raises(ValueError, match="Stake ceiling"):
            KellyStaking(max_stake_fraction=1.5)

    @pytest.mark.parametrize("recommended,tier", [
        (0.05, Severity.HIGH),
        (0.021, Severity.HIGH),
        (0.02, Severity.MEDIUM),
        (0.006, Severity.MEDIUM),
        (0.005, Severity.LOW),
        (0.0, Severity.LOW),
    ])
    def test_stake_tier(self, recommended, tier):
        assert self.staking.stake_tier(recommended) == tier

    def test_stake_messages(self):
        assert self.staking.stake_message(0.03) == \
            "Significant edge warrants consideration. Recommended stake: 3.0% bankroll."
        assert self.staking.stake_message(0.0064) == "Modest edge. Recommended stake: 0.6% bankroll."
        assert self.staking.stake_message(0.001).startswith("Minimal edge. Consider minimum stake or passing.")

    def test_from_config(self):
        config = StakingConfig(kelly_cap=0.5, max_stake_fraction=0.05)
        staking = KellyStaking.from_config(config, OddsMath(0.05, 0.95))

        assert staking.kelly_cap == 0.5
        assert staking.max_stake_fraction == 0.05
        assert staking.odds_math.probability_ceiling == 0.95
