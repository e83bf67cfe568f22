"""
Parlay correlation estimation for multi-leg bets.
Derives a leg correlation matrix from the closed correlation tags, a combined
correlation score and the probability adjustment for correlated legs.
"""

import logging
from typing import Sequence

import numpy as np

from ..core.models import CorrelationTag, Leg

logger = logging.getLogger(__name__)


class LegCorrelationModel:
    """
    Estimates correlation between parlay legs from their tags.
    """

    def __init__(
        self,
        pair_correlation: float = 0.35,
        leg_penalty: float = 0.02
    ):
        """
        Initialize leg correlation model.

        Args:
            pair_correlation: Correlation magnitude assigned to a tagged pair
            leg_penalty: Probability haircut per high positive leg
        """
        if not 0 <= pair_correlation < 1:
            raise ValueError(f"Pair correlation must be in [0, 1): {pair_correlation}")
        if not 0 <= leg_penalty < 1:
            raise ValueError(f"Leg penalty must be in [0, 1): {leg_penalty}")

        self.pair_correlation = pair_correlation
        self.leg_penalty = leg_penalty

    @classmethod
    def from_config(cls, correlation_config) -> 'LegCorrelationModel':
        return cls(
            pair_correlation=correlation_config.high_positive_pair_correlation,
            leg_penalty=correlation_config.high_positive_leg_penalty
        )

    def pair_value(self, tag1: CorrelationTag, tag2: CorrelationTag) -> float:
        """Correlation between two legs given their tags"""
        if CorrelationTag.NEGATIVE in (tag1, tag2):
            return -self.pair_correlation
        if tag1 == tag2 == CorrelationTag.POSITIVE_HIGH:
            return self.pair_correlation
        return 0.0

    def correlation_matrix(self, legs: Sequence[Leg]) -> np.ndarray:
        """
        Tag-derived leg correlation matrix.

        Tag combinations that are not jointly consistent (e.g. many mutually
        negative legs) are shrunk toward the identity just far enough to be
        positive semi-definite.
        """
        n_legs = len(legs)
        tags = [leg.correlation_tag for leg in legs]
        matrix = np.eye(n_legs)

        for i in range(n_legs):
            for j in range(i + 1, n_legs):
                matrix[i, j] = matrix[j, i] = self.pair_value(tags[i], tags[j])

        if n_legs == 0:
            return matrix

        min_eigenvalue = float(np.linalg.eigvalsh(matrix).min())
        if min_eigenvalue < 0:
            # eigenvalues of (1 - a) C + a I are (1 - a) l + a
            intensity = -min_eigenvalue / (1 - min_eigenvalue)
            logger.debug(f"Leg correlation matrix shrunk by {intensity:.4f} toward identity")
            matrix = (1 - intensity) * matrix + intensity * np.eye(n_legs)

        return matrix

    def correlation_score(self, legs: Sequence[Leg]) -> float:
        """
        Combined correlation score of a parlay.

        Uses the largest score supplied on the legs; otherwise the mean
        off-diagonal entry of the tag-derived matrix.
        """
        supplied = [leg.correlation_score for leg in legs if leg.correlation_score is not None]
        if supplied:
            return float(max(supplied))

        if len(legs) < 2:
            return 0.0

        matrix = self.correlation_matrix(legs)
        upper = matrix[np.triu_indices(len(legs), k=1)]
        return float(upper.mean())

    def count_high_positive(self, legs: Sequence[Leg]) -> int:
        return sum(1 for leg in legs if leg.correlation_tag == CorrelationTag.POSITIVE_HIGH)

    def has_negative(self, legs: Sequence[Leg]) -> bool:
        return any(leg.correlation_tag == CorrelationTag.NEGATIVE for leg in legs)

    def adjustment_factor(self, legs: Sequence[Leg]) -> float:
        """Multiplier applied to the joint probability, (1 - penalty) per high positive leg"""
        return (1 - self.leg_penalty) ** self.count_high_positive(legs)
