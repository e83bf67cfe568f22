"""
Covariance estimation with shrinkage.
Builds the asset covariance matrix from volatilities and pairwise
correlations, or from historical return series, and shrinks it toward a
scaled identity target.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.covariance import ledoit_wolf_shrinkage

from ..core.models import Asset
from ..utils.logging_config import CovarianceError, InputError

logger = logging.getLogger(__name__)


@dataclass
class CovarianceEstimate:
    """Container for a shrunk covariance matrix."""
    asset_ids: Tuple[str, ...]
    raw: np.ndarray
    matrix: np.ndarray
    shrinkage: float
    method: str

    @property
    def volatilities(self) -> np.ndarray:
        """Standalone volatilities implied by the raw matrix"""
        return np.sqrt(np.diag(self.raw))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.matrix, index=list(self.asset_ids), columns=list(self.asset_ids))


class CovarianceEstimator:
    """
    Covariance matrix builder with Ledoit-Wolf style shrinkage.

    The shrinkage target is mean(diag(S)) * I. When no intensity is
    supplied, the parametric path uses n_assets / (n_assets + sample_size)
    and the historical path uses scikit-learn's Ledoit-Wolf estimate.
    """

    METHODS = ('parametric', 'historical', 'auto')

    def __init__(
        self,
        default_correlation: float = 0.2,
        shrinkage_intensity: Optional[float] = None,
        sample_size: int = 60,
        method: str = 'parametric',
        psd_tolerance: float = 1e-10
    ):
        """
        Initialize covariance estimator.

        Args:
            default_correlation: Correlation for pairs with no explicit value
            shrinkage_intensity: Fixed intensity in [0, 1], None to derive it
            sample_size: Reference sample size for the derived intensity
            method: 'parametric', 'historical' or 'auto'
            psd_tolerance: Most negative eigenvalue accepted as PSD
        """
        if not -1 <= default_correlation <= 1:
            raise ValueError(f"Default correlation must be in [-1, 1]: {default_correlation}")
        if shrinkage_intensity is not None and not 0 <= shrinkage_intensity <= 1:
            raise ValueError(f"Shrinkage intensity must be in [0, 1]: {shrinkage_intensity}")
        if method not in self.METHODS:
            raise ValueError(f"Unknown covariance method: {method}")

        self.default_correlation = default_correlation
        self.shrinkage_intensity = shrinkage_intensity
        self.sample_size = sample_size
        self.method = method
        self.psd_tolerance = psd_tolerance

    @classmethod
    def from_config(cls, correlation_config) -> 'CovarianceEstimator':
        return cls(
            default_correlation=correlation_config.default_asset_correlation,
            shrinkage_intensity=correlation_config.shrinkage_intensity,
            sample_size=correlation_config.shrinkage_sample_size,
            method=correlation_config.covariance_method,
            psd_tolerance=correlation_config.psd_tolerance
        )

    def estimate(self, assets: Sequence[Asset]) -> CovarianceEstimate:
        """
        Estimate the covariance matrix of the assets.

        Raises:
            InputError: Invalid volatilities or correlations
            CovarianceError: Shrunk matrix is not positive semi-definite
        """
        if self._use_history(assets):
            frame = pd.DataFrame({asset.asset_id: list(asset.returns) for asset in assets})
            return self.from_returns(frame)
        return self.from_assets(assets)

    def from_assets(self, assets: Sequence[Asset]) -> CovarianceEstimate:
        """Parametric estimate from volatilities and pairwise correlations"""
        asset_ids = tuple(asset.asset_id for asset in assets)
        vols = np.array([self._volatility(asset) for asset in assets])
        correlation = self.correlation_matrix(assets)

        raw = correlation * np.outer(vols, vols)
        intensity = self._intensity(len(assets))
        return self._finish(asset_ids, raw, intensity, 'parametric')

    def from_returns(self, returns: pd.DataFrame) -> CovarianceEstimate:
        """Historical estimate from a DataFrame with one column per asset"""
        clean = returns.dropna()
        if clean.shape[1] == 0 or clean.shape[0] < 2:
            raise InputError(
                f"Historical covariance needs at least 2 complete observations, got {clean.shape[0]}",
                field='returns'
            )

        raw = clean.cov().to_numpy(dtype=float)
        if self.shrinkage_intensity is not None:
            intensity = self.shrinkage_intensity
        else:
            intensity = float(ledoit_wolf_shrinkage(clean.to_numpy(dtype=float)))

        asset_ids = tuple(str(column) for column in clean.columns)
        return self._finish(asset_ids, raw, intensity, 'historical')

    def correlation_matrix(self, assets: Sequence[Asset]) -> np.ndarray:
        """
        Pairwise correlations with lookup order i->j, j->i, default.

        Conflicting explicit values for the same pair are rejected.
        """
        n_assets = len(assets)
        matrix = np.eye(n_assets)

        for i in range(n_assets):
            for j in range(i + 1, n_assets):
                rho = self._pair_correlation(assets[i], assets[j])
                matrix[i, j] = matrix[j, i] = rho

        return matrix

    def _pair_correlation(self, asset_i: Asset, asset_j: Asset) -> float:
        forward = asset_i.correlations.get(asset_j.asset_id)
        backward = asset_j.correlations.get(asset_i.asset_id)

        for value in (forward, backward):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) \
                    or not math.isfinite(value) or not -1 <= value <= 1:
                raise InputError(
                    f"Correlation between {asset_i.asset_id} and {asset_j.asset_id} "
                    f"must be in [-1, 1]: {value}",
                    field='correlations'
                )

        if forward is not None and backward is not None and not math.isclose(forward, backward):
            raise InputError(
                f"Conflicting correlations for {asset_i.asset_id}/{asset_j.asset_id}: "
                f"{forward} vs {backward}",
                field='correlations'
            )

        if forward is not None:
            return float(forward)
        if backward is not None:
            return float(backward)
        return self.default_correlation

    @staticmethod
    def _volatility(asset: Asset) -> float:
        vol = asset.volatility
        if isinstance(vol, bool) or not isinstance(vol, (int, float)) or not math.isfinite(vol) or vol < 0:
            raise InputError(f"Volatility of {asset.asset_id} must be a finite number >= 0: {vol}",
                             field='volatility')
        return float(vol)

    def _intensity(self, n_assets: int) -> float:
        if self.shrinkage_intensity is not None:
            return self.shrinkage_intensity
        return n_assets / (n_assets + self.sample_size)

    def _use_history(self, assets: Sequence[Asset]) -> bool:
        if self.method == 'parametric':
            return False

        lengths = {len(asset.returns) if asset.returns else 0 for asset in assets}
        usable = len(lengths) == 1 and min(lengths) >= 2
        if self.method == 'historical' and not usable:
            raise InputError(
                "Historical covariance requires equal-length return series (>= 2) for every asset",
                field='returns'
            )
        return usable

    def _finish(self, asset_ids: Tuple[str, ...], raw: np.ndarray, intensity: float,
                method: str) -> CovarianceEstimate:
        shrunk = shrink(raw, intensity)
        self.ensure_psd(shrunk)

        logger.debug(f"Covariance estimated ({method}) for {len(asset_ids)} assets, "
                     f"shrinkage={intensity:.4f}")
        return CovarianceEstimate(
            asset_ids=asset_ids,
            raw=raw,
            matrix=shrunk,
            shrinkage=float(intensity),
            method=method
        )

    def ensure_psd(self, matrix: np.ndarray) -> None:
        """Raise CovarianceError unless the matrix is symmetric PSD"""
        if not np.allclose(matrix, matrix.T):
            raise CovarianceError("Covariance matrix is not symmetric")

        min_eigenvalue = float(np.linalg.eigvalsh(matrix).min())
        if min_eigenvalue < -self.psd_tolerance:
            raise CovarianceError(
                f"Covariance matrix is not positive semi-definite "
                f"(min eigenvalue {min_eigenvalue:.3e})",
                min_eigenvalue=min_eigenvalue
            )


def shrinkage_target(matrix: np.ndarray) -> np.ndarray:
    """Scaled identity mean(diag) * I"""
    n_assets = matrix.shape[0]
    return np.eye(n_assets) * float(np.mean(np.diag(matrix)))


def shrink(matrix: np.ndarray, intensity: float) -> np.ndarray:
    """(1 - lambda) * S + lambda * target, symmetrized"""
    shrunk = (1 - intensity) * matrix + intensity * shrinkage_target(matrix)
    return (shrunk + shrunk.T) / 2
