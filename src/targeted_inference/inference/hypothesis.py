"""
One-sample tests based on influence-curve variances.

Univariate estimates are tested with a z or Student t test, multivariate
(joint) estimates with Hotelling's T².
"""

from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from .estimates import ComposedEstimate, EICEstimate

Estimate = Union[EICEstimate, ComposedEstimate]


def _moments(estimate: Estimate) -> Tuple[np.ndarray, np.ndarray, int]:
    """(point estimate (d,), IC covariance (d, d), n)."""
    point = np.atleast_1d(np.asarray(estimate.estimate, dtype=float))
    return point, np.atleast_2d(estimate.cov), int(estimate.n)


def _univariate_moments(estimate: Estimate) -> Tuple[float, float, int]:
    point, cov, n = _moments(estimate)
    if point.shape[0] != 1:
        raise ValueError(
            f"Test requires a univariate estimate, got dimension {point.shape[0]}. "
            "Use OneSampleHotellingT2Test instead."
        )
    return float(point[0]), float(np.sqrt(cov[0, 0] / n)), n


@dataclass
class OneSampleZTest:
    """Normal approximation test of H0: ψ = mu0."""

    estimate: Estimate
    mu0: float = 0.0

    @property
    def statistic(self) -> float:
        point, se, _ = _univariate_moments(self.estimate)
        return (point - self.mu0) / se

    @property
    def pvalue(self) -> float:
        return float(2 * stats.norm.sf(abs(self.statistic)))

    def confint(self, alpha: float = 0.05) -> Tuple[float, float]:
        point, se, _ = _univariate_moments(self.estimate)
        z = stats.norm.ppf(1 - alpha / 2)
        return point - z * se, point + z * se


@dataclass
class OneSampleTTest:
    """Student t test of H0: ψ = mu0 with n - 1 degrees of freedom."""

    estimate: Estimate
    mu0: float = 0.0

    @property
    def df(self) -> int:
        return int(self.estimate.n) - 1

    @property
    def statistic(self) -> float:
        point, se, _ = _univariate_moments(self.estimate)
        return (point - self.mu0) / se

    @property
    def pvalue(self) -> float:
        return float(2 * stats.t.sf(abs(self.statistic), self.df))

    def confint(self, alpha: float = 0.05) -> Tuple[float, float]:
        point, se, _ = _univariate_moments(self.estimate)
        q = stats.t.ppf(1 - alpha / 2, self.df)
        return point - q * se, point + q * se


@dataclass
class OneSampleHotellingT2Test:
    """
    Hotelling's T² test of H0: ψ = mu0 for a d-dimensional estimate.

    T² = n (ψ̂ - mu0)ᵀ Σ⁻¹ (ψ̂ - mu0) and (n - d) / (d (n - 1)) T² ~ F(d, n - d).
    """

    estimate: Estimate
    mu0: Union[float, np.ndarray] = 0.0

    @property
    def dim(self) -> int:
        return _moments(self.estimate)[0].shape[0]

    @property
    def statistic(self) -> float:
        point, cov, n = _moments(self.estimate)
        diff = point - np.broadcast_to(self.mu0, point.shape)
        return float(n * diff @ np.linalg.pinv(cov) @ diff)

    @property
    def pvalue(self) -> float:
        n = int(self.estimate.n)
        d = self.dim
        f_stat = (n - d) / (d * (n - 1)) * self.statistic
        return float(stats.f.sf(f_stat, d, n - d))

    def confint(self, alpha: float = 0.05) -> pd.DataFrame:
        """Simultaneous T² intervals, one row per coordinate."""
        point, cov, n = _moments(self.estimate)
        d = point.shape[0]
        radius = np.sqrt(d * (n - 1) / (n - d) * stats.f.ppf(1 - alpha, d, n - d))
        half_width = radius * np.sqrt(np.diag(cov) / n)
        return pd.DataFrame({"lower": point - half_width, "upper": point + half_width})


def significance_test(estimate: Estimate, mu0=0.0):
    """T test for univariate estimates, Hotelling's T² for multivariate ones."""
    if _moments(estimate)[0].shape[0] == 1:
        return OneSampleTTest(estimate, mu0)
    return OneSampleHotellingT2Test(estimate, mu0)
