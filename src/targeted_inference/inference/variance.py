"""
Variance estimation from influence curves.

For an asymptotically linear estimator with influence curve IC:
    Var(ψ̂) ≈ Var(IC) / n
    SE = sd(IC) / √n
"""

from typing import Optional, Tuple

import numpy as np
from scipy import stats


def estimate_variance(ic: np.ndarray, center: Optional[float] = None, use_bessel: bool = True) -> float:
    """
    Empirical variance of the influence curve, Σ (ICᵢ - c)² / (n - 1).

    Args:
        ic: (n,) influence curve values
        center: Centering value (if None, the mean of ic)
        use_bessel: Divide by n - 1 instead of n

    Returns:
        Variance estimate
    """
    ic = np.asarray(ic, dtype=float)
    if center is None:
        center = ic.mean()
    dof = ic.shape[0] - 1 if use_bessel else ic.shape[0]
    return float(((ic - center) ** 2).sum() / dof)


def compute_std(ic: np.ndarray, use_bessel: bool = True) -> float:
    """Standard deviation of the influence curve; SE = std / √n."""
    return estimate_variance(ic, use_bessel=use_bessel) ** 0.5


def compute_confidence_interval(
    estimate: float,
    se: float,
    alpha: float = 0.05,
) -> Tuple[float, float]:
    """
    Normal approximation confidence interval.

    CI = [ψ̂ - z_{α/2} × SE, ψ̂ + z_{α/2} × SE]

    Args:
        estimate: Point estimate
        se: Standard error
        alpha: Significance level (default: 0.05 for 95% CI)

    Returns:
        (lower, upper) confidence interval bounds
    """
    z = stats.norm.ppf(1 - alpha / 2)
    return estimate - z * se, estimate + z * se


def covariance_matrix(ic_matrix: np.ndarray) -> np.ndarray:
    """(k, k) empirical covariance of the columns of an (n, k) IC matrix."""
    return np.atleast_2d(np.cov(ic_matrix, rowvar=False))
