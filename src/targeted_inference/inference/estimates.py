"""Result containers for asymptotically linear estimates.

Each estimate carries its influence curve (IC) so that it can later be
composed with other estimates computed on the same sample, see
:func:`targeted_inference.inference.composition.compose`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

import numpy as np
import pandas as pd

from ..estimands.base import ESTIMAND_FORMULAS
from ..utils.formatting import (
    compute_z_and_pvalue,
    format_estimate_table,
    format_short_repr,
    format_summary_header,
)
from .variance import compute_confidence_interval


@dataclass
class EICEstimate:
    """Univariate estimate with its efficient influence curve.

    Attributes
    ----------
    estimand : Any
        The statistical estimand this is an estimate of.
    estimate : float
        Point estimate.
    std : float
        Standard deviation of the influence curve.
    n : int
        Number of observations the influence curve was evaluated on.
    ic : np.ndarray, optional
        (n,) influence curve, None once dropped.
    row_index : pd.Index, optional
        Dataset row labels matching ``ic``, used to align curves computed on
        different complete-case subsets.
    """

    estimand: Any
    estimate: float
    std: float
    n: int
    ic: Optional[np.ndarray] = None
    row_index: Optional[pd.Index] = None
    estimator: str = "TMLE"

    @property
    def var(self) -> float:
        """Variance of the estimate, Var(IC)/n."""
        return self.std**2 / self.n

    @property
    def se(self) -> float:
        return self.std / np.sqrt(self.n)

    @property
    def cov(self) -> np.ndarray:
        """(1, 1) covariance of the influence curve."""
        return np.array([[self.std**2]])

    @property
    def zvalue(self) -> float:
        return compute_z_and_pvalue(self.estimate, self.se)[0]

    @property
    def pvalue(self) -> float:
        """Two-sided p-value of H0: ψ = 0 under the normal approximation."""
        return compute_z_and_pvalue(self.estimate, self.se)[1]

    def confint(self, alpha: float = 0.05) -> tuple:
        return compute_confidence_interval(self.estimate, self.se, alpha)

    def drop_ic(self) -> "EICEstimate":
        """Copy without the influence curve, to save memory."""
        return replace(self, ic=None, row_index=None)

    def summary(self, alpha: float = 0.05) -> str:
        lo, hi = self.confint(alpha)
        lines = [
            format_summary_header(
                f"{self.estimator} Results", estimand=str(self.estimand), n_obs=self.n, estimator=self.estimator
            ),
            format_estimate_table(["psi"], [self.estimate], [self.se], [lo], [hi], alpha=alpha),
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        lo, hi = self.confint()
        return format_short_repr(type(self).__name__, self.estimate, self.se, lo, hi)


@dataclass
class TMLEResult:
    """Targeted and one-step estimates of a single estimand.

    Attributes
    ----------
    estimand : Any
        The statistical estimand.
    tmle : EICEstimate
        Targeted maximum likelihood estimate.
    ose : EICEstimate
        One-step estimate: initial plug-in corrected by the mean of its IC.
    initial_estimate : float
        Plug-in estimate from the initial outcome model.
    """

    estimand: Any
    tmle: EICEstimate
    ose: EICEstimate
    initial_estimate: float

    def drop_ic(self) -> "TMLEResult":
        return replace(self, tmle=self.tmle.drop_ic(), ose=self.ose.drop_ic())

    def summary(self, alpha: float = 0.05) -> str:
        rows = [("TMLE", self.tmle), ("OSE", self.ose)]
        cis = [est.confint(alpha) for _, est in rows]
        lines = [
            format_summary_header(
                "Targeted Estimation Results", estimand=str(self.estimand), n_obs=self.tmle.n
            ),
            format_estimate_table(
                [name for name, _ in rows],
                [est.estimate for _, est in rows],
                [est.se for _, est in rows],
                [lo for lo, _ in cis],
                [hi for _, hi in cis],
                alpha=alpha,
            ),
            f"Initial plug-in estimate: {self.initial_estimate:.4f}",
        ]
        formula = ESTIMAND_FORMULAS.get(getattr(self.estimand, "kind", None))
        if formula is not None:
            lines.append(formula)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"<TMLEResult: tmle={self.tmle.estimate:.4f} (se={self.tmle.se:.4f}), "
            f"ose={self.ose.estimate:.4f} (se={self.ose.se:.4f})>"
        )


@dataclass
class ComposedEstimate:
    """Estimate of a function of other estimands, obtained by the delta method.

    Attributes
    ----------
    estimand : Any
        The composed estimand.
    estimate : np.ndarray
        (d,) point estimate, d = 1 for a univariate composition.
    cov : np.ndarray
        (d, d) covariance of the composed influence curve. The covariance of
        the estimate itself is ``cov / n``.
    n : int
        Number of observations.
    ic : np.ndarray, optional
        (n, d) composed influence curve.
    row_index : pd.Index, optional
        Row labels matching ``ic``.
    """

    estimand: Any
    estimate: np.ndarray
    cov: np.ndarray
    n: int
    ic: Optional[np.ndarray] = None
    row_index: Optional[pd.Index] = None

    @property
    def is_univariate(self) -> bool:
        return self.estimate.shape[0] == 1

    @property
    def vcov(self) -> np.ndarray:
        return self.cov / self.n

    @property
    def std(self) -> np.ndarray:
        return np.sqrt(np.diag(self.cov))

    @property
    def se(self) -> np.ndarray:
        return np.sqrt(np.diag(self.vcov))

    @property
    def var(self) -> np.ndarray:
        return np.diag(self.vcov)

    def confint(self, alpha: float = 0.05) -> pd.DataFrame:
        """Marginal normal-approximation intervals, one row per coordinate."""
        lower, upper = compute_confidence_interval(self.estimate, self.se, alpha)
        return pd.DataFrame({"lower": lower, "upper": upper})

    def drop_ic(self) -> "ComposedEstimate":
        return replace(self, ic=None, row_index=None)

    def summary(self, alpha: float = 0.05) -> str:
        ci = self.confint(alpha)
        names = [f"psi[{i}]" for i in range(self.estimate.shape[0])]
        lines = [
            format_summary_header("Composed Estimate", estimand=str(self.estimand), n_obs=self.n),
            format_estimate_table(names, self.estimate, self.se, ci["lower"], ci["upper"], alpha=alpha),
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        if self.is_univariate:
            ci = self.confint()
            return format_short_repr(
                type(self).__name__, self.estimate[0], self.se[0], ci["lower"][0], ci["upper"][0]
            )
        return f"<ComposedEstimate: dim={self.estimate.shape[0]}, n={self.n}>"
