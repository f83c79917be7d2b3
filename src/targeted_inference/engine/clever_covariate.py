"""
Clever covariate of the fluctuation submodel.

For an estimand with indicator coefficients c(t) over joint treatment values:

    H(t, w) = c(t) / g(t | w),     g(t | w) = Π_j P(T_j = t_j | W_j = w_j)

with g truncated into [threshold, 1 - threshold]. Rows whose treatment
setting does not enter the estimand have H = 0.
"""

import warnings
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .._typing import Float64Array

TRUNCATION_WARNING_SHARE = 0.1


def _str_key(values) -> tuple:
    return tuple(str(v) for v in values)


def indicator_values(indicators: Mapping[tuple, float], treatments: pd.DataFrame) -> Float64Array:
    """
    Coefficient c(t) of every row's joint treatment value.

    ``treatments`` columns must be ordered like the indicator keys. Levels are
    matched on their string representation.
    """
    lookup = {_str_key(k): coef for k, coef in indicators.items()}
    return np.array(
        [lookup.get(_str_key(row), 0.0) for row in treatments.itertuples(index=False)],
        dtype=np.float64,
    )


def propensity_features(data: pd.DataFrame, confounders: Sequence[str]) -> pd.DataFrame:
    """Inputs of a propensity model; a constant column when there are no confounders."""
    if not confounders:
        return pd.DataFrame({"intercept": np.ones(len(data))}, index=data.index)
    return data[list(confounders)]


def treatment_density(model, X: pd.DataFrame, levels: pd.Series) -> Float64Array:
    """P(T = level_i | X_i) for each row from a fitted classifier."""
    proba = model.predict_proba(X)
    class_position = {str(c): i for i, c in enumerate(model.classes_)}
    positions = np.array([class_position.get(str(v), -1) for v in levels])
    density = np.zeros(len(levels))
    known = positions >= 0
    density[known] = proba[np.flatnonzero(known), positions[known]]
    return density


def joint_density(treatments: pd.DataFrame, data: pd.DataFrame, propensity_fits: Sequence) -> Float64Array:
    """Product over treatments of the per-treatment densities."""
    density = np.ones(len(treatments))
    for fit in propensity_fits:
        descriptor = fit.descriptor
        X = propensity_features(data, descriptor.parents)
        density *= treatment_density(fit.model, X, treatments[descriptor.outcome])
    return density


def truncate(density: np.ndarray, threshold: float) -> Float64Array:
    return np.clip(density, threshold, 1 - threshold)


def clever_covariate_and_weights(
    treatments: pd.DataFrame,
    data: pd.DataFrame,
    propensity_fits: Sequence,
    indicators: Dict[tuple, float],
    threshold: float = 0.005,
    weighted_fluctuation: bool = False,
    warn: bool = True,
) -> Tuple[Float64Array, Float64Array]:
    """
    Compute the fluctuation covariate and regression weights.

    Args:
        treatments: (n, k) treatment values, columns ordered like the indicator keys
        data: Frame holding the confounder columns for the same rows
        propensity_fits: Fitted propensity records (``descriptor``, ``model``)
        indicators: Output of :func:`indicator_fns`
        threshold: Truncation level of the propensity density
        weighted_fluctuation: If True, the covariate is sign(c(t)) and the
            weights are |c(t)| / g(t|w); otherwise the covariate is H and
            weights are 1
        warn: Emit warnings about degenerate covariates

    Returns:
        (covariate, weights), both (n,)
    """
    indic = indicator_values(indicators, treatments)
    raw_density = joint_density(treatments, data, propensity_fits)
    density = truncate(raw_density, threshold)

    if warn:
        relevant = indic != 0
        if not relevant.any():
            warnings.warn(
                "Clever covariate is zero for every observation: no observed treatment "
                "matches the estimand's treatment values.",
                UserWarning,
                stacklevel=2,
            )
        else:
            share = np.mean(raw_density[relevant] < threshold)
            if share > TRUNCATION_WARNING_SHARE:
                warnings.warn(
                    f"{share:.1%} of propensity scores were truncated at {threshold}. "
                    "Positivity may be violated, expect wide confidence intervals.",
                    UserWarning,
                    stacklevel=2,
                )

    if weighted_fluctuation:
        # rows with c(t) = 0 have a zero covariate, their weight does not enter the score
        return np.sign(indic), np.where(indic != 0, np.abs(indic), 1.0) / density
    return indic / density, np.ones_like(indic)
