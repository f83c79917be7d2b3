"""
Offset computation and the fluctuation submodel.

The fluctuation is a one-parameter GLM of the outcome on the clever covariate
H with the initial outcome-model prediction held fixed as an offset:

    link(E*[Y|T,W]) = link(E₀[Y|T,W]) + ε H(T,W)

fitted without intercept, with a logit link for binary outcomes and the
identity link otherwise.
"""

from __future__ import annotations

import numpy as np
import statsmodels.api as sm
from scipy.special import logit
from sklearn.base import is_classifier

from .._typing import ArrayLike, Float64Array

OFFSET_CLIP = 1e-8

FAMILIES = {
    "binomial": sm.families.Binomial,
    "gaussian": sm.families.Gaussian,
}


def expected_value(model, X) -> Float64Array:
    """E[Y|X] from a fitted model; P(Y = last class) for classifiers."""
    if is_classifier(model):
        return np.asarray(model.predict_proba(X)[:, -1], dtype=np.float64)
    return np.asarray(model.predict(X), dtype=np.float64).ravel()


def compute_offset(predictions: ArrayLike, probabilistic: bool) -> Float64Array:
    """
    Fixed offset of the fluctuation.

    Args:
        predictions: (n,) E₀[Y|T,W]
        probabilistic: True when E₀ is a probability of a binary outcome

    Returns:
        logit(predictions) if probabilistic, else predictions
    """
    predictions = np.asarray(predictions, dtype=np.float64)
    if probabilistic:
        return logit(np.clip(predictions, OFFSET_CLIP, 1 - OFFSET_CLIP))
    return predictions


class Fluctuation:
    """One-dimensional fluctuation submodel with a fixed offset.

    Parameters
    ----------
    family : str
        "binomial" (logit link) or "gaussian" (identity link).
    """

    def __init__(self, family: str = "gaussian"):
        if family not in FAMILIES:
            raise ValueError(f"Unknown fluctuation family '{family}'. Expected one of {list(FAMILIES)}.")
        self.family = family

    def fit(self, covariate: ArrayLike, offset: ArrayLike, y: ArrayLike, weights: ArrayLike | None = None) -> "Fluctuation":
        covariate = np.asarray(covariate, dtype=np.float64)
        self.glm_ = sm.GLM(
            np.asarray(y, dtype=np.float64),
            covariate.reshape(-1, 1),
            family=FAMILIES[self.family](),
            offset=np.asarray(offset, dtype=np.float64),
            var_weights=None if weights is None else np.asarray(weights, dtype=np.float64),
        )
        self.result_ = self.glm_.fit()
        self.epsilon_ = float(self.result_.params[0])
        return self

    def predict_mean(self, covariate: ArrayLike, offset: ArrayLike) -> Float64Array:
        linear = np.asarray(offset, dtype=np.float64) + self.epsilon_ * np.asarray(covariate, dtype=np.float64)
        return self.glm_.family.fitted(linear)

    def __repr__(self) -> str:
        eps = getattr(self, "epsilon_", None)
        return f"Fluctuation(family={self.family!r}" + (f", epsilon={eps:.6g})" if eps is not None else ")")
