"""
Targeting step and efficient influence curve.

A run goes through INITIAL-FIT -> TARGET -> AGGREGATE:

1. fit the empty nuisance slots of the cache,
2. fit the fluctuation of the initial outcome model along the clever covariate,
3. average the signed counterfactual predictions of the initial and fluctuated
   outcome models, and compute both influence curves:

    IC(o) = H(t, w) (y - Q(t, w)) + Σ_t' c(t') Q(t', w) - ψ
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ..inference.estimates import EICEstimate, TMLEResult
from ..inference.variance import compute_std
from .cache import NuisanceFit, TMLECache
from .clever_covariate import clever_covariate_and_weights
from .fluctuation import Fluctuation, compute_offset, expected_value


def _treatment_frame(cache: TMLECache, data):
    return data[list(cache.estimand.treatments)]


def tmle_step(
    cache: TMLECache,
    threshold: float = 1e-8,
    weighted_fluctuation: bool = False,
    verbose: int = 1,
) -> TMLECache:
    """Fit the fluctuation on the complete-case view and cache its predictions."""
    complete = cache.data["complete_case"]
    offset = compute_offset(cache.data["initial_predictions"], cache.logit_offset)
    covariate, weights = clever_covariate_and_weights(
        _treatment_frame(cache, complete),
        complete,
        cache.propensity_fits,
        cache.data["indicators"],
        threshold=threshold,
        weighted_fluctuation=weighted_fluctuation,
    )
    y = cache.data["y"]
    fluctuation = Fluctuation(cache.spec.fluctuation_family()).fit(covariate, offset, y, weights)
    if verbose >= 2:
        print(f"  Fluctuation epsilon: {fluctuation.epsilon_:.6g}")

    keep = cache.spec.cache
    cache.fluctuation = NuisanceFit(
        descriptor=None,
        model=fluctuation,
        X=np.column_stack([covariate, offset]) if keep else None,
        y=y if keep else None,
    )
    cache.data["fluctuation_settings"] = (threshold, weighted_fluctuation)
    # H(t, w) in both weighted and unweighted modes
    cache.data["covariate"] = covariate * weights
    cache.data["fluctuated_predictions"] = fluctuation.predict_mean(covariate, offset)
    return cache


def counterfactual_aggregates(
    cache: TMLECache,
    threshold: float = 1e-8,
    weighted_fluctuation: bool = False,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Σ_t c(t) Q(t, w) for every complete-case row, with Q the fluctuated and the
    initial outcome model.

    Returns:
        (targeted aggregate, initial aggregate), both (n,)
    """
    complete = cache.data["complete_case"]
    treatments = list(cache.estimand.treatments)
    Q = cache.outcome_mean.model
    fluctuation = cache.fluctuation.model
    probabilistic = cache.logit_offset

    aggregate = np.zeros(len(complete))
    aggregate_initial = np.zeros(len(complete))
    for setting, sign in cache.data["indicators"].items():
        counterfactual = complete.copy()
        for treatment, level in zip(treatments, setting):
            counterfactual[treatment] = level

        predictions = expected_value(Q, cache.outcome_inputs(counterfactual))
        aggregate_initial += sign * predictions

        covariate, _ = clever_covariate_and_weights(
            counterfactual[treatments],
            counterfactual,
            cache.propensity_fits,
            cache.data["indicators"],
            threshold=threshold,
            weighted_fluctuation=weighted_fluctuation,
            warn=False,
        )
        offset = compute_offset(predictions, probabilistic)
        aggregate += sign * fluctuation.predict_mean(covariate, offset)
    return aggregate, aggregate_initial


def gradient_w(aggregate: np.ndarray, estimate: float) -> np.ndarray:
    """∇_W = aggregate - ψ"""
    return aggregate - estimate


def gradients_y_x(cache: TMLECache) -> Tuple[np.ndarray, np.ndarray]:
    """
    ∇_YX = H(t, w) (y - E[Y|t, w]) on the observed rows.

    Returns:
        (initial gradient, fluctuated gradient)
    """
    covariate = cache.data["covariate"]
    y = cache.data["y"]
    initial = covariate * (y - cache.data["initial_predictions"])
    fluctuated = covariate * (y - cache.data["fluctuated_predictions"])
    return initial, fluctuated


def gradient_and_estimates(
    cache: TMLECache,
    threshold: float = 1e-8,
    weighted_fluctuation: bool = False,
) -> Tuple[np.ndarray, float, np.ndarray, float]:
    """
    Returns:
        (IC, ψ̂, IC_initial, ψ̂_initial)
    """
    aggregate, aggregate_initial = counterfactual_aggregates(
        cache, threshold=threshold, weighted_fluctuation=weighted_fluctuation
    )
    estimate, estimate_initial = float(aggregate.mean()), float(aggregate_initial.mean())
    gradient_initial, gradient_fluct = gradients_y_x(cache)
    ic = gradient_fluct + gradient_w(aggregate, estimate)
    ic_initial = gradient_initial + gradient_w(aggregate_initial, estimate_initial)
    return ic, estimate, ic_initial, estimate_initial


def run_targeting(
    cache: TMLECache,
    threshold: float = 1e-8,
    weighted_fluctuation: bool = False,
    save_ic: bool = True,
    verbose: int = 1,
) -> TMLEResult:
    """
    Run TMLE for the cache's current estimand.

    Args:
        cache: Cache updated with an estimand and a nuisance specification
        threshold: Truncation level of the propensity density
        weighted_fluctuation: Fit a weighted fluctuation
        save_ic: Keep the influence curves on the estimates
        verbose: 0 silent, 1 progress, 2 timings

    Returns:
        TMLEResult with the targeted, one-step and initial estimates
    """
    if verbose >= 1:
        print("Fitting the nuisance functions...")
    cache.fit_nuisance(verbose=verbose)

    if verbose >= 1:
        print("Targeting the nuisance functions...")
    settings = (threshold, weighted_fluctuation)
    if cache.fluctuation is None or cache.data.get("fluctuation_settings") != settings:
        tmle_step(cache, threshold=threshold, weighted_fluctuation=weighted_fluctuation, verbose=verbose)
    elif verbose >= 1:
        print("Reusing previous fluctuation")

    ic, estimate, ic_initial, estimate_initial = gradient_and_estimates(
        cache, threshold=threshold, weighted_fluctuation=weighted_fluctuation
    )
    n = ic.shape[0]
    row_index = cache.data["complete_case"].index if save_ic else None

    tmle_estimate = EICEstimate(
        estimand=cache.estimand,
        estimate=estimate,
        std=compute_std(ic),
        n=n,
        ic=ic if save_ic else None,
        row_index=row_index,
        estimator="TMLE",
    )
    one_step = EICEstimate(
        estimand=cache.estimand,
        estimate=estimate_initial + float(ic_initial.mean()),
        std=compute_std(ic_initial),
        n=n,
        ic=ic_initial if save_ic else None,
        row_index=row_index,
        estimator="OSE",
    )

    if verbose >= 1:
        print("Done.")
    return TMLEResult(
        estimand=cache.estimand,
        tmle=tmle_estimate,
        ose=one_step,
        initial_estimate=estimate_initial,
    )
