"""High level estimation API.

This module ties identification, the nuisance cache and the targeting engine
together:

- :func:`tmle` estimates one CM/ATE/IATE,
- :func:`estimate_composed` estimates every component of a composed estimand
  on a shared cache and combines them by the delta method,
- :class:`TMLEstimator` wraps both behind an sklearn-style estimator.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple, Union

import pandas as pd
from sklearn.base import BaseEstimator
from sklearn.linear_model import LinearRegression, LogisticRegression
from tqdm import tqdm

from .engine.cache import NuisanceSpec, TMLECache
from .engine.encoder import TreatmentEncoder
from .engine.targeting import run_targeting
from .estimands.composed import ComposedEstimand
from .inference.composition import compose
from .inference.estimates import ComposedEstimate, TMLEResult
from .scheduling.ordering import brute_force_ordering, groups_ordering
from .scm.adjustment import BackdoorAdjustment, identify
from .scm.graph import SCM

ORDERINGS = ("groups", "brute_force", "given")
ESTIMATORS = ("tmle", "ose")


def tmle(
    estimand,
    spec: NuisanceSpec,
    dataset: pd.DataFrame,
    scm: Optional[SCM] = None,
    adjustment: BackdoorAdjustment = BackdoorAdjustment(),
    cache: Optional[TMLECache] = None,
    **kwargs,
) -> Tuple[TMLEResult, TMLECache]:
    """
    Estimate a CM, ATE or IATE by TMLE.

    Args:
        estimand: Statistical estimand, or causal estimand together with ``scm``
        spec: Nuisance learners
        dataset: Data
        scm: Causal graph used to identify causal estimands
        adjustment: Identification method
        cache: Existing cache on the same dataset to reuse fits from
        **kwargs: threshold, weighted_fluctuation, save_ic, verbose

    Returns:
        (TMLEResult, TMLECache)
    """
    if scm is not None:
        estimand = identify(estimand, scm, adjustment)
    if cache is None:
        cache = TMLECache(dataset)
    cache.update(estimand=estimand, spec=spec)
    return run_targeting(cache, **kwargs), cache


def _order_leaves(leaves, ordering: str, verbose: int):
    if ordering == "groups":
        return groups_ordering(leaves, verbose=verbose)
    if ordering == "brute_force":
        return brute_force_ordering(leaves, verbose=verbose)[0]
    if ordering == "given":
        return list(leaves)
    raise ValueError(f"Unknown ordering '{ordering}'. Expected one of {ORDERINGS}.")


def _evaluate(node, results: Dict[Any, TMLEResult], estimator: str):
    if isinstance(node, ComposedEstimand):
        args = [_evaluate(arg, results, estimator) for arg in node.args]
        return compose(node.f, *args, estimand=node)
    return getattr(results[node], estimator)


def estimate_composed(
    composed: ComposedEstimand,
    spec: Union[NuisanceSpec, Callable[[str], NuisanceSpec]],
    dataset: pd.DataFrame,
    cache: Optional[TMLECache] = None,
    scm: Optional[SCM] = None,
    adjustment: BackdoorAdjustment = BackdoorAdjustment(),
    estimator: str = "tmle",
    ordering: str = "groups",
    verbose: int = 1,
    **kwargs,
) -> Tuple[ComposedEstimate, Dict[Any, TMLEResult], TMLECache]:
    """
    Estimate a composed estimand.

    Every distinct component is estimated once, in scheduler order, on a
    single cache so that shared nuisance fits are reused. Components are then
    combined with :func:`compose`.

    Args:
        composed: The composed estimand
        spec: Nuisance learners, or a callable mapping an outcome name to
            the learners of that outcome, called before each component
        dataset: Data
        cache: Existing cache on the same dataset
        scm: Causal graph used to identify causal components
        adjustment: Identification method
        estimator: "tmle" or "ose", which estimate of each component to compose
        ordering: "groups", "brute_force" or "given"
        verbose: 0 silent, 1 progress bar, 2 per-estimand progress
        **kwargs: threshold, weighted_fluctuation

    Returns:
        (ComposedEstimate, component results, cache)
    """
    if estimator not in ESTIMATORS:
        raise ValueError(f"Unknown estimator '{estimator}'. Expected one of {ESTIMATORS}.")
    if scm is not None:
        composed = identify(composed, scm, adjustment)
    if cache is None:
        cache = TMLECache(dataset)
    spec_factory = None if isinstance(spec, NuisanceSpec) else spec
    if spec_factory is None:
        cache.update(spec=spec)

    leaves = _order_leaves(composed.leaves(), ordering, verbose=verbose - 1)
    results: Dict[Any, TMLEResult] = {}
    for leaf in tqdm(leaves, desc="Estimands", disable=verbose < 1):
        if spec_factory is None:
            cache.update(estimand=leaf)
        else:
            cache.update(estimand=leaf, spec=spec_factory(leaf.outcome))
        results[leaf] = run_targeting(cache, save_ic=True, verbose=verbose - 1, **kwargs)

    return _evaluate(composed, results, estimator), results, cache


class TMLEstimator(BaseEstimator):
    """Targeted maximum likelihood estimator.

    All configuration happens in ``__init__``, all computation in ``fit``,
    so the estimator can be cloned with :func:`sklearn.base.clone`.

    Parameters
    ----------
    outcome_mean : estimator, optional
        Learner of E[Y | T, W]. Default is LogisticRegression for binary
        outcomes and LinearRegression otherwise.
    propensity_score : estimator, optional
        Classifier for P(T | W). Default is LogisticRegression.
    encoder : transformer, optional
        Treatment encoder. Default is TreatmentEncoder.
    fluctuation : str, optional
        "binomial" or "gaussian"; inferred from the outcome learner if None.
    scm : SCM, optional
        Causal graph used to identify causal estimands.
    outcome_extra_covariates : tuple of str
        Extra covariates of the outcome model used at identification.
    threshold : float, default=1e-8
        Truncation level of the propensity density.
    weighted_fluctuation : bool, default=False
        Fit a weighted fluctuation.
    estimator : str, default="tmle"
        "tmle" or "ose", used for composed estimands.
    ordering : str, default="groups"
        Ordering of the components of composed estimands.
    save_ic : bool, default=True
        Keep influence curves on the results.
    cache_fits : bool, default=True
        Keep training data on the nuisance fits.
    verbose : int, default=1
        Verbosity level.

    Attributes
    ----------
    results_ : TMLEResult or ComposedEstimate
        Estimation results after fitting.
    cache_ : TMLECache
        Cache of nuisance fits, reused by later calls to ``fit`` on the same
        dataset.

    Examples
    --------
    >>> est = TMLEstimator(scm=StaticSCM(["Y"], ["T"], ["W"]))
    >>> result = est.fit(df, ATE("Y", {"T": {"case": 1, "control": 0}}))
    >>> print(result.summary())
    """

    def __init__(
        self,
        outcome_mean=None,
        propensity_score=None,
        encoder=None,
        fluctuation: str | None = None,
        scm: SCM | None = None,
        outcome_extra_covariates: tuple = (),
        threshold: float = 1e-8,
        weighted_fluctuation: bool = False,
        estimator: str = "tmle",
        ordering: str = "groups",
        save_ic: bool = True,
        cache_fits: bool = True,
        verbose: int = 1,
    ) -> None:
        self.outcome_mean = outcome_mean
        self.propensity_score = propensity_score
        self.encoder = encoder
        self.fluctuation = fluctuation
        self.scm = scm
        self.outcome_extra_covariates = outcome_extra_covariates
        self.threshold = threshold
        self.weighted_fluctuation = weighted_fluctuation
        self.estimator = estimator
        self.ordering = ordering
        self.save_ic = save_ic
        self.cache_fits = cache_fits
        self.verbose = verbose

    def _nuisance_spec(self, dataset: pd.DataFrame, outcome: str) -> NuisanceSpec:
        outcome_mean = self.outcome_mean
        if outcome_mean is None:
            binary = dataset[outcome].dropna().nunique() == 2
            outcome_mean = LogisticRegression(max_iter=1000) if binary else LinearRegression()
        propensity_score = self.propensity_score
        if propensity_score is None:
            propensity_score = LogisticRegression(max_iter=1000)
        return NuisanceSpec(
            outcome_mean=outcome_mean,
            propensity_score=propensity_score,
            encoder=self.encoder if self.encoder is not None else TreatmentEncoder(),
            fluctuation=self.fluctuation,
            cache=self.cache_fits,
        )

    def _get_cache(self, dataset: pd.DataFrame) -> TMLECache:
        cache = getattr(self, "cache_", None)
        if cache is None or cache.dataset is not dataset:
            cache = TMLECache(dataset)
        return cache

    def fit(self, dataset: pd.DataFrame, estimand):
        """Estimate ``estimand`` on ``dataset``.

        Parameters
        ----------
        dataset : pd.DataFrame
            Data containing every variable of the estimand.
        estimand : CausalEstimand, StatisticalEstimand or ComposedEstimand
            Causal estimands require ``scm``.

        Returns
        -------
        TMLEResult or ComposedEstimate
        """
        adjustment = BackdoorAdjustment(self.outcome_extra_covariates)
        cache = self._get_cache(dataset)
        kwargs = dict(threshold=self.threshold, weighted_fluctuation=self.weighted_fluctuation)

        if isinstance(estimand, ComposedEstimand):
            leaves = estimand.leaves()
            if not leaves:
                raise ValueError("Composed estimand has no components to estimate.")
            # Default outcome learners depend on each component's outcome type
            if self.outcome_mean is None:
                spec = lambda outcome: self._nuisance_spec(dataset, outcome)
            else:
                spec = self._nuisance_spec(dataset, leaves[0].outcome)
            result, self.component_results_, cache = estimate_composed(
                estimand,
                spec,
                dataset,
                cache=cache,
                scm=self.scm,
                adjustment=adjustment,
                estimator=self.estimator,
                ordering=self.ordering,
                verbose=self.verbose,
                **kwargs,
            )
        else:
            spec = self._nuisance_spec(dataset, estimand.outcome)
            result, cache = tmle(
                estimand,
                spec,
                dataset,
                scm=self.scm,
                adjustment=adjustment,
                cache=cache,
                save_ic=self.save_ic,
                verbose=self.verbose,
                **kwargs,
            )

        self.cache_ = cache
        self.results_ = result
        self.is_fitted_ = True
        return result
