"""
Nuisance cache shared across estimands.

A TMLECache holds a dataset, the current estimand and nuisance specification
and every nuisance model fitted so far. Updating the estimand or the
specification only clears the slots whose inputs changed, so that running
TMLE for many estimands on the same data refits as little as possible.

Invalidation is declarative: SLOT_DEPENDENCIES lists, for every slot, the
estimand and specification fields it was fitted from. ``update`` computes
which fields changed and clears the slots that depend on them.
"""

from __future__ import annotations

import numbers
import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Set

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, clone, is_classifier

from .._typing import Classifier, Learner
from ..errors import EstimandValidationError, TreatmentValueError
from ..estimands.base import CaseControl, ConditionalDistribution
from ..estimands.counterfactual_mean import (
    StatisticalEstimand,
    indicator_fns,
    outcome_mean,
    propensity_score,
)
from .clever_covariate import propensity_features
from .encoder import TreatmentEncoder
from .fluctuation import Fluctuation, expected_value

ESTIMAND_FIELDS = ("treatments", "confounders", "extra_covariates", "outcome", "treatment_values")
SPEC_FIELDS = ("propensity_learner", "outcome_learner", "encoder_learner", "fluctuation_learner")

SLOT_DEPENDENCIES: Dict[str, FrozenSet[str]] = {
    "propensity_score": frozenset({"treatments", "confounders", "propensity_learner"}),
    "encoder": frozenset({"treatments", "encoder_learner"}),
    "outcome_mean": frozenset(
        {"treatments", "confounders", "extra_covariates", "outcome", "outcome_learner", "encoder_learner"}
    ),
    "fluctuation": frozenset(ESTIMAND_FIELDS + SPEC_FIELDS),
}

# Fields that change the set of columns the estimand reads
VARIABLE_FIELDS = frozenset({"treatments", "confounders", "extra_covariates", "outcome"})


@dataclass
class NuisanceSpec:
    """Learners used to estimate the nuisance functions.

    Attributes:
        outcome_mean: sklearn regressor or classifier for E[Y | T, W, C]. A
            classifier is used for binary outcomes, E[Y|.] being the
            probability of its last class.
        propensity_score: sklearn classifier, cloned and fitted for each
            treatment P(T_j | W_j).
        encoder: Transformer of the treatment columns fed to the outcome model.
        fluctuation: "binomial", "gaussian", a Fluctuation, or None to pick
            binomial for classifier outcome models and gaussian otherwise.
        cache: Keep the training data on the fitted nuisance records.
    """

    outcome_mean: Learner
    propensity_score: Classifier
    encoder: Any = field(default_factory=TreatmentEncoder)
    fluctuation: Any = None
    cache: bool = True

    def fluctuation_family(self) -> str:
        if isinstance(self.fluctuation, Fluctuation):
            return self.fluctuation.family
        if self.fluctuation is not None:
            return str(self.fluctuation)
        return "binomial" if is_classifier(self.outcome_mean) else "gaussian"


@dataclass
class NuisanceFit:
    """A fitted nuisance model and what it was fitted on."""

    descriptor: Optional[ConditionalDistribution]
    model: Any
    X: Optional[pd.DataFrame] = None
    y: Optional[pd.Series] = None
    fit_time: float = 0.0


def same_learner(a, b) -> bool:
    """Identity, or same type with equal (recursively compared) parameters."""
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    if isinstance(a, BaseEstimator):
        pa, pb = a.get_params(deep=False), b.get_params(deep=False)
        return pa.keys() == pb.keys() and all(same_learner(pa[k], pb[k]) for k in pa)
    if isinstance(a, Fluctuation):
        return a.family == b.family
    if isinstance(a, np.ndarray):
        return np.array_equal(a, b)
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(same_learner(x, y) for x, y in zip(a, b))
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(same_learner(a[k], b[k]) for k in a)
    return bool(a == b)


def estimand_diff(old: Optional[StatisticalEstimand], new: StatisticalEstimand) -> Set[str]:
    """Names of the estimand fields that differ between ``old`` and ``new``."""
    if old is None:
        return set(ESTIMAND_FIELDS)
    diff = set()
    if set(old.treatments) != set(new.treatments):
        diff.add("treatments")
    if old.treatment_confounders != new.treatment_confounders:
        diff.add("confounders")
    if old.outcome_extra_covariates != new.outcome_extra_covariates:
        diff.add("extra_covariates")
    if old.outcome != new.outcome:
        diff.add("outcome")
    if old.treatment_values != new.treatment_values or old.kind != new.kind:
        diff.add("treatment_values")
    return diff


def spec_diff(old: Optional[NuisanceSpec], new: NuisanceSpec) -> Set[str]:
    """Names of the specification fields that differ between ``old`` and ``new``."""
    if old is None:
        return set(SPEC_FIELDS)
    diff = set()
    if not same_learner(old.propensity_score, new.propensity_score):
        diff.add("propensity_learner")
    if not same_learner(old.outcome_mean, new.outcome_mean):
        diff.add("outcome_learner")
    if not same_learner(old.encoder, new.encoder):
        diff.add("encoder_learner")
    if old.fluctuation_family() != new.fluctuation_family():
        diff.add("fluctuation_learner")
    return diff


def find_level(value, levels) -> Any:
    """Dataset level matching ``value`` by string representation or numeric equality."""
    for level in levels:
        if str(level) == str(value):
            return level
    if isinstance(value, (numbers.Number, np.number)):
        for level in levels:
            if isinstance(level, (numbers.Number, np.number)) and level == value:
                return level
    return None


class TMLECache:
    """
    Cache of nuisance fits for a dataset.

    Parameters
    ----------
    dataset : pd.DataFrame
        The data. Rows with missing values are dropped per nuisance function,
        only in the columns that function needs.

    Examples
    --------
    >>> cache = TMLECache(df)
    >>> cache.update(estimand=ate, spec=spec)
    >>> cache.fit_nuisance()
    >>> cache.update(estimand=other_ate)  # reuses every fit it can
    """

    def __init__(self, dataset: pd.DataFrame):
        self.dataset = dataset
        self.estimand: Optional[StatisticalEstimand] = None
        self.spec: Optional[NuisanceSpec] = None
        self.propensity_score: Dict[ConditionalDistribution, NuisanceFit] = {}
        self.outcome_mean: Optional[NuisanceFit] = None
        self.encoder: Optional[NuisanceFit] = None
        self.fluctuation: Optional[NuisanceFit] = None
        self.data: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_columns(self, estimand: StatisticalEstimand) -> None:
        missing = [v for v in estimand.variables if v not in self.dataset.columns]
        if missing:
            raise EstimandValidationError(
                f"Variables {missing} of {estimand} are not columns of the dataset."
            )

    def treatment_levels(self, estimand: StatisticalEstimand) -> Dict[str, Dict[str, Any]]:
        """
        Map every treatment value referenced by ``estimand`` to the matching
        dataset level.

        Raises:
            TreatmentValueError: if a value matches no observed level
        """
        mapping = {}
        for treatment, value in estimand.treatment_values:
            levels = list(pd.unique(self.dataset[treatment].dropna()))
            settings = value._asdict() if isinstance(value, CaseControl) else {"value": value}
            mapping[treatment] = {}
            for key, setting in settings.items():
                level = find_level(setting, levels)
                if level is None:
                    raise TreatmentValueError(
                        f"The '{key}' string representation '{setting}' for treatment {treatment} "
                        f"does not match any level of the corresponding variable in the dataset: "
                        f"{[str(lv) for lv in levels]}"
                    )
                mapping[treatment][str(setting)] = level
        return mapping

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(
        self,
        estimand: Optional[StatisticalEstimand] = None,
        spec: Optional[NuisanceSpec] = None,
    ) -> "TMLECache":
        """
        Set a new estimand and/or nuisance specification.

        Only the nuisance slots whose dependencies changed are cleared. The
        fluctuation is cleared on every update. Nothing is modified if the
        estimand fails validation.

        Raises:
            EstimandValidationError: causal estimand or missing columns
            TreatmentValueError: treatment value not observed in the dataset
        """
        diff: Set[str] = set()
        levels = None
        if estimand is not None:
            if not isinstance(estimand, StatisticalEstimand):
                raise EstimandValidationError(
                    f"{estimand} is not identified; identify it before building a cache."
                )
            self._check_columns(estimand)
            levels = self.treatment_levels(estimand)
            diff |= estimand_diff(self.estimand, estimand)
        if spec is not None:
            diff |= spec_diff(self.spec, spec)

        for slot, dependencies in SLOT_DEPENDENCIES.items():
            if slot != "fluctuation" and dependencies & diff:
                self._invalidate(slot, diff, estimand)
        if estimand is not None or spec is not None:
            self.fluctuation = None

        if estimand is not None:
            if diff & VARIABLE_FIELDS or "complete_case" not in self.data:
                self.data["complete_case"] = self.dataset.dropna(subset=list(estimand.variables))
            self.data["levels"] = levels
            self.data["indicators"] = {
                tuple(levels[t][str(v)] for t, v in zip(estimand.treatments, setting)): coef
                for setting, coef in indicator_fns(estimand).items()
            }
            self.estimand = estimand
        if spec is not None:
            self.spec = spec
        return self

    def _invalidate(self, slot: str, diff: Set[str], estimand: Optional[StatisticalEstimand]) -> None:
        if slot == "propensity_score":
            if "propensity_learner" in diff or estimand is None:
                self.propensity_score = {}
            else:
                required = set(propensity_score(estimand))
                self.propensity_score = {d: f for d, f in self.propensity_score.items() if d in required}
        elif slot == "encoder":
            self.encoder = None
        elif slot == "outcome_mean":
            self.outcome_mean = None
            for key in ("initial_predictions", "y"):
                self.data.pop(key, None)

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def _check_ready(self) -> None:
        if self.estimand is None or self.spec is None:
            raise RuntimeError("Call update(estimand=..., spec=...) before fitting nuisance functions.")

    def _fit(self, learner, X, y, descriptor, verbose: int) -> NuisanceFit:
        if verbose >= 1:
            print(f"Fitting {descriptor if descriptor is not None else 'encoder'}...")
        start = time.time()
        model = clone(learner)
        if y is None:
            model.fit(X)
        else:
            model.fit(X, y)
        elapsed = time.time() - start
        if verbose >= 2:
            print(f"  Time to fit: {elapsed:.2f} s")
        keep = self.spec.cache
        return NuisanceFit(
            descriptor=descriptor,
            model=model,
            X=X if keep else None,
            y=y if keep else None,
            fit_time=elapsed,
        )

    def fit_nuisance(self, verbose: int = 1) -> "TMLECache":
        """
        Fit the empty nuisance slots for the current estimand.

        Propensity scores are fitted on rows with no missing treatment or
        confounder; the encoder on rows with no missing treatment; the outcome
        mean on the complete-case view of the estimand.
        """
        self._check_ready()
        estimand, spec = self.estimand, self.spec

        for descriptor in propensity_score(estimand):
            if descriptor in self.propensity_score:
                if verbose >= 1:
                    print(f"Reusing previous {descriptor}")
                continue
            rows = self.dataset.dropna(subset=list(descriptor.variables))
            X = propensity_features(rows, descriptor.parents)
            self.propensity_score[descriptor] = self._fit(
                spec.propensity_score, X, rows[descriptor.outcome], descriptor, verbose
            )

        Q = outcome_mean(estimand)
        if self.outcome_mean is None:
            if self.encoder is None:
                T = self.dataset[list(estimand.treatments)].dropna()
                self.encoder = self._fit(spec.encoder, T, None, None, verbose)
            elif verbose >= 1:
                print("Reusing previous encoder")
            complete = self.data["complete_case"]
            X = self.outcome_inputs(complete)
            y = complete[estimand.outcome]
            self.outcome_mean = self._fit(spec.outcome_mean, X, y, Q, verbose)
            self.data["initial_predictions"] = expected_value(self.outcome_mean.model, X)
            self.data["y"] = self.target_values(complete)
        elif verbose >= 1:
            print(f"Reusing previous E[{Q.outcome} | {', '.join(Q.parents)}]")
        return self

    # ------------------------------------------------------------------
    # Model inputs
    # ------------------------------------------------------------------

    def outcome_inputs(self, data: pd.DataFrame) -> pd.DataFrame:
        """Encoded treatments followed by the other outcome-model parents."""
        estimand = self.estimand
        treatments = list(estimand.treatments)
        encoded = self.encoder.model.transform(data[treatments])
        others = sorted(
            (set(estimand.confounders) | set(estimand.outcome_extra_covariates)) - set(treatments)
        )
        return pd.concat([encoded, data[others]], axis=1)

    def target_values(self, data: pd.DataFrame) -> np.ndarray:
        """Numeric outcome; indicator of the last class for classifier outcome models."""
        y = data[self.estimand.outcome]
        model = self.outcome_mean.model
        if is_classifier(model):
            return (y.to_numpy() == model.classes_[-1]).astype(np.float64)
        return y.to_numpy(dtype=np.float64)

    @property
    def logit_offset(self) -> bool:
        """Whether the fluctuation works on the logit scale of the initial predictions."""
        return self.spec.fluctuation_family() == "binomial"

    @property
    def propensity_fits(self):
        """Fits of the current estimand's propensity scores, in treatment order."""
        return [self.propensity_score[d] for d in propensity_score(self.estimand)]

    @property
    def last_fluctuation_epsilon(self) -> Optional[float]:
        if self.fluctuation is None:
            return None
        return self.fluctuation.model.epsilon_

    def __repr__(self) -> str:
        fitted = [str(d) for d in self.propensity_score]
        if self.outcome_mean is not None:
            fitted.append(f"E[{self.outcome_mean.descriptor.outcome} | ...]")
        return f"TMLECache(n={len(self.dataset)}, fitted={fitted})"
