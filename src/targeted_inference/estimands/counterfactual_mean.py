"""
Counterfactual-mean based estimands: CM, ATE and IATE.

All three share the same shape and differ only by their ``kind`` and the
form of their treatment values:

- CM:   one level per treatment, e.g. {"T": 1}
- ATE:  a case/control pair per treatment, e.g. {"T": {"case": 1, "control": 0}}
- IATE: a case/control pair for each of at least two treatments

A causal estimand only knows the outcome and the treatment values. After
identification it becomes a statistical estimand which also carries the
adjustment set of each treatment and extra covariates for the outcome model.
Constructors canonicalise their inputs so that equality does not depend on
the order in which treatments or covariates were supplied.
"""

import itertools
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

from ..errors import EstimandValidationError
from .base import (
    CaseControl,
    CMRelevantFactors,
    ConditionalDistribution,
    EstimandKind,
    unique_sorted_tuple,
)

TreatmentSpecs = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def _normalize_value(kind: EstimandKind, treatment: str, value: Any) -> Any:
    if kind == EstimandKind.CM:
        if isinstance(value, (Mapping, CaseControl)):
            raise EstimandValidationError(
                f"CM treatment values must be single levels, got {value!r} for treatment '{treatment}'."
            )
        return value
    if isinstance(value, Mapping) and set(value) >= {"case", "control"}:
        value = CaseControl(case=value["case"], control=value["control"])
    if isinstance(value, CaseControl):
        if kind == EstimandKind.IATE and value.case == value.control:
            raise EstimandValidationError(
                f"IATE case and control must differ, got {value.case!r} for both on treatment '{treatment}'."
            )
        return value
    raise EstimandValidationError(
        f"{kind.value} treatment values must provide 'case' and 'control', "
        f"got {value!r} for treatment '{treatment}'."
    )


def get_treatment_specs(kind: EstimandKind, treatment_values: TreatmentSpecs) -> Tuple[Tuple[str, Any], ...]:
    """Sorted ((treatment, value), ...) tuple."""
    items = treatment_values.items() if isinstance(treatment_values, Mapping) else treatment_values
    specs = {}
    for name, value in items:
        specs[str(name)] = _normalize_value(kind, str(name), value)

    if not specs:
        raise EstimandValidationError("At least one treatment variable is required.")
    if kind == EstimandKind.IATE and len(specs) < 2:
        raise EstimandValidationError(
            f"IATE requires at least 2 treatment variables, got {len(specs)}: {list(specs)}."
        )
    if kind == EstimandKind.ATE and all(v.case == v.control for v in specs.values()):
        raise EstimandValidationError(
            f"ATE case and control settings are identical for treatment(s) {list(specs)}."
        )
    return tuple(sorted(specs.items()))


def get_treatment_confounders(treatments: Tuple[str, ...], confounders: Any) -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
    """
    Sorted ((treatment, confounders), ...) tuple.

    ``confounders`` is either a mapping treatment -> names, or a single
    collection of names shared by every treatment. The canonical
    ((treatment, names), ...) form is accepted as a mapping.
    """
    if isinstance(confounders, tuple) and confounders and all(
        isinstance(item, tuple) and len(item) == 2 and isinstance(item[1], tuple) for item in confounders
    ):
        confounders = dict(confounders)
    if isinstance(confounders, Mapping):
        confounders = {str(k): v for k, v in confounders.items()}
        missing = [t for t in treatments if t not in confounders]
        if missing:
            raise EstimandValidationError(f"No confounders provided for treatment(s): {missing}.")
        return tuple((t, unique_sorted_tuple(confounders[t])) for t in treatments)
    shared = unique_sorted_tuple(confounders)
    return tuple((t, shared) for t in treatments)


@dataclass(frozen=True)
class CausalEstimand:
    """Causal CM/ATE/IATE, before identification."""

    kind: EstimandKind
    outcome: str
    treatment_values: Tuple[Tuple[str, Any], ...]

    def __post_init__(self):
        kind = EstimandKind(self.kind)
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "outcome", str(self.outcome))
        object.__setattr__(self, "treatment_values", get_treatment_specs(kind, self.treatment_values))

    @property
    def treatments(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.treatment_values)

    def treatment_value(self, treatment: str) -> Any:
        return dict(self.treatment_values)[treatment]

    def __str__(self) -> str:
        return string_repr(self)


@dataclass(frozen=True)
class StatisticalEstimand(CausalEstimand):
    """Identified CM/ATE/IATE: carries the adjustment set of each treatment."""

    treatment_confounders: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    outcome_extra_covariates: Tuple[str, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(
            self,
            "treatment_confounders",
            get_treatment_confounders(self.treatments, self.treatment_confounders),
        )
        object.__setattr__(self, "outcome_extra_covariates", unique_sorted_tuple(self.outcome_extra_covariates))

    def confounders_of(self, treatment: str) -> Tuple[str, ...]:
        return dict(self.treatment_confounders)[treatment]

    @property
    def confounders(self) -> Tuple[str, ...]:
        """Union of all treatments' confounders."""
        names = set()
        for _, confounders in self.treatment_confounders:
            names.update(confounders)
        return tuple(sorted(names))

    @property
    def variables(self) -> Tuple[str, ...]:
        """Every column the estimand needs."""
        return unique_sorted_tuple(
            (self.outcome, *self.treatments, *self.confounders, *self.outcome_extra_covariates)
        )


Estimand = Union[CausalEstimand, StatisticalEstimand]


def _make(kind, outcome, treatment_values, treatment_confounders, outcome_extra_covariates) -> Estimand:
    if treatment_confounders is None:
        return CausalEstimand(kind=kind, outcome=outcome, treatment_values=treatment_values)
    return StatisticalEstimand(
        kind=kind,
        outcome=outcome,
        treatment_values=treatment_values,
        treatment_confounders=treatment_confounders,
        outcome_extra_covariates=outcome_extra_covariates,
    )


def CM(outcome, treatment_values, treatment_confounders=None, outcome_extra_covariates=()) -> Estimand:
    """
    Counterfactual mean E[Y|do(T=t)].

    Returns a StatisticalEstimand when ``treatment_confounders`` is given,
    a CausalEstimand otherwise.
    """
    return _make(EstimandKind.CM, outcome, treatment_values, treatment_confounders, outcome_extra_covariates)


def ATE(outcome, treatment_values, treatment_confounders=None, outcome_extra_covariates=()) -> Estimand:
    """Average treatment effect E[Y|do(T=case)] - E[Y|do(T=control)]."""
    return _make(EstimandKind.ATE, outcome, treatment_values, treatment_confounders, outcome_extra_covariates)


def IATE(outcome, treatment_values, treatment_confounders=None, outcome_extra_covariates=()) -> Estimand:
    """Interaction average treatment effect between two or more treatments."""
    return _make(EstimandKind.IATE, outcome, treatment_values, treatment_confounders, outcome_extra_covariates)


ESTIMAND_FACTORIES = {
    EstimandKind.CM: CM,
    EstimandKind.ATE: ATE,
    EstimandKind.IATE: IATE,
}


def indicator_fns(estimand: Estimand) -> Dict[tuple, float]:
    """
    Signed coefficient of every joint treatment setting entering the estimand.

    Keys are tuples of treatment levels ordered like ``estimand.treatments``.
    For an IATE of order k, each of the 2^k combinations of case/control
    values gets (-1)^(k - j) where j is the number of treatments set to their
    case value (inclusion-exclusion).
    """
    values = [value for _, value in estimand.treatment_values]
    if estimand.kind == EstimandKind.CM:
        return {tuple(values): 1.0}
    if estimand.kind == EstimandKind.ATE:
        return {
            tuple(v.case for v in values): 1.0,
            tuple(v.control for v in values): -1.0,
        }
    if estimand.kind == EstimandKind.IATE:
        order = len(values)
        indicators = {}
        for combo in itertools.product(*((v.case, v.control) for v in values)):
            n_cases = sum(level == v.case for level, v in zip(combo, values))
            indicators[combo] = float((-1) ** (order - n_cases))
        return indicators
    raise EstimandValidationError(f"Unknown estimand kind: {estimand.kind}")


def _require_statistical(estimand) -> StatisticalEstimand:
    if not isinstance(estimand, StatisticalEstimand):
        raise EstimandValidationError(
            f"{estimand.kind.value} on '{estimand.outcome}' is causal; identify it before estimation."
        )
    return estimand


def outcome_mean(estimand: StatisticalEstimand) -> ConditionalDistribution:
    estimand = _require_statistical(estimand)
    parents = set(estimand.outcome_extra_covariates) | set(estimand.treatments) | set(estimand.confounders)
    return ConditionalDistribution(estimand.outcome, tuple(parents))


def propensity_score(estimand: StatisticalEstimand) -> Tuple[ConditionalDistribution, ...]:
    estimand = _require_statistical(estimand)
    return tuple(
        ConditionalDistribution(treatment, confounders)
        for treatment, confounders in estimand.treatment_confounders
    )


def relevant_factors(estimand: StatisticalEstimand) -> CMRelevantFactors:
    return CMRelevantFactors(outcome_mean=outcome_mean(estimand), propensity_score=propensity_score(estimand))


def nuisance_functions(estimand: StatisticalEstimand) -> Tuple[ConditionalDistribution, ...]:
    """Propensity scores followed by the outcome mean."""
    return tuple(relevant_factors(estimand))


def _format_value(kind: EstimandKind, value: Any) -> str:
    if kind == EstimandKind.CM:
        return repr(value)
    return f"{value.control!r} => {value.case!r}"


def string_repr(estimand: Estimand) -> str:
    treatments = ", ".join(
        f"{name}: {_format_value(estimand.kind, value)}" for name, value in estimand.treatment_values
    )
    prefix = "Statistical" if isinstance(estimand, StatisticalEstimand) else "Causal"
    return f"{prefix}{estimand.kind.value}(outcome={estimand.outcome}, treatment=({treatments}))"
