"""
Batch generation of ATEs and IATEs from observed treatment levels.
"""

import itertools
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .base import CaseControl
from .composed import ComposedEstimand, joint_estimand
from .counterfactual_mean import ATE, IATE, indicator_fns


def unique_treatment_values(dataset: pd.DataFrame, treatments: Sequence[str]) -> Dict[str, list]:
    """Non-missing levels of each treatment, in order of appearance."""
    return {t: list(dataset[t].dropna().unique()) for t in treatments}


def get_treatment_contrasts(treatments_unique_values: Mapping[str, Sequence[Any]]) -> List[List[CaseControl]]:
    """All pairwise (control, case) contrasts for each treatment."""
    return [
        [CaseControl(case=case, control=control) for control, case in itertools.combinations(values, 2)]
        for values in treatments_unique_values.values()
    ]


def joint_treatment_frequencies(dataset: pd.DataFrame, treatments: Sequence[str]) -> Dict[tuple, float]:
    """
    Empirical frequency of each joint treatment setting over the rows where
    all ``treatments`` are observed. Levels are keyed by their string form.
    """
    complete = dataset[list(treatments)].dropna()
    if len(complete) == 0:
        return {}
    counts = Counter(tuple(str(v) for v in row) for row in complete.itertuples(index=False))
    return {key: count / len(complete) for key, count in counts.items()}


def satisfies_positivity(estimand, frequencies: Mapping[tuple, float], positivity_constraint: float) -> bool:
    """Every treatment setting the estimand contrasts must be frequent enough."""
    for setting, coef in indicator_fns(estimand).items():
        if coef == 0:
            continue
        if frequencies.get(tuple(str(v) for v in setting), 0.0) < positivity_constraint:
            return False
    return True


def _generate(factory, contrasts_per_treatment, treatments, outcome, confounders, outcome_extra_covariates):
    estimands = []
    for contrasts in itertools.product(*contrasts_per_treatment):
        estimands.append(
            factory(
                outcome=outcome,
                treatment_values=dict(zip(treatments, contrasts)),
                treatment_confounders=confounders,
                outcome_extra_covariates=outcome_extra_covariates,
            )
        )
    return estimands


def _filter_positivity(estimands, dataset, treatments, positivity_constraint):
    if positivity_constraint is None:
        return estimands
    frequencies = joint_treatment_frequencies(dataset, sorted(str(t) for t in treatments))
    return [e for e in estimands if satisfies_positivity(e, frequencies, positivity_constraint)]


def generate_ates_from_unique_values(
    treatments_unique_values: Mapping[str, Sequence[Any]],
    outcome: str,
    confounders=None,
    outcome_extra_covariates=(),
) -> ComposedEstimand:
    """
    Generate every ATE for each treatment separately, then combine them
    across treatments.

    Each treatment contributes one contrast per pair of its levels; with two
    treatments of 3 levels each, this yields 3 x 3 = 9 ATEs.
    """
    treatments = list(treatments_unique_values)
    contrasts = get_treatment_contrasts(treatments_unique_values)
    return ComposedEstimand(
        joint_estimand,
        _generate(ATE, contrasts, treatments, outcome, confounders, outcome_extra_covariates),
    )


def generate_ates(
    dataset: pd.DataFrame,
    treatments: Sequence[str],
    outcome: str,
    confounders=None,
    outcome_extra_covariates=(),
    positivity_constraint: Optional[float] = None,
) -> ComposedEstimand:
    """
    Find all unique values of each treatment in ``dataset`` and generate all
    possible ATEs from them.

    Args:
        dataset: Data containing the treatment columns
        treatments: Treatment variable names
        outcome: Outcome variable name
        confounders: Confounders shared by all treatments, or None for causal estimands
        outcome_extra_covariates: Extra covariates of the outcome model
        positivity_constraint: Minimum empirical frequency of every treatment
            setting entering an ATE, or None to keep them all

    Returns:
        ComposedEstimand(joint_estimand, ATEs)
    """
    composed = generate_ates_from_unique_values(
        unique_treatment_values(dataset, treatments),
        outcome,
        confounders=confounders,
        outcome_extra_covariates=outcome_extra_covariates,
    )
    args = _filter_positivity(list(composed.args), dataset, treatments, positivity_constraint)
    return ComposedEstimand(joint_estimand, tuple(args))


def generate_iates_from_unique_values(
    treatments_unique_values: Mapping[str, Sequence[Any]],
    outcome: str,
    confounders=None,
    outcome_extra_covariates=(),
) -> ComposedEstimand:
    """Generate every IATE over the Cartesian product of per-treatment contrasts."""
    treatments = list(treatments_unique_values)
    contrasts = get_treatment_contrasts(treatments_unique_values)
    return ComposedEstimand(
        joint_estimand,
        _generate(IATE, contrasts, treatments, outcome, confounders, outcome_extra_covariates),
    )


def generate_iates(
    dataset: pd.DataFrame,
    treatments: Sequence[str],
    outcome: str,
    confounders=None,
    outcome_extra_covariates=(),
    positivity_constraint: Optional[float] = None,
) -> ComposedEstimand:
    """Same as :func:`generate_ates` for interactions between all ``treatments``."""
    composed = generate_iates_from_unique_values(
        unique_treatment_values(dataset, treatments),
        outcome,
        confounders=confounders,
        outcome_extra_covariates=outcome_extra_covariates,
    )
    args = _filter_positivity(list(composed.args), dataset, treatments, positivity_constraint)
    return ComposedEstimand(joint_estimand, tuple(args))
