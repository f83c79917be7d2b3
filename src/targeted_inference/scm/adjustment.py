"""
Identification of causal estimands.

Only backdoor adjustment is provided: each treatment is adjusted for its
parents in the causal graph, which blocks every backdoor path when the graph
is correct.
"""

from dataclasses import dataclass
from functools import singledispatch
from typing import Tuple

from ..estimands.base import unique_sorted_tuple
from ..estimands.composed import ComposedEstimand
from ..estimands.counterfactual_mean import CausalEstimand, StatisticalEstimand
from .graph import SCM


@dataclass(frozen=True)
class BackdoorAdjustment:
    """
    Backdoor adjustment with the graph parents of each treatment.

    Args:
        outcome_extra_covariates: Variables added to the outcome model only,
            e.g. precision variables that are not confounders.
    """

    outcome_extra_covariates: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "outcome_extra_covariates", unique_sorted_tuple(self.outcome_extra_covariates))


@singledispatch
def identify(estimand, scm: SCM, method: BackdoorAdjustment = BackdoorAdjustment()):
    """
    Turn a causal estimand into a statistical one.

    Statistical estimands are returned unchanged and composed estimands are
    identified argument by argument.

    Raises:
        MissingVertexError: if a treatment is not in the graph
    """
    raise TypeError(f"Cannot identify objects of type {type(estimand).__name__}.")


@identify.register
def _(estimand: CausalEstimand, scm: SCM, method: BackdoorAdjustment = BackdoorAdjustment()):
    if isinstance(estimand, StatisticalEstimand):
        return estimand
    return StatisticalEstimand(
        kind=estimand.kind,
        outcome=estimand.outcome,
        treatment_values=estimand.treatment_values,
        treatment_confounders={t: scm.parents(t) for t in estimand.treatments},
        outcome_extra_covariates=method.outcome_extra_covariates,
    )


@identify.register
def _(estimand: ComposedEstimand, scm: SCM, method: BackdoorAdjustment = BackdoorAdjustment()):
    return ComposedEstimand(estimand.f, tuple(identify(arg, scm, method) for arg in estimand.args))
