"""
Building blocks shared by all estimands.

A ConditionalDistribution identifies a nuisance function abstractly, as an
outcome variable and a set of conditioning variables. Two descriptors are
equal iff they have the same outcome and the same set of parents, which is
what the nuisance cache and the estimand scheduler use to detect shared work.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, NamedTuple, Tuple


class EstimandKind(str, Enum):
    """Counterfactual-mean based estimands."""

    CM = "CM"  # Counterfactual Mean E[Y|do(T=t)]
    ATE = "ATE"  # Average Treatment Effect
    IATE = "IATE"  # Interaction Average Treatment Effect


ESTIMAND_FORMULAS = {
    EstimandKind.CM: "CM(Y, T=t) = E[Y|do(T=t)]",
    EstimandKind.ATE: "ATE(Y, T, case, control) = E[Y|do(T=case)] - E[Y|do(T=control)]",
    EstimandKind.IATE: (
        "IATE = E[Y|do(T1=1, T2=1)] - E[Y|do(T1=1, T2=0)] "
        "- E[Y|do(T1=0, T2=1)] + E[Y|do(T1=0, T2=0)]"
    ),
}


class CaseControl(NamedTuple):
    """Contrast of a single treatment variable."""

    case: object
    control: object


def unique_sorted_tuple(names: Iterable) -> Tuple[str, ...]:
    """Coerce names to str, drop duplicates, sort."""
    if isinstance(names, str):
        names = (names,)
    return tuple(sorted({str(name) for name in names}))


@dataclass(frozen=True)
class ConditionalDistribution:
    """
    Abstract nuisance function: the law of ``outcome`` given ``parents``.

    Parents are stored sorted and de-duplicated so that equality does not
    depend on the order they were supplied in.
    """

    outcome: str
    parents: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "outcome", str(self.outcome))
        object.__setattr__(self, "parents", unique_sorted_tuple(self.parents))

    @property
    def variables(self) -> Tuple[str, ...]:
        return (self.outcome, *self.parents)

    def __str__(self) -> str:
        if not self.parents:
            return f"P({self.outcome})"
        return f"P({self.outcome} | {', '.join(self.parents)})"


@dataclass(frozen=True)
class CMRelevantFactors:
    """Nuisance functions needed to estimate one counterfactual-mean estimand."""

    outcome_mean: ConditionalDistribution
    propensity_score: Tuple[ConditionalDistribution, ...]

    @property
    def variables(self) -> Tuple[str, ...]:
        names = set(self.outcome_mean.variables)
        for factor in self.propensity_score:
            names.update(factor.variables)
        return tuple(sorted(names))

    def __iter__(self):
        yield from self.propensity_score
        yield self.outcome_mean

    def __str__(self) -> str:
        om = self.outcome_mean
        lines = ["Relevant Factors:", "-----------------", f"- E[{om.outcome} | {', '.join(om.parents)}]"]
        lines += [f"- {factor}" for factor in self.propensity_score]
        return "\n".join(lines)
