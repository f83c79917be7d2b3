"""
Estimand model: counterfactual means, treatment effects, interactions and
compositions thereof.
"""

from .base import (
    ESTIMAND_FORMULAS,
    CaseControl,
    CMRelevantFactors,
    ConditionalDistribution,
    EstimandKind,
)
from .composed import (
    COMPOSITION_REGISTRY,
    ComposedEstimand,
    difference,
    joint_estimand,
    ratio,
    register_composition,
)
from .counterfactual_mean import (
    ATE,
    CM,
    IATE,
    CausalEstimand,
    Estimand,
    StatisticalEstimand,
    indicator_fns,
    nuisance_functions,
    outcome_mean,
    propensity_score,
    relevant_factors,
)
from .generation import (
    generate_ates,
    generate_ates_from_unique_values,
    generate_iates,
    generate_iates_from_unique_values,
    get_treatment_contrasts,
)
from .io import from_dict, to_dict

__all__ = [
    # Descriptors
    "ConditionalDistribution",
    "CMRelevantFactors",
    "EstimandKind",
    "ESTIMAND_FORMULAS",
    "CaseControl",
    # Estimands
    "CausalEstimand",
    "StatisticalEstimand",
    "Estimand",
    "CM",
    "ATE",
    "IATE",
    "indicator_fns",
    "relevant_factors",
    "outcome_mean",
    "propensity_score",
    "nuisance_functions",
    # Composition
    "ComposedEstimand",
    "COMPOSITION_REGISTRY",
    "register_composition",
    "difference",
    "ratio",
    "joint_estimand",
    # Generation
    "generate_ates",
    "generate_iates",
    "generate_ates_from_unique_values",
    "generate_iates_from_unique_values",
    "get_treatment_contrasts",
    # Serialisation
    "to_dict",
    "from_dict",
]
