"""
targeted_inference: Targeted Maximum Likelihood Estimation of causal effects.

Estimate counterfactual means, average treatment effects and interaction
effects from observational data with any scikit-learn learners, and combine
them by the delta method.

Quick Start:
    >>> from targeted_inference import ATE, NuisanceSpec, StaticSCM, tmle
    >>> from sklearn.linear_model import LogisticRegression
    >>>
    >>> scm = StaticSCM(outcomes=["Y"], treatments=["T"], confounders=["W"])
    >>> spec = NuisanceSpec(
    ...     outcome_mean=LogisticRegression(),
    ...     propensity_score=LogisticRegression(),
    ... )
    >>> result, cache = tmle(ATE("Y", {"T": {"case": 1, "control": 0}}), spec, df, scm=scm)
    >>> print(result.summary())

Estimands:
    - CM: E[Y|do(T=t)]
    - ATE: E[Y|do(T=case)] - E[Y|do(T=control)]
    - IATE: interaction effect between two or more treatments
    - ComposedEstimand: any differentiable function of the above
"""

__version__ = "0.1.0"

from .engine import (
    Fluctuation,
    NuisanceSpec,
    TMLECache,
    TreatmentEncoder,
    run_targeting,
)
from .errors import (
    CycleError,
    EstimandValidationError,
    MissingVertexError,
    ShapeMismatchError,
    TreatmentValueError,
)
from .estimands import (
    ATE,
    CM,
    IATE,
    CausalEstimand,
    ComposedEstimand,
    ConditionalDistribution,
    StatisticalEstimand,
    from_dict,
    generate_ates,
    generate_iates,
    indicator_fns,
    joint_estimand,
    register_composition,
    to_dict,
)
from .estimators import TMLEstimator, estimate_composed, tmle
from .inference import (
    ComposedEstimate,
    EICEstimate,
    OneSampleHotellingT2Test,
    OneSampleTTest,
    OneSampleZTest,
    TMLEResult,
    compose,
    significance_test,
)
from .scheduling import brute_force_ordering, groups_ordering
from .scm import SCM, BackdoorAdjustment, StaticSCM, identify

__all__ = [
    # Graph and identification
    "SCM",
    "StaticSCM",
    "BackdoorAdjustment",
    "identify",
    # Estimands
    "CM",
    "ATE",
    "IATE",
    "CausalEstimand",
    "StatisticalEstimand",
    "ComposedEstimand",
    "ConditionalDistribution",
    "indicator_fns",
    "joint_estimand",
    "register_composition",
    "generate_ates",
    "generate_iates",
    "to_dict",
    "from_dict",
    # Estimation
    "NuisanceSpec",
    "TMLECache",
    "TreatmentEncoder",
    "Fluctuation",
    "run_targeting",
    "tmle",
    "estimate_composed",
    "TMLEstimator",
    # Inference
    "EICEstimate",
    "TMLEResult",
    "ComposedEstimate",
    "compose",
    "OneSampleZTest",
    "OneSampleTTest",
    "OneSampleHotellingT2Test",
    "significance_test",
    # Scheduling
    "brute_force_ordering",
    "groups_ordering",
    # Errors
    "EstimandValidationError",
    "TreatmentValueError",
    "MissingVertexError",
    "CycleError",
    "ShapeMismatchError",
]
