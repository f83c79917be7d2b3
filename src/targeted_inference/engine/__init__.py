"""
Nuisance cache and targeting engine.
"""

from .cache import (
    SLOT_DEPENDENCIES,
    NuisanceFit,
    NuisanceSpec,
    TMLECache,
    estimand_diff,
    same_learner,
    spec_diff,
)
from .clever_covariate import (
    clever_covariate_and_weights,
    indicator_values,
    joint_density,
    truncate,
)
from .encoder import TreatmentEncoder
from .fluctuation import Fluctuation, compute_offset, expected_value
from .targeting import (
    counterfactual_aggregates,
    gradient_and_estimates,
    gradients_y_x,
    run_targeting,
    tmle_step,
)

__all__ = [
    # Cache
    "TMLECache",
    "NuisanceSpec",
    "NuisanceFit",
    "SLOT_DEPENDENCIES",
    "estimand_diff",
    "spec_diff",
    "same_learner",
    # Models
    "TreatmentEncoder",
    "Fluctuation",
    "compute_offset",
    "expected_value",
    # Clever covariate
    "clever_covariate_and_weights",
    "indicator_values",
    "joint_density",
    "truncate",
    # Targeting
    "tmle_step",
    "counterfactual_aggregates",
    "gradients_y_x",
    "gradient_and_estimates",
    "run_targeting",
]
