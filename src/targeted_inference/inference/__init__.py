"""
Inference: result containers, delta-method composition and hypothesis tests.
"""

from .composition import align_influence_curves, compose, compute_jacobian, univariate
from .estimates import ComposedEstimate, EICEstimate, TMLEResult
from .hypothesis import (
    OneSampleHotellingT2Test,
    OneSampleTTest,
    OneSampleZTest,
    significance_test,
)
from .variance import (
    compute_confidence_interval,
    compute_std,
    covariance_matrix,
    estimate_variance,
)

__all__ = [
    # Results
    "EICEstimate",
    "TMLEResult",
    "ComposedEstimate",
    # Composition
    "compose",
    "compute_jacobian",
    "align_influence_curves",
    "univariate",
    # Tests
    "OneSampleZTest",
    "OneSampleTTest",
    "OneSampleHotellingT2Test",
    "significance_test",
    # Variance
    "estimate_variance",
    "compute_std",
    "compute_confidence_interval",
    "covariance_matrix",
]
