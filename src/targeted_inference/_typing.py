"""Type definitions for targeted_inference.

This module provides type aliases using numpy.typing for clear,
consistent type annotations throughout the package.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Union

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    import pandas as pd

# Core numeric types
Float64Array = NDArray[np.float64]
ArrayLike = Union[Float64Array, "pd.Series", list]


class Learner(Protocol):
    """Protocol for sklearn-compatible learners.

    Any object with fit() and predict() methods satisfies this protocol.
    Nuisance functions are estimated with arbitrary learners of this kind.
    """

    def fit(self, X: Any, y: Any) -> "Learner":
        """Fit the model to data."""
        ...

    def predict(self, X: Any) -> Float64Array:
        """Generate predictions."""
        ...


class Classifier(Learner, Protocol):
    """Protocol for sklearn-compatible classifiers."""

    classes_: NDArray

    def predict_proba(self, X: Any) -> Float64Array:
        """Predict class probabilities."""
        ...
