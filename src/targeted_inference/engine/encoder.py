"""Treatment encoding for the outcome model."""

from __future__ import annotations

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.preprocessing import OneHotEncoder
from sklearn.utils.validation import check_is_fitted


class TreatmentEncoder(TransformerMixin, BaseEstimator):
    """Encode treatment columns as numeric features.

    Numeric and boolean columns are passed through as floats. Every other
    column is one-hot encoded, dropping its first level.

    Parameters
    ----------
    drop : str or None
        Passed to :class:`sklearn.preprocessing.OneHotEncoder`.
    """

    def __init__(self, drop: str | None = "first"):
        self.drop = drop

    def fit(self, X: pd.DataFrame, y=None) -> "TreatmentEncoder":
        self.numeric_columns_ = [c for c in X.columns if is_numeric_dtype(X[c])]
        self.categorical_columns_ = [c for c in X.columns if c not in self.numeric_columns_]
        self.one_hot_ = None
        if self.categorical_columns_:
            self.one_hot_ = OneHotEncoder(drop=self.drop, sparse_output=False)
            self.one_hot_.fit(X[self.categorical_columns_].astype(object))
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        check_is_fitted(self, "numeric_columns_")
        parts = [X[self.numeric_columns_].astype(np.float64)]
        if self.one_hot_ is not None:
            encoded = self.one_hot_.transform(X[self.categorical_columns_].astype(object))
            parts.append(
                pd.DataFrame(
                    encoded,
                    columns=self.one_hot_.get_feature_names_out(self.categorical_columns_),
                    index=X.index,
                )
            )
        return pd.concat(parts, axis=1)
