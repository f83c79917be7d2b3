"""
Delta-method composition of asymptotically linear estimates.

Given estimates ψ̂₁, ..., ψ̂ₖ with influence curves IC₁, ..., ICₖ evaluated on
the same sample, the estimate of f(ψ₁, ..., ψₖ) is f(ψ̂) with influence curve

    IC_f = IC @ Jᵀ,      J = ∂f/∂ψ at ψ̂ (d × k)

and IC covariance J Σ Jᵀ, where Σ is the empirical covariance of the stacked
curves. Correlation between estimates sharing the sample is accounted for.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import torch
from torch.func import jacrev

from ..errors import ShapeMismatchError
from .estimates import ComposedEstimate, EICEstimate
from .variance import covariance_matrix


def compute_jacobian(f: Callable, values: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate f and its Jacobian at ``values``.

    Args:
        f: Function of k torch scalars returning a scalar or (d,) tensor
        values: k point estimates

    Returns:
        (f(values) as a (d,) array, Jacobian as a (d, k) array)
    """
    x = torch.as_tensor(np.asarray(values, dtype=np.float64))

    def g(x_: torch.Tensor) -> torch.Tensor:
        return torch.atleast_1d(f(*x_.unbind()))

    with torch.no_grad():
        value = g(x)
    J = jacrev(g)(x)
    return value.detach().numpy().astype(float), np.atleast_2d(J.detach().numpy().astype(float))


def _point_estimate(estimate) -> np.ndarray:
    return np.atleast_1d(np.asarray(estimate.estimate, dtype=float))


def _ic_columns(estimate) -> np.ndarray:
    if estimate.ic is None:
        raise ValueError(
            f"Influence curve of {estimate.estimand} was dropped, it cannot be composed."
        )
    ic = np.asarray(estimate.ic, dtype=float)
    return ic.reshape(ic.shape[0], -1)


def align_influence_curves(estimates: Sequence) -> Tuple[np.ndarray, Optional[pd.Index]]:
    """
    Stack the influence curves of ``estimates`` into an (n, k) matrix.

    Curves of equal length with no or identical row labels are stacked as is.
    Otherwise they are aligned on the union of their row labels: a curve is
    zero outside of its rows and rescaled by N / n_j so that its empirical
    mean over the N rows is unchanged in expectation.

    Raises:
        ShapeMismatchError: if lengths differ and some curve has no row labels
    """
    columns = [_ic_columns(e) for e in estimates]
    lengths = {c.shape[0] for c in columns}
    indices = [e.row_index for e in estimates]

    same_rows = all(idx is not None and idx.equals(indices[0]) for idx in indices)
    if len(lengths) == 1 and (same_rows or all(idx is None for idx in indices)):
        return np.hstack(columns), indices[0] if same_rows else None

    if any(idx is None for idx in indices):
        raise ShapeMismatchError(
            f"Cannot compose influence curves of lengths {sorted(lengths)} without row labels."
        )

    union = indices[0]
    for idx in indices[1:]:
        union = union.union(idx, sort=False)
    N = len(union)

    aligned: List[np.ndarray] = []
    for col, idx in zip(columns, indices):
        full = np.zeros((N, col.shape[1]))
        full[union.get_indexer(idx)] = col * (N / col.shape[0])
        aligned.append(full)
    return np.hstack(aligned), union


def compose(f: Callable, *estimates, estimand=None) -> ComposedEstimate:
    """
    Estimate ``f(ψ₁, ..., ψₖ)`` from the estimates of ψ₁, ..., ψₖ.

    Args:
        f: Function of k torch scalars, differentiable with torch autograd
        *estimates: EICEstimate or ComposedEstimate objects
        estimand: Optional composed estimand attached to the result

    Returns:
        ComposedEstimate

    Examples:
        >>> diff = compose(lambda x, y: x - y, ate_1.tmle, ate_2.tmle)
        >>> diff.estimate, diff.var
    """
    if not estimates:
        raise ValueError("compose requires at least one estimate.")

    values = np.concatenate([_point_estimate(e) for e in estimates])
    point, J = compute_jacobian(f, values)

    ic, row_index = align_influence_curves(estimates)
    if ic.shape[1] != J.shape[1]:
        raise ShapeMismatchError(
            f"Jacobian has {J.shape[1]} columns but {ic.shape[1]} influence curves were provided."
        )

    sigma = covariance_matrix(ic)
    composed_ic = ic @ J.T
    cov = J @ sigma @ J.T

    return ComposedEstimate(
        estimand=estimand,
        estimate=point,
        cov=cov,
        n=ic.shape[0],
        ic=composed_ic,
        row_index=row_index,
    )


def univariate(estimate: ComposedEstimate) -> EICEstimate:
    """View a one-dimensional composed estimate as an EICEstimate."""
    if not estimate.is_univariate:
        raise ShapeMismatchError(
            f"Estimate has dimension {estimate.estimate.shape[0]}, expected 1."
        )
    return EICEstimate(
        estimand=estimate.estimand,
        estimate=float(estimate.estimate[0]),
        std=float(np.sqrt(estimate.cov[0, 0])),
        n=estimate.n,
        ic=None if estimate.ic is None else estimate.ic[:, 0],
        row_index=estimate.row_index,
        estimator="Composed",
    )
