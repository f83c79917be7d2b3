"""
Composed estimands: a differentiable function of other estimands.

The function receives one torch scalar per argument and returns a scalar or
a 1-d tensor. Its Jacobian is obtained by automatic differentiation at
inference time (see ``targeted_inference.inference.composition``).

Functions are kept in a registry so that composed estimands can be written
to and read back from plain dictionaries.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import torch

from ..errors import EstimandValidationError


def difference(x, y):
    return x - y


def sum(*args):  # noqa: A001
    return torch.stack(args).sum()


def ratio(x, y):
    return x / y


def joint_estimand(*args):
    """Stack the arguments into a vector: a joint, multivariate estimand."""
    return torch.stack(args)


COMPOSITION_REGISTRY: Dict[str, Callable] = {
    "difference": difference,
    "sum": sum,
    "ratio": ratio,
    "joint_estimand": joint_estimand,
}


def register_composition(name: str):
    """
    Decorator registering a composition function under ``name``.

    Examples:
        @register_composition("log_ratio")
        def log_ratio(x, y):
            return torch.log(x) - torch.log(y)
    """

    def decorator(f: Callable) -> Callable:
        COMPOSITION_REGISTRY[name] = f
        return f

    return decorator


def composition_name(f: Callable) -> str:
    for name, registered in COMPOSITION_REGISTRY.items():
        if registered is f:
            return name
    raise EstimandValidationError(
        f"Composition function {getattr(f, '__name__', f)!r} is not registered. "
        f"Use register_composition to make it serialisable."
    )


def composition_function(name: str) -> Callable:
    try:
        return COMPOSITION_REGISTRY[name]
    except KeyError:
        raise EstimandValidationError(
            f"Unknown composition function '{name}'. Registered: {sorted(COMPOSITION_REGISTRY)}"
        ) from None


@dataclass(frozen=True)
class ComposedEstimand:
    """``f(Ψ_1, ..., Ψ_k)`` for estimands Ψ_i (possibly composed themselves)."""

    f: Callable
    args: Tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))

    def leaves(self) -> Tuple:
        """Non-composed estimands in depth-first order, duplicates removed."""
        seen = {}
        for arg in self.args:
            if isinstance(arg, ComposedEstimand):
                for leaf in arg.leaves():
                    seen.setdefault(leaf, None)
            else:
                seen.setdefault(arg, None)
        return tuple(seen)

    def __str__(self) -> str:
        name = getattr(self.f, "__name__", repr(self.f))
        inner = ",\n".join("  " + str(arg).replace("\n", "\n  ") for arg in self.args)
        return f"{name}(\n{inner}\n)"
