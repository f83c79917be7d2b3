"""Exception types raised by targeted_inference.

All exceptions subclass a built-in type so that callers can catch either
the specific class or the usual ``ValueError`` / ``KeyError``.
"""


class EstimandValidationError(ValueError):
    """Malformed estimand construction or (de)serialisation input."""


class TreatmentValueError(EstimandValidationError):
    """A treatment value does not match any level observed in the dataset."""


class MissingVertexError(KeyError):
    """A variable referenced during identification is not in the graph."""


class CycleError(ValueError):
    """Adding an equation would make the causal graph cyclic."""


class ShapeMismatchError(ValueError):
    """Influence curves cannot be aligned on the same observations."""
