"""
Conversion of estimands to and from plain nested dictionaries.

The dictionaries only contain strings, numbers and lists so that they can be
dumped to JSON or YAML by the caller.
"""

from typing import Any, Dict

import numpy as np

from ..errors import EstimandValidationError
from .base import CaseControl, EstimandKind
from .composed import ComposedEstimand, composition_function, composition_name
from .counterfactual_mean import ESTIMAND_FACTORIES, CausalEstimand, StatisticalEstimand


def _plain(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


def _value_to_dict(value: Any) -> Any:
    if isinstance(value, CaseControl):
        return {"case": _plain(value.case), "control": _plain(value.control)}
    return _plain(value)


def to_dict(estimand) -> Dict[str, Any]:
    """
    Nested dictionary representation of an estimand.

    Examples:
        >>> to_dict(ATE("Y", {"T": {"case": 1, "control": 0}}))
        {'type': 'ATE', 'outcome': 'Y', 'treatment_values': {'T': {'case': 1, 'control': 0}}}
    """
    if isinstance(estimand, ComposedEstimand):
        return {
            "type": "ComposedEstimand",
            "f": composition_name(estimand.f),
            "args": [to_dict(arg) for arg in estimand.args],
        }
    if not isinstance(estimand, CausalEstimand):
        raise EstimandValidationError(f"Cannot convert {type(estimand).__name__} to a dictionary.")

    d = {
        "type": estimand.kind.value,
        "outcome": estimand.outcome,
        "treatment_values": {name: _value_to_dict(v) for name, v in estimand.treatment_values},
    }
    if isinstance(estimand, StatisticalEstimand):
        d["treatment_confounders"] = {t: list(c) for t, c in estimand.treatment_confounders}
        d["outcome_extra_covariates"] = list(estimand.outcome_extra_covariates)
    return d


def from_dict(d: Dict[str, Any]):
    """Inverse of :func:`to_dict`."""
    try:
        estimand_type = d["type"]
    except KeyError:
        raise EstimandValidationError(f"Missing 'type' entry in {d!r}.") from None

    if estimand_type == "ComposedEstimand":
        return ComposedEstimand(
            f=composition_function(d["f"]),
            args=tuple(from_dict(arg) for arg in d["args"]),
        )

    try:
        kind = EstimandKind(estimand_type)
    except ValueError:
        raise EstimandValidationError(
            f"Unknown estimand type '{estimand_type}'. Expected one of "
            f"{[k.value for k in EstimandKind] + ['ComposedEstimand']}."
        ) from None

    return ESTIMAND_FACTORIES[kind](
        outcome=d["outcome"],
        treatment_values=d["treatment_values"],
        treatment_confounders=d.get("treatment_confounders"),
        outcome_extra_covariates=d.get("outcome_extra_covariates", ()),
    )
