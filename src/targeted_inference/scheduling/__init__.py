"""
Estimand scheduling.
"""

from .ordering import (
    brute_force_ordering,
    evaluate_proxy_costs,
    groups_ordering,
    nuisance_counts,
)

__all__ = [
    "nuisance_counts",
    "evaluate_proxy_costs",
    "brute_force_ordering",
    "groups_ordering",
]
