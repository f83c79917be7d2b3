"""
Ordering of estimands to limit the number of nuisance models held in memory.

Estimands sharing nuisance functions (same outcome mean or same propensity
score) can reuse each other's fits through a shared TMLECache. The proxy cost
of an ordering is computed by walking through it:

- every nuisance function an estimand needs is loaded if not already loaded
  (compute cost +1),
- the number of loaded nuisance functions is recorded (memory),
- nuisance functions no later estimand needs are released.

The compute cost is the number of distinct nuisance functions whatever the
ordering; only the peak memory depends on it.
"""

from __future__ import annotations

import itertools
import math
from collections import Counter
from typing import Dict, List, Sequence, Tuple

from tqdm import tqdm

from ..estimands.base import ConditionalDistribution
from ..estimands.counterfactual_mean import nuisance_functions, outcome_mean, propensity_score

BRUTE_FORCE_MAX_GROUP_SIZE = 8


def nuisance_counts(estimands: Sequence) -> Dict[ConditionalDistribution, int]:
    """Number of estimands requiring each nuisance function."""
    counts: Counter = Counter()
    for estimand in estimands:
        counts.update(nuisance_functions(estimand))
    return dict(counts)


def evaluate_proxy_costs(estimands: Sequence, counts: Dict[ConditionalDistribution, int]) -> Tuple[int, int]:
    """
    Proxy costs of processing ``estimands`` in order.

    Args:
        estimands: Ordered statistical estimands
        counts: Output of :func:`nuisance_counts` for the same estimands

    Returns:
        (peak number of loaded nuisance functions, number of fits)
    """
    remaining = dict(counts)
    loaded = set()
    maxmem = 0
    compcost = 0
    for estimand in estimands:
        required = nuisance_functions(estimand)
        for factor in required:
            if factor not in loaded:
                loaded.add(factor)
                compcost += 1
        maxmem = max(maxmem, len(loaded))
        for factor in required:
            remaining[factor] -= 1
            if remaining[factor] == 0:
                loaded.discard(factor)
    return maxmem, compcost


def brute_force_ordering(estimands: Sequence, verbose: int = 0) -> Tuple[List, int, int]:
    """
    Find an ordering with minimal peak memory by trying every permutation.

    Only usable for a handful of estimands. Stops early once an ordering
    reaches the lower bound: the largest number of nuisance functions a single
    estimand needs.

    Returns:
        (ordering, peak memory, compute cost)
    """
    estimands = list(estimands)
    counts = nuisance_counts(estimands)
    lower_bound = max((len(nuisance_functions(e)) for e in estimands), default=0)

    best_ordering = estimands
    best_maxmem, best_compcost = evaluate_proxy_costs(estimands, counts)
    permutations = itertools.permutations(estimands)
    for ordering in tqdm(permutations, total=math.factorial(len(estimands)), disable=verbose < 1):
        if best_maxmem <= lower_bound:
            break
        maxmem, compcost = evaluate_proxy_costs(ordering, counts)
        if (maxmem, compcost) < (best_maxmem, best_compcost):
            best_ordering, best_maxmem, best_compcost = list(ordering), maxmem, compcost

    if verbose >= 1:
        print(f"Optimal ordering: peak memory {best_maxmem}, compute cost {best_compcost}")
    return list(best_ordering), best_maxmem, best_compcost


def _propensity_key(estimand) -> Tuple[str, ...]:
    return tuple(str(d) for d in propensity_score(estimand))


def groups_ordering(estimands: Sequence, brute_force: bool = False, verbose: int = 0) -> List:
    """
    Heuristic ordering for large lists of estimands.

    Estimands are grouped by outcome mean, since outcome models are usually
    the most expensive to keep. A group is emitted entirely before the next
    one; the next group is the one sharing the most propensity scores with
    the previous group. Within a group, estimands are sorted by their
    propensity scores, or ordered by brute force when ``brute_force`` is set
    and the group is small.
    """
    groups: Dict[ConditionalDistribution, List] = {}
    for estimand in estimands:
        groups.setdefault(outcome_mean(estimand), []).append(estimand)

    ordered_groups = []
    for group in groups.values():
        if brute_force and len(group) <= BRUTE_FORCE_MAX_GROUP_SIZE:
            group, _, _ = brute_force_ordering(group, verbose=verbose)
        else:
            group = sorted(group, key=_propensity_key)
        ordered_groups.append(group)

    def propensities(group):
        return {d for estimand in group for d in propensity_score(estimand)}

    ordering: List = []
    remaining = ordered_groups
    previous = None
    while remaining:
        position = 0
        if previous is not None:
            overlaps = [len(previous & propensities(group)) for group in remaining]
            position = overlaps.index(max(overlaps))
        group = remaining.pop(position)
        previous = propensities(group)
        ordering.extend(group)

    if verbose >= 1:
        maxmem, compcost = evaluate_proxy_costs(ordering, nuisance_counts(ordering))
        print(f"Groups ordering: peak memory {maxmem}, compute cost {compcost}")
    return ordering
