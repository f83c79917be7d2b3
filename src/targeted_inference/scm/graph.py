"""
Structural causal models.

An SCM is stored as a directed acyclic graph over named variables. Each
non-root vertex carries an equation listing its direct causes (parents):

    Y <- (T, W)
    T <- (W,)

Only the graph structure is represented; the functional form of the
equations is left to the nuisance learners.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence, Tuple, Union

import networkx as nx

from ..errors import CycleError, MissingVertexError

Equation = Tuple[str, Sequence[str]]
Equations = Union[Mapping[str, Sequence[str]], Iterable[Equation]]


class SCM:
    """
    Causal graph built incrementally from equations.

    Examples:
        scm = SCM.from_equations({
            "Y": ["T", "W"],
            "T": ["W"],
        })
        scm.parents("T")  # ("W",)
    """

    def __init__(self, equations: Equations = ()):
        self.graph = nx.DiGraph()
        self.add_equations(equations)

    @classmethod
    def from_equations(cls, equations: Equations) -> "SCM":
        return cls(equations)

    def add_equation(self, outcome: str, parents: Sequence[str]) -> "SCM":
        """
        Add the equation ``outcome <- parents``.

        Parents are appended to any existing parents of ``outcome``. The graph
        is left untouched if the new edges would create a cycle.

        Raises:
            CycleError: if the resulting graph is not acyclic
        """
        outcome = str(outcome)
        new_edges = [(str(p), outcome) for p in parents if not self.graph.has_edge(str(p), outcome)]
        added_vertices = [v for v in {outcome, *(p for p, _ in new_edges)} if v not in self.graph]

        self.graph.add_node(outcome)
        self.graph.add_edges_from(new_edges)

        if not nx.is_directed_acyclic_graph(self.graph):
            cycle = nx.find_cycle(self.graph, source=outcome)
            self.graph.remove_edges_from(new_edges)
            self.graph.remove_nodes_from(added_vertices)
            raise CycleError(
                f"Equation for '{outcome}' introduces a cycle: "
                + " -> ".join(u for u, _ in cycle) + f" -> {cycle[0][0]}"
            )
        return self

    def add_equations(self, equations: Equations) -> "SCM":
        items = equations.items() if isinstance(equations, Mapping) else equations
        for outcome, parents in items:
            self.add_equation(outcome, parents)
        return self

    def parents(self, vertex: str) -> Tuple[str, ...]:
        """Direct causes of ``vertex``, sorted."""
        vertex = str(vertex)
        if vertex not in self.graph:
            raise MissingVertexError(
                f"Variable '{vertex}' is not a vertex of the causal graph. "
                f"Available: {sorted(self.graph.nodes)}"
            )
        return tuple(sorted(self.graph.predecessors(vertex)))

    def vertices(self) -> Tuple[str, ...]:
        return tuple(sorted(self.graph.nodes))

    def equations(self) -> dict:
        """Mapping from every non-root vertex to its parents."""
        return {
            v: self.parents(v)
            for v in nx.topological_sort(self.graph)
            if self.graph.in_degree(v) > 0
        }

    def __contains__(self, vertex: str) -> bool:
        return str(vertex) in self.graph

    def __repr__(self) -> str:
        eqs = ", ".join(f"{v} <- {', '.join(ps)}" for v, ps in self.equations().items())
        return f"SCM({eqs})"


def StaticSCM(
    outcomes: Sequence[str],
    treatments: Sequence[str],
    confounders: Sequence[str],
) -> SCM:
    """
    Build the usual static graph: confounders cause every treatment and every
    outcome, treatments cause every outcome.

    Args:
        outcomes: Outcome variable names
        treatments: Treatment variable names
        confounders: Confounder variable names

    Returns:
        SCM instance
    """
    confounders = list(confounders)
    equations = [(t, confounders) for t in treatments]
    equations += [(y, list(treatments) + confounders) for y in outcomes]
    return SCM(equations)
