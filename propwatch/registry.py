"""
PropWatch Dependency Registry - Per-Entity Derived Property Graph
=================================================================

This module provides the dependency registry owned by every observable entity.
The registry maps each derived property to the set of base property names its
accessor reads, and keeps the reverse index so a change to a base property can
find its dependents without scanning every declaration.

Usage:
    registry = DependencyRegistry()

    # can_vote reads citizen and age
    registry.declare("can_vote", {"citizen", "age"})

    registry.dependents_of("age")       # ["can_vote"]
    registry.dependencies_of("can_vote")  # frozenset({"citizen", "age"})

The registry never records a derived property as its own dependency. It does
not reject longer cycles; those are caught during propagation by the bounded
depth check in `ObservableEntity`.
"""

from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, Iterator, List, Set


class DependencyRegistry:
    """
    Directed graph of derived properties and the base properties they read.

    The graph represents dependencies: edge P -> D means D is recomputed from P.

    Attributes:
        graph: Forward edges (property -> derived properties that read it)
        reverse_graph: Reverse edges (derived property -> properties it reads)
    """

    def __init__(self):
        """Initialize an empty registry."""
        self.graph: Dict[str, Set[str]] = defaultdict(set)
        self.reverse_graph: Dict[str, Set[str]] = {}
        # Declaration order of derived names, used to order dependents
        self._order: Dict[str, int] = {}
        self._counter = 0

    def declare(self, derived: str, dependencies: Iterable[str]) -> FrozenSet[str]:
        """
        Record the dependency set of a derived property.

        Redeclaring a derived property replaces its previous dependency set but
        keeps its original position in the propagation order.

        Args:
            derived: Name of the derived property
            dependencies: Names of the properties its accessor reads

        Returns:
            The recorded dependency set, without the derived name itself
        """
        if derived in self.reverse_graph:
            self._drop_edges(derived)
        else:
            self._order[derived] = self._counter
            self._counter += 1

        deps = frozenset(dep for dep in dependencies if dep != derived)
        self.reverse_graph[derived] = set(deps)
        for dep in deps:
            self.graph[dep].add(derived)
        return deps

    def dependencies_of(self, derived: str) -> FrozenSet[str]:
        """Get the property names a derived property reads."""
        return frozenset(self.reverse_graph.get(derived, ()))

    def dependents_of(self, name: str) -> List[str]:
        """
        Get the derived properties that read `name`, in declaration order.

        Returns a fresh list so callers may iterate while declarations change.
        """
        dependents = self.graph.get(name)
        if not dependents:
            return []
        return sorted(dependents, key=self._order.__getitem__)

    def _drop_edges(self, derived: str) -> None:
        for dep in self.reverse_graph[derived]:
            dependents = self.graph.get(dep)
            if dependents is not None:
                dependents.discard(derived)
                if not dependents:
                    del self.graph[dep]

    def __len__(self) -> int:
        """Return number of derived properties."""
        return len(self.reverse_graph)

    def __contains__(self, derived: str) -> bool:
        """Check if a derived property is registered."""
        return derived in self.reverse_graph

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.reverse_graph, key=self._order.__getitem__))

    def __str__(self) -> str:
        edges = sum(len(deps) for deps in self.reverse_graph.values())
        return f"DependencyRegistry(derived={len(self.reverse_graph)}, edges={edges})"
