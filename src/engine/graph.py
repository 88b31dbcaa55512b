"""Directed adjacency map for deliverable dependencies.

An edge ``a -> b`` means *a depends on b*. Pure data structure, no I/O:
the gateway builds one from the persisted edge set to guard inserts, and
the deliverable aggregator builds one from its loaded list.
"""

from collections.abc import Iterable, Sequence
from uuid import UUID


class DependencyGraph:
    """Adjacency lists keyed by deliverable id, insertion ordered."""

    def __init__(self) -> None:
        self._adjacency: dict[UUID, list[UUID]] = {}

    @classmethod
    def from_edges(cls, edges: Iterable[tuple[UUID, UUID]]) -> "DependencyGraph":
        graph = cls()
        for deliverable_id, depends_on_id in edges:
            graph.add_edge(deliverable_id, depends_on_id)
        return graph

    def add_edge(self, deliverable_id: UUID, depends_on_id: UUID) -> None:
        targets = self._adjacency.setdefault(deliverable_id, [])
        if depends_on_id not in targets:
            targets.append(depends_on_id)

    def has_path(self, start: UUID, goal: UUID) -> bool:
        """True if ``goal`` is reachable from ``start`` along dependency edges."""
        if start == goal:
            return True
        seen: set[UUID] = {start}
        stack = [start]
        while stack:
            node = stack.pop()
            for nxt in self._adjacency.get(node, ()):
                if nxt == goal:
                    return True
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return False

    def would_create_cycle(self, deliverable_id: UUID, depends_on_id: UUID) -> bool:
        # The new edge closes a cycle iff deliverable_id is already reachable
        # from depends_on_id (self loops included).
        return self.has_path(depends_on_id, deliverable_id)


def find_cycle_edge(
    existing: Iterable[tuple[UUID, UUID]],
    new_edges: Sequence[tuple[UUID, UUID]],
) -> tuple[UUID, UUID] | None:
    """Return the first edge in ``new_edges`` that would close a cycle.

    Edges are applied in order, so a batch that cycles within itself is
    caught too.
    """
    graph = DependencyGraph.from_edges(existing)
    for deliverable_id, depends_on_id in new_edges:
        if graph.would_create_cycle(deliverable_id, depends_on_id):
            return deliverable_id, depends_on_id
        graph.add_edge(deliverable_id, depends_on_id)
    return None
