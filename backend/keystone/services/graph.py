"""
Dependency graph operations using NetworkX.

This module handles:
- Validated edge insertion (self loops, duplicates, cycles)
- Predecessor / successor queries
- Deterministic topological ordering for the CPM passes
"""

import uuid
from typing import Iterable

import networkx as nx

from keystone.exceptions import (
    CycleDetectedError,
    DuplicateEdgeError,
    NotFoundError,
    SelfLoopError,
)
from keystone.logging_config import get_logger
from keystone.models.enums import RelationshipType
from keystone.services.snapshot import RelationshipRecord, ScheduleLoop, ScheduleSnapshot

logger = get_logger(__name__)


class DependencyGraph:
    """
    Directed graph of tasks where an edge predecessor -> successor carries a
    RelationshipRecord under the "relationship" attribute.

    The graph is acyclic at all times: add_edge refuses any edge whose successor
    can already reach its predecessor.
    """

    def __init__(
        self,
        task_ids: Iterable[uuid.UUID],
        relationships: Iterable[RelationshipRecord] = (),
        project_id: uuid.UUID | None = None,
    ):
        self.project_id = project_id
        self._graph = nx.DiGraph()
        self._graph.add_nodes_from(task_ids)
        for rel in relationships:
            self._graph.add_edge(rel.predecessor_id, rel.successor_id, relationship=rel)

    @classmethod
    def from_snapshot(cls, snapshot: ScheduleSnapshot) -> "DependencyGraph":
        return cls(
            snapshot.tasks.keys(),
            snapshot.relationships.values(),
            project_id=snapshot.project_id,
        )

    @property
    def nx_graph(self) -> nx.DiGraph:
        return self._graph

    @property
    def relationships(self) -> list[RelationshipRecord]:
        return [data["relationship"] for _, _, data in self._graph.edges(data=True)]

    def __contains__(self, task_id: uuid.UUID) -> bool:
        return task_id in self._graph

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    # =========================================================================
    # Nodes
    # =========================================================================

    def add_task(self, task_id: uuid.UUID) -> None:
        self._graph.add_node(task_id)

    def remove_tasks(self, task_ids: Iterable[uuid.UUID]) -> list[RelationshipRecord]:
        """
        Remove tasks and every edge touching them.

        Returns the removed relationships.
        """
        task_ids = {t for t in task_ids if t in self._graph}
        removed = [
            data["relationship"]
            for u, v, data in self._graph.edges(data=True)
            if u in task_ids or v in task_ids
        ]
        self._graph.remove_nodes_from(task_ids)
        return removed

    def _require_task(self, task_id: uuid.UUID, role: str = "Task") -> None:
        if task_id not in self._graph:
            raise NotFoundError(role, str(task_id))

    # =========================================================================
    # Edges
    # =========================================================================

    def find_path(self, source: uuid.UUID, target: uuid.UUID) -> list[uuid.UUID] | None:
        """Shortest path source -> target over existing edges, or None."""
        try:
            return nx.shortest_path(self._graph, source, target)
        except nx.NetworkXNoPath:
            return None

    def add_edge(
        self,
        predecessor_id: uuid.UUID,
        successor_id: uuid.UUID,
        type: RelationshipType = RelationshipType.FINISH_TO_START,
        lag_days: int = 0,
    ) -> RelationshipRecord:
        """
        Insert a relationship after validating it.

        Cycle check: if the successor already reaches the predecessor, the new
        edge would close that path into a loop. Validation happens before any
        change, so a rejected edge leaves the graph untouched.
        """
        self._require_task(predecessor_id, "Predecessor task")
        self._require_task(successor_id, "Successor task")

        if predecessor_id == successor_id:
            logger.warning(f"Self-loop rejected: {predecessor_id}")
            raise SelfLoopError(str(predecessor_id))

        if self._graph.has_edge(predecessor_id, successor_id):
            logger.warning(f"Duplicate relationship rejected: {predecessor_id} -> {successor_id}")
            raise DuplicateEdgeError(str(predecessor_id), str(successor_id))

        path = self.find_path(successor_id, predecessor_id)
        if path is not None:
            # predecessor -> successor -> ... -> (back to predecessor)
            loop_ids = [predecessor_id] + path[:-1]
            loop = ScheduleLoop(
                id=uuid.uuid4(),
                project_id=self.project_id,
                task_ids=loop_ids,
            )
            logger.warning(
                f"Cycle detected: {predecessor_id} -> {successor_id} closes a loop of {len(loop_ids)} task(s)"
            )
            raise CycleDetectedError(
                str(predecessor_id),
                str(successor_id),
                path=loop_ids + [predecessor_id],
                loop=loop,
            )

        rel = RelationshipRecord(
            predecessor_id=predecessor_id,
            successor_id=successor_id,
            type=RelationshipType(type),
            lag_days=lag_days,
        )
        self._graph.add_edge(predecessor_id, successor_id, relationship=rel)
        return rel

    def get_edge(self, predecessor_id: uuid.UUID, successor_id: uuid.UUID) -> RelationshipRecord:
        if not self._graph.has_edge(predecessor_id, successor_id):
            raise NotFoundError("Relationship", f"{predecessor_id}/{successor_id}")
        return self._graph.edges[predecessor_id, successor_id]["relationship"]

    def update_edge(
        self,
        predecessor_id: uuid.UUID,
        successor_id: uuid.UUID,
        type: RelationshipType | None = None,
        lag_days: int | None = None,
    ) -> RelationshipRecord:
        """Change type and/or lag; the endpoints, and so acyclicity, are unchanged."""
        rel = self.get_edge(predecessor_id, successor_id)
        if type is not None:
            rel.type = RelationshipType(type)
        if lag_days is not None:
            rel.lag_days = lag_days
        return rel

    def remove_edge(self, predecessor_id: uuid.UUID, successor_id: uuid.UUID) -> RelationshipRecord:
        rel = self.get_edge(predecessor_id, successor_id)
        self._graph.remove_edge(predecessor_id, successor_id)
        return rel

    # =========================================================================
    # Queries
    # =========================================================================

    def predecessors_of(self, task_id: uuid.UUID) -> list[RelationshipRecord]:
        self._require_task(task_id)
        return [
            self._graph.edges[pred, task_id]["relationship"]
            for pred in sorted(self._graph.predecessors(task_id), key=str)
        ]

    def successors_of(self, task_id: uuid.UUID) -> list[RelationshipRecord]:
        self._require_task(task_id)
        return [
            self._graph.edges[task_id, succ]["relationship"]
            for succ in sorted(self._graph.successors(task_id), key=str)
        ]

    def anchors(self) -> list[uuid.UUID]:
        """Tasks without predecessors."""
        return sorted(
            (n for n in self._graph.nodes if self._graph.in_degree(n) == 0),
            key=str,
        )

    def topological_order(self, key=str) -> list[uuid.UUID]:
        """
        Topological sort, stable across calls for the same graph.

        Ties are broken by ``key`` (task id text by default). Raises
        CycleDetectedError if the stored graph somehow contains a loop (for
        example, rows written around the engine).
        """
        try:
            return list(nx.lexicographical_topological_sort(self._graph, key=key))
        except nx.NetworkXUnfeasible:
            cycle = [u for u, _ in nx.find_cycle(self._graph)]
            logger.error(f"Cycle detected in stored graph: {cycle}")
            loop = ScheduleLoop(id=uuid.uuid4(), project_id=self.project_id, task_ids=cycle)
            raise CycleDetectedError(
                str(cycle[-1]), str(cycle[0]), path=cycle + [cycle[0]], loop=loop,
            )
