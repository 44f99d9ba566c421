"""
Graph queries.

Three shapes, all over a completed graph:
- entities: every entity of a type
- neighbors: entities reachable from a start entity within ``depth`` hops
- subgraph: the start entity, its neighbours, and the edges among them
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from pharma_kg.errors import EntityNotFoundError, GraphNotReadyError
from pharma_kg.models import (
    Direction,
    Entity,
    GraphQuery,
    GraphStatus,
    KnowledgeGraph,
    QueryKind,
    QueryResult,
    Relationship,
)


@dataclass
class Node:
    """Graph node."""
    id: str
    type: str
    label: str
    properties: dict = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)
    distance: int | None = None

    @classmethod
    def from_entity(cls, entity: Entity, distance: int | None = None) -> "Node":
        props = {k: v for k, v in entity.properties.items() if k != "name"}
        return cls(
            id=entity.id,
            type=entity.type,
            label=str(entity.name or entity.id),
            properties=props,
            sources=list(entity.sources),
            distance=distance,
        )

    def to_dict(self) -> dict:
        data = {"id": self.id, "type": self.type, "label": self.label, **self.properties, "sources": self.sources}
        if self.distance is not None:
            data["distance"] = self.distance
        return data


@dataclass
class Edge:
    """Graph edge."""
    id: str
    source: str
    target: str
    type: str
    properties: dict = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)

    @classmethod
    def from_relationship(cls, rel: Relationship) -> "Edge":
        return cls(
            id=rel.id,
            source=rel.source,
            target=rel.target,
            type=rel.type,
            properties=dict(rel.properties),
            sources=list(rel.sources),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
            **self.properties,
            "sources": self.sources,
        }


@dataclass
class Subgraph:
    """Extracted subgraph."""
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


def require_completed(graph: KnowledgeGraph) -> None:
    if graph.status is not GraphStatus.COMPLETED:
        raise GraphNotReadyError(graph.id, graph.status.value)


def _adjacency(
    graph: KnowledgeGraph,
    direction: Direction,
    relationship_types: list[str] | None,
) -> dict[str, list[str]]:
    allowed = set(relationship_types) if relationship_types else None
    adjacency: dict[str, list[str]] = {}
    for rel in graph.relationships.values():
        if allowed is not None and rel.type not in allowed:
            continue
        if direction in (Direction.OUT, Direction.BOTH):
            adjacency.setdefault(rel.source, []).append(rel.target)
        if direction in (Direction.IN, Direction.BOTH):
            adjacency.setdefault(rel.target, []).append(rel.source)
    return adjacency


def neighbors(
    graph: KnowledgeGraph,
    start: str,
    depth: int = 1,
    direction: Direction = Direction.BOTH,
    relationship_types: list[str] | None = None,
) -> dict[str, int]:
    """
    Breadth-first search from ``start``.

    Returns:
        Reachable entity id → hop distance (start excluded), in visit order
    """
    if start not in graph.entities:
        raise EntityNotFoundError(graph.id, start)

    adjacency = _adjacency(graph, direction, relationship_types)
    seen = {start: 0}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        if seen[current] >= depth:
            continue
        for nxt in sorted(adjacency.get(current, [])):
            if nxt not in seen and nxt in graph.entities:
                seen[nxt] = seen[current] + 1
                queue.append(nxt)
    del seen[start]
    return seen


def build_subgraph(graph: KnowledgeGraph, query: GraphQuery) -> Subgraph:
    """Start entity + neighbours within ``query.depth`` + the edges among them."""
    reached = neighbors(graph, query.entity_id, query.depth, query.direction, query.relationship_types)
    ids = list(reached)
    if query.limit:
        ids = ids[: max(query.limit - 1, 0)]
    members = {query.entity_id, *ids}

    sub = Subgraph()
    sub.nodes.append(Node.from_entity(graph.entities[query.entity_id], 0))
    sub.nodes.extend(Node.from_entity(graph.entities[eid], reached[eid]) for eid in ids)

    allowed = set(query.relationship_types) if query.relationship_types else None
    for rel in sorted(graph.relationships.values(), key=lambda r: r.id):
        if rel.source in members and rel.target in members and (allowed is None or rel.type in allowed):
            sub.edges.append(Edge.from_relationship(rel))
    return sub


def run_query(graph: KnowledgeGraph, query: GraphQuery | dict[str, Any]) -> QueryResult:
    """
    Execute a query against a completed graph.

    Raises:
        GraphNotReadyError: Graph is not completed
        EntityNotFoundError: Start entity does not exist
    """
    require_completed(graph)
    if not isinstance(query, GraphQuery):
        query = GraphQuery.model_validate(query)
    started = time.perf_counter()

    match query.kind:
        case QueryKind.ENTITIES:
            entities = sorted(graph.entities_of_type(query.entity_type), key=lambda e: e.id)
            if query.limit:
                entities = entities[: query.limit]
            results = [Node.from_entity(e).to_dict() for e in entities]
        case QueryKind.NEIGHBORS:
            reached = neighbors(graph, query.entity_id, query.depth, query.direction, query.relationship_types)
            items = list(reached.items())
            if query.limit:
                items = items[: query.limit]
            results = [Node.from_entity(graph.entities[eid], d).to_dict() for eid, d in items]
        case QueryKind.SUBGRAPH:
            results = [build_subgraph(graph, query).to_dict()]

    return QueryResult(
        query=query,
        results=results,
        metadata={
            "graph_id": graph.id,
            "count": len(results),
            "query_time_ms": round((time.perf_counter() - started) * 1000, 3),
        },
    )
