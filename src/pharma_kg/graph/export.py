"""
Graph export formats.

- json: nodes, edges, insights, metadata
- cypher: idempotent MERGE statements (one per node / edge)
- graphlib: the JSON produced by ``graphlib.json.write`` (dagre/graphlib)
"""

import json
import math
import re
from typing import Any

from pharma_kg.errors import UnsupportedFormatError
from pharma_kg.graph.query import Edge, Node, require_completed
from pharma_kg.models import KnowledgeGraph

EXPORT_FORMATS = ("json", "cypher", "graphlib")

_LABEL_CHARS = re.compile(r"[^A-Za-z0-9_]")


def _nodes(graph: KnowledgeGraph) -> list[Node]:
    return [Node.from_entity(e) for e in sorted(graph.entities.values(), key=lambda e: e.id)]


def _edges(graph: KnowledgeGraph) -> list[Edge]:
    return [Edge.from_relationship(r) for r in sorted(graph.relationships.values(), key=lambda r: r.id)]


def to_json(graph: KnowledgeGraph) -> dict[str, Any]:
    return {
        "id": graph.id,
        "created_at": graph.created_at.isoformat(),
        "status": graph.status.value,
        "sources": list(graph.sources),
        "nodes": [n.to_dict() for n in _nodes(graph)],
        "edges": [e.to_dict() for e in _edges(graph)],
        "insights": [i.model_dump(mode="json") for i in graph.insights],
        "metadata": graph.metadata.model_dump(mode="json"),
    }


def to_graphlib(graph: KnowledgeGraph) -> dict[str, Any]:
    nodes = []
    for entity in sorted(graph.entities.values(), key=lambda e: e.id):
        value = {"type": entity.type, "label": entity.name or entity.id, **entity.properties, "sources": entity.sources}
        nodes.append({"v": entity.id, "value": value})
    edges = []
    for rel in sorted(graph.relationships.values(), key=lambda r: r.id):
        value = {"id": rel.id, "type": rel.type, **rel.properties, "sources": rel.sources}
        edges.append({"v": rel.source, "w": rel.target, "value": value})
    return {
        "options": {"directed": True, "multigraph": False, "compound": False},
        "nodes": nodes,
        "edges": edges,
        "value": {"id": graph.id, **graph.metadata.model_dump(mode="json", include={"entity_count", "relationship_count"})},
    }


# ---------------------------------------------------------------------------
# Cypher
# ---------------------------------------------------------------------------


def cypher_label(value: str) -> str:
    """CamelCase label from an entity type (``clinical_trial`` → ``ClinicalTrial``)."""
    label = "".join(part.capitalize() for part in value.split("_") if part)
    label = _LABEL_CHARS.sub("", label)
    return label or "Entity"


def cypher_rel_type(value: str) -> str:
    return _LABEL_CHARS.sub("_", value.upper()) or "RELATED_TO"


def cypher_value(value: Any) -> str:
    """Render a Python value as a Cypher literal."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and not math.isfinite(value):
        return "null"
    if isinstance(value, int | float):
        return repr(value)
    if isinstance(value, list | tuple):
        return "[" + ", ".join(cypher_value(v) for v in value) + "]"
    if isinstance(value, dict):
        # Cypher properties cannot hold maps; store nested objects as JSON text
        return cypher_value(json.dumps(value, sort_keys=True, default=str))
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def cypher_map(properties: dict[str, Any]) -> str:
    items = []
    for key, value in properties.items():
        name = key if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", key) else f"`{key.replace('`', '``')}`"
        items.append(f"{name}: {cypher_value(value)}")
    return "{" + ", ".join(items) + "}"


def to_cypher(graph: KnowledgeGraph) -> str:
    lines = [f"// Knowledge graph {graph.id}"]
    for entity in sorted(graph.entities.values(), key=lambda e: e.id):
        props = {**entity.properties, "sources": entity.sources}
        lines.append(
            f"MERGE (n:{cypher_label(entity.type)} {{id: {cypher_value(entity.id)}}}) "
            f"SET n += {cypher_map(props)};"
        )
    for rel in sorted(graph.relationships.values(), key=lambda r: r.id):
        source = graph.entities.get(rel.source)
        target = graph.entities.get(rel.target)
        src_label = f":{cypher_label(source.type)}" if source else ""
        tgt_label = f":{cypher_label(target.type)}" if target else ""
        props = {**rel.properties, "sources": rel.sources}
        lines.append(
            f"MATCH (a{src_label} {{id: {cypher_value(rel.source)}}}), "
            f"(b{tgt_label} {{id: {cypher_value(rel.target)}}}) "
            f"MERGE (a)-[r:{cypher_rel_type(rel.type)} {{id: {cypher_value(rel.id)}}}]->(b) "
            f"SET r += {cypher_map(props)};"
        )
    return "\n".join(lines) + "\n"


def export_graph(graph: KnowledgeGraph, fmt: str) -> bytes:
    """
    Serialize a completed graph.

    Args:
        graph: Graph to export
        fmt: One of "json", "cypher", "graphlib"

    Returns:
        UTF-8 encoded export

    Raises:
        UnsupportedFormatError: Unknown format
        GraphNotReadyError: Graph is not completed
    """
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise UnsupportedFormatError(fmt, EXPORT_FORMATS)
    require_completed(graph)

    if fmt == "cypher":
        return to_cypher(graph).encode("utf-8")
    data = to_json(graph) if fmt == "json" else to_graphlib(graph)
    return json.dumps(data, indent=2, ensure_ascii=False, default=str).encode("utf-8")
