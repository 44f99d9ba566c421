"""
Merge rules for folding agent output into a graph.

- Entities: properties merged by :class:`MergeStrategy`, sources unioned.
- Relationships: idempotent by id; a repeat only extends ``sources``.
- Insights: appended, never de-duplicated.

Callers hold the graph's write lock. Inputs are deep-copied, so an agent
result can be merged into several graphs without aliasing.
"""

from enum import Enum
from typing import Any

from pharma_kg.models import Entity, Insight, KnowledgeGraph, Relationship, utcnow

CONFIDENCE_KEY = "confidence"


class MergeStrategy(str, Enum):
    OVERWRITE = "overwrite"
    KEEP_FIRST = "keep_first"
    KEEP_HIGHEST_CONFIDENCE = "keep_highest_confidence"


def _confidence(properties: dict[str, Any]) -> float:
    value = properties.get(CONFIDENCE_KEY)
    return float(value) if isinstance(value, int | float) and not isinstance(value, bool) else 0.0


def merge_properties(
    existing: dict[str, Any],
    incoming: dict[str, Any],
    strategy: MergeStrategy = MergeStrategy.OVERWRITE,
) -> dict[str, Any]:
    """
    Combine two property maps.

    overwrite: incoming values win (last write wins by processing order).
    keep_first: existing values win; incoming only fills missing keys.
    keep_highest_confidence: the side with the higher ``confidence`` wins,
    ties keep the existing values; the loser still fills missing keys.
    """
    match strategy:
        case MergeStrategy.OVERWRITE:
            return {**existing, **incoming}
        case MergeStrategy.KEEP_FIRST:
            return {**incoming, **existing}
        case MergeStrategy.KEEP_HIGHEST_CONFIDENCE:
            if _confidence(incoming) > _confidence(existing):
                return {**existing, **incoming}
            return {**incoming, **existing}
    raise ValueError(f"Unknown merge strategy: {strategy}")


def merge_entity(
    graph: KnowledgeGraph,
    entity: Entity,
    source_id: str,
    strategy: MergeStrategy = MergeStrategy.OVERWRITE,
) -> Entity:
    """Insert or merge one entity, attributing it to ``source_id``."""
    existing = graph.entities.get(entity.id)
    if existing is None:
        merged = entity.model_copy(deep=True)
        merged.add_source(source_id)
        graph.entities[merged.id] = merged
        return merged

    incoming = entity.model_copy(deep=True)
    existing.properties = merge_properties(existing.properties, incoming.properties, strategy)
    for sid in [*incoming.sources, source_id]:
        existing.add_source(sid)
    return existing


def merge_relationship(graph: KnowledgeGraph, relationship: Relationship, source_id: str) -> Relationship:
    """Insert a relationship once; repeats only extend its sources."""
    existing = graph.relationships.get(relationship.id)
    if existing is None:
        merged = relationship.model_copy(deep=True)
        merged.add_source(source_id)
        graph.relationships[merged.id] = merged
        return merged

    for sid in [*relationship.sources, source_id]:
        existing.add_source(sid)
    return existing


def append_insight(graph: KnowledgeGraph, insight: Insight, source_id: str | None, agent_id: str) -> Insight:
    stamped = insight.model_copy(
        deep=True,
        update={
            "source": insight.source or source_id,
            "agent": insight.agent or agent_id,
            "timestamp": insight.timestamp or utcnow(),
        },
    )
    graph.insights.append(stamped)
    return stamped


def merge_result(
    graph: KnowledgeGraph,
    entities: dict[str, Entity],
    relationships: dict[str, Relationship],
    insights: list[Insight],
    source_id: str,
    agent_id: str,
    strategy: MergeStrategy = MergeStrategy.OVERWRITE,
) -> None:
    """Fold one agent's output for one source into the graph."""
    for entity in entities.values():
        merge_entity(graph, entity, source_id, strategy)
    for relationship in relationships.values():
        merge_relationship(graph, relationship, source_id)
    for insight in insights:
        append_insight(graph, insight, source_id, agent_id)
