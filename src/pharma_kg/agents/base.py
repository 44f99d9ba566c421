"""
Base class and helpers for extraction agents.

Agents turn one source's record batch into entities, relationships and
insights. They hold no state between runs: ``run`` builds a fresh
:class:`AgentResult` and never touches the graph, so agents for different
sources (or different agents for the same source) can run in parallel.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from pharma_kg.models import DataSource, Entity, Insight, Record, Relationship, utcnow

WILDCARD = "all"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_name(name: Any) -> str:
    """
    Identity key for a name.

    Lowercase, each run of characters outside ``[a-z0-9]`` becomes a single
    ``_``, leading/trailing ``_`` removed. ``"Pfizer Inc."`` and
    ``"pfizer inc"`` both give ``pfizer_inc``.
    """
    return _NON_ALNUM.sub("_", str(name).lower()).strip("_")


def entity_id(entity_type: str, name: Any) -> str:
    return f"{entity_type}_{normalize_name(name)}"


def relationship_id(source_id: str, target_id: str) -> str:
    return f"rel_{source_id}_{target_id}"


def clean(properties: dict[str, Any]) -> dict[str, Any]:
    """Drop unset properties so a merge never overwrites a value with None."""
    return {k: v for k, v in properties.items() if v is not None and v != ""}


@dataclass
class AgentResult:
    """Entities, relationships and insights produced by one agent run."""

    entities: dict[str, Entity] = field(default_factory=dict)
    relationships: dict[str, Relationship] = field(default_factory=dict)
    insights: list[Insight] = field(default_factory=list)

    def add_entity(self, entity_type: str, name: Any, source_id: str, /, **properties) -> Entity | None:
        """
        Add (or update) an entity keyed by type + normalized name.

        Returns:
            The entity, or None when the name normalizes to nothing
        """
        key = normalize_name(name)
        if not key:
            return None
        eid = f"{entity_type}_{key}"
        props = clean(properties)
        existing = self.entities.get(eid)
        if existing is None:
            existing = Entity(id=eid, type=entity_type, properties=props, sources=[source_id])
            self.entities[eid] = existing
        else:
            existing.properties.update(props)
        return existing

    def link(self, source: Entity, target: Entity, rel_type: str, source_id: str, **properties) -> Relationship:
        """Add a relationship; repeated links between the same pair are no-ops."""
        rid = relationship_id(source.id, target.id)
        if rid not in self.relationships:
            self.relationships[rid] = Relationship(
                id=rid,
                source=source.id,
                target=target.id,
                type=rel_type,
                properties=clean(properties),
                sources=[source_id],
            )
        return self.relationships[rid]

    def count(self, entity_type: str) -> int:
        return sum(1 for e in self.entities.values() if e.type == entity_type)


class Agent(ABC):
    """Base class for extraction agents."""

    agent_id: str
    name: str
    description: str = ""
    capabilities: tuple[str, ...] = ()
    data_types: tuple[str, ...] = ()

    def accepts(self, data_type: str) -> bool:
        return WILDCARD in self.data_types or data_type in self.data_types

    @abstractmethod
    def run(self, records: list[Record], source: DataSource) -> AgentResult:
        """
        Extract graph content from one source's records.

        Args:
            records: Latest accepted record batch of the source
            source: The source the records came from

        Returns:
            A fresh AgentResult owned by the caller
        """
        pass

    def insight(self, insight_type: str, description: str, source: DataSource, **metrics) -> Insight:
        return Insight(
            type=insight_type,
            description=description,
            metrics=metrics,
            source=source.id,
            agent=self.agent_id,
            timestamp=utcnow(),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.agent_id!r})"
