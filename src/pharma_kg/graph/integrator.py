"""
Knowledge graph construction.

A build:
1. creates a graph in ``building`` state and emits GraphConstructionStarted
2. loads the latest records of each selected source
3. runs every relevant agent per source (thread pool, ``settings.max_workers``)
4. merges results in (source, agent) order under the graph's write lock
5. runs the cross-source integration pass
6. finalizes, snapshots and emits GraphConstructionCompleted

Agent failures are logged and recorded in ``metadata.agent_failures``; the
build continues without that agent's contribution. Only a failed snapshot
write fails the build.
"""

import logging
import uuid
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial

from pharma_kg.agents import Agent, AgentResult, default_agents, relationship_id, relevant_agents
from pharma_kg.agents.resolver import similarity
from pharma_kg.config import Settings, settings
from pharma_kg.errors import AgentError, PersistenceError, SourceNotFoundError
from pharma_kg.events import (
    EventBus,
    GraphConstructionCompleted,
    GraphConstructionFailed,
    GraphConstructionStarted,
)
from pharma_kg.graph.merge import MergeStrategy, append_insight, merge_result
from pharma_kg.graph.store import GraphStore
from pharma_kg.models import (
    AgentFailure,
    DataSource,
    GraphStatus,
    Insight,
    KnowledgeGraph,
    Record,
    Relationship,
    utcnow,
)
from pharma_kg.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)

INTEGRATOR_AGENT = "knowledge_integrator"

# Types whose names are free text worth fuzzy cross-referencing
CROSS_REFERENCE_TYPES = ("company", "drug", "intervention")

HUB_COUNT = 5


def new_graph_id() -> str:
    return f"kg_{utcnow():%Y%m%d%H%M%S}_{uuid.uuid4().hex[:8]}"


class GraphBuilder:
    """Builds knowledge graphs from registered sources."""

    def __init__(
        self,
        registry: SourceRegistry,
        store: GraphStore | None = None,
        events: EventBus | None = None,
        config: Settings | None = None,
        agents: list[Agent] | None = None,
    ):
        self.config = config or settings
        self.registry = registry
        self.store = store or GraphStore(self.config)
        self.events = events or registry.events
        self.agents = agents if agents is not None else default_agents(self.config)
        self.strategy = MergeStrategy(self.config.merge_strategy)

    def build(self, source_ids: list[str] | None = None) -> KnowledgeGraph:
        """
        Build a new knowledge graph.

        Args:
            source_ids: Sources to include (all registered sources when None)

        Returns:
            The completed graph

        Raises:
            PersistenceError: Snapshot write failed (``error.graph`` holds
                the graph, left in ``failed`` state)
        """
        graph = KnowledgeGraph(id=new_graph_id())
        self.store.remember(graph)
        lock = self.store.lock_for(graph.id)

        sources = self._select(graph, source_ids)
        logger.info("Building knowledge graph %s from %d sources", graph.id, len(sources))
        self.events.emit(GraphConstructionStarted(graph_id=graph.id, source_count=len(sources)))

        batches: list[tuple[DataSource, list[Record]]] = []
        for source in sources:
            try:
                records = self.registry.load_records(source.id)
            except (PersistenceError, SourceNotFoundError) as e:
                logger.warning("Could not load records for source %s; skipping: %s", source.id, e)
                graph.metadata.sources_skipped.append(source.id)
                continue
            if not records:
                logger.warning("No records available for source %s; skipping", source.id)
                graph.metadata.sources_skipped.append(source.id)
                continue
            batches.append((source, records))

        jobs = [
            (source, records, agent)
            for source, records in batches
            for agent in relevant_agents(self.agents, source.data_type)
        ]
        for (source, _, agent), outcome in zip(jobs, self._run_all(jobs), strict=True):
            if isinstance(outcome, AgentError):
                logger.error("%s", outcome)
                graph.metadata.agent_failures.append(
                    AgentFailure(agent=agent.agent_id, source=source.id, error=str(outcome.cause))
                )
                continue
            with lock:
                merge_result(
                    graph,
                    outcome.entities,
                    outcome.relationships,
                    outcome.insights,
                    source.id,
                    agent.agent_id,
                    self.strategy,
                )
            logger.debug(
                "Merged %s on %s: %d entities, %d relationships",
                agent.agent_id,
                source.id,
                len(outcome.entities),
                len(outcome.relationships),
            )

        with lock:
            for source, _ in batches:
                graph.sources.append(source.id)
                graph.metadata.sources_processed.append(source.id)
            self.integrate(graph)
            self._finalize(graph)

        try:
            self.store.save(graph)
        except PersistenceError as e:
            graph.status = GraphStatus.FAILED
            self.store.remember(graph)
            logger.error("Failed to save knowledge graph %s: %s", graph.id, e)
            self.events.emit(GraphConstructionFailed(graph_id=graph.id, error=str(e)))
            raise PersistenceError(str(e), graph=graph) from e

        logger.info(
            "Knowledge graph built: %s - %d entities, %d relationships",
            graph.id,
            graph.metadata.entity_count,
            graph.metadata.relationship_count,
        )
        self.events.emit(
            GraphConstructionCompleted(
                graph_id=graph.id,
                entity_count=graph.metadata.entity_count,
                relationship_count=graph.metadata.relationship_count,
            )
        )
        return graph.model_copy(deep=True)

    def _select(self, graph: KnowledgeGraph, source_ids: list[str] | None) -> list[DataSource]:
        if source_ids is None:
            return self.registry.list()
        selected = []
        for sid in dict.fromkeys(source_ids):
            if sid in self.registry:
                selected.append(self.registry.get(sid))
            else:
                logger.warning("Unknown data source %s; skipping", sid)
                graph.metadata.sources_skipped.append(sid)
        return selected

    # ------------------------------------------------------------------
    # Agent execution
    # ------------------------------------------------------------------

    @staticmethod
    def _run_agent(agent: Agent, records: list[Record], source: DataSource) -> AgentResult:
        try:
            return agent.run(records, source)
        except Exception as e:
            raise AgentError(agent.agent_id, source.id, e) from e

    def _run_all(self, jobs) -> list[AgentResult | AgentError]:
        """Run jobs, returning outcomes in job order."""
        if self.config.max_workers <= 1 or len(jobs) <= 1:
            return [self._outcome(partial(self._run_agent, agent, records, source)) for source, records, agent in jobs]

        with ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="agent") as pool:
            futures: list[Future] = [
                pool.submit(self._run_agent, agent, records, source)
                for source, records, agent in jobs
            ]
            return [self._outcome(future.result) for future in futures]

    @staticmethod
    def _outcome(call) -> AgentResult | AgentError:
        try:
            return call()
        except AgentError as e:
            return e

    # ------------------------------------------------------------------
    # Cross-source integration
    # ------------------------------------------------------------------

    def integrate(self, graph: KnowledgeGraph) -> None:
        """Cross-reference entities, discover relationships, add synthetic insights."""
        linked = self._cross_reference(graph)
        discovered = self._discover_relationships(graph)
        self._synthesize_insights(graph)
        logger.debug("Integration pass on %s: %d cross-references, %d discovered", graph.id, linked, discovered)

    def _add_relationship(self, graph: KnowledgeGraph, source: str, target: str, rel_type: str, **properties) -> bool:
        rid = relationship_id(source, target)
        if rid in graph.relationships or relationship_id(target, source) in graph.relationships:
            return False
        sources = list(dict.fromkeys([*graph.entities[source].sources, *graph.entities[target].sources]))
        graph.relationships[rid] = Relationship(
            id=rid,
            source=source,
            target=target,
            type=rel_type,
            properties=properties,
            sources=sources,
        )
        return True

    def _cross_reference(self, graph: KnowledgeGraph) -> int:
        """Link same-type entities from disjoint sources whose names are fuzzy-similar."""
        count = 0
        for entity_type in CROSS_REFERENCE_TYPES:
            candidates = sorted(
                (e for e in graph.entities_of_type(entity_type) if e.name),
                key=lambda e: (-len(e.sources), e.id),
            )
            for i, canonical in enumerate(candidates):
                for other in candidates[i + 1:]:
                    if set(canonical.sources) & set(other.sources):
                        continue
                    score = similarity(canonical.name, other.name)
                    if score < self.config.resolver_threshold:
                        continue
                    if self._add_relationship(
                        graph, other.id, canonical.id, "SAME_AS", method="fuzzy", score=round(score, 1)
                    ):
                        count += 1
        return count

    def _discover_relationships(self, graph: KnowledgeGraph) -> int:
        """An intervention and a drug with the same normalized name are the same substance."""
        count = 0
        for intervention in graph.entities_of_type("intervention"):
            drug_id = "drug_" + intervention.id.removeprefix("intervention_")
            if drug_id in graph.entities and self._add_relationship(
                graph, intervention.id, drug_id, "CORRESPONDS_TO", method="name_match"
            ):
                count += 1
        return count

    def _synthesize_insights(self, graph: KnowledgeGraph) -> None:
        total = len(graph.entities)
        shared = sum(1 for e in graph.entities.values() if len(e.sources) > 1)
        append_insight(
            graph,
            Insight(
                type="cross_source_overlap",
                description=f"{shared} of {total} entities are supported by more than one source",
                metrics={
                    "total_entities": total,
                    "multi_source_entities": shared,
                    "overlap_ratio": round(shared / total, 4) if total else 0.0,
                },
            ),
            None,
            INTEGRATOR_AGENT,
        )

        degree: Counter[str] = Counter()
        for rel in graph.relationships.values():
            degree[rel.source] += 1
            degree[rel.target] += 1
        hubs = [
            {"id": eid, "name": graph.entities[eid].name, "type": graph.entities[eid].type, "degree": d}
            for eid, d in sorted(degree.items(), key=lambda item: (-item[1], item[0]))[:HUB_COUNT]
        ]
        append_insight(
            graph,
            Insight(
                type="hub_entities",
                description=f"Top {len(hubs)} most connected entities",
                metrics={"hubs": hubs},
            ),
            None,
            INTEGRATOR_AGENT,
        )

    def _finalize(self, graph: KnowledgeGraph) -> None:
        meta = graph.metadata
        meta.entity_count = len(graph.entities)
        meta.relationship_count = len(graph.relationships)
        meta.last_updated = utcnow()
        if meta.agent_failures:
            meta.data_quality = "partial"
        elif meta.sources_processed:
            meta.data_quality = "verified"
        else:
            meta.data_quality = "unknown"
        graph.status = GraphStatus.COMPLETED
