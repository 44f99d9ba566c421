"""
Service facade.

:class:`PharmaKG` wires the registry, scheduler, graph builder and graph
store together and exposes the operations callers use: source management,
refresh and upload, graph build / fetch / query / export.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pharma_kg.config import Settings, settings
from pharma_kg.events import DataRefreshed, Event, EventBus
from pharma_kg.graph import GraphBuilder, GraphStore, export_graph, run_query
from pharma_kg.models import (
    DataSource,
    GraphQuery,
    KnowledgeGraph,
    QueryResult,
    SourceConfig,
    SourceKind,
    utcnow,
)
from pharma_kg.sources import Fetcher, RefreshScheduler, SourceRegistry, UploadResult

logger = logging.getLogger(__name__)


class PharmaKG:
    """Entry point for ingestion and knowledge graph operations."""

    def __init__(
        self,
        config: Settings | None = None,
        fetcher: Fetcher | None = None,
        builder: GraphBuilder | None = None,
    ):
        self.config = config or settings
        self.events = EventBus()
        self.registry = SourceRegistry(self.config, fetcher=fetcher, events=self.events)
        self.store = GraphStore(self.config)
        self.builder = builder or GraphBuilder(self.registry, self.store, self.events, self.config)
        self.scheduler = RefreshScheduler(self.registry)
        self._started_at = utcnow()
        self.events.subscribe(DataRefreshed, self._on_refreshed)

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def register_source(self, config: SourceConfig | dict[str, Any]) -> DataSource:
        """Register a source; API sources join the running scheduler."""
        source = self.registry.register(config)
        if source.kind is SourceKind.API and self.scheduler.running:
            self.scheduler.schedule(source.id)
        return source

    def deregister_source(self, source_id: str) -> DataSource:
        self.scheduler.cancel(source_id)
        return self.registry.deregister(source_id)

    def get_source(self, source_id: str) -> DataSource:
        return self.registry.get(source_id)

    def list_sources(self) -> list[DataSource]:
        return self.registry.list()

    def refresh_source(self, source_id: str) -> DataSource:
        return self.registry.refresh(source_id)

    def upload_file(self, path: str | Path, config: SourceConfig | dict[str, Any]) -> UploadResult:
        return self.registry.upload_file(path, config)

    def quality_report(self) -> dict[str, Any]:
        return self.registry.quality_report()

    # ------------------------------------------------------------------
    # Graphs
    # ------------------------------------------------------------------

    def build_graph(self, source_ids: list[str] | None = None) -> KnowledgeGraph:
        return self.builder.build(source_ids)

    def get_graph(self, graph_id: str) -> KnowledgeGraph:
        return self.store.get(graph_id)

    def list_graphs(self) -> list[KnowledgeGraph]:
        return self.store.list()

    def query_graph(self, graph_id: str, query: GraphQuery | dict[str, Any]) -> QueryResult:
        return run_query(self.store.get(graph_id), query)

    def export_graph(self, graph_id: str, fmt: str = "json") -> bytes:
        return export_graph(self.store.get(graph_id), fmt)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def subscribe(self, event_type: type[Event], handler: Callable[[Event], None]) -> Callable[[], None]:
        return self.events.subscribe(event_type, handler)

    def start_scheduler(self) -> None:
        self.scheduler.start()

    def stop_scheduler(self) -> None:
        self.scheduler.stop()

    def system_status(self) -> dict[str, Any]:
        sources = self.registry.list()
        graphs = self.store.list()
        return {
            "started_at": self._started_at.isoformat(),
            "data_dir": str(self.config.data_dir),
            "sources": {
                "total": len(sources),
                "api": sum(1 for s in sources if s.kind is SourceKind.API),
                "file": sum(1 for s in sources if s.kind is SourceKind.FILE),
                "errored": sum(1 for s in sources if s.last_error),
            },
            "graphs": {
                "total": len(graphs),
                "latest": graphs[0].summary() if graphs else None,
            },
            "scheduler": {
                "running": self.scheduler.running,
                "scheduled": self.scheduler.scheduled(),
            },
        }

    def close(self) -> None:
        self.scheduler.stop()
        self.registry.fetcher.close()

    def __enter__(self) -> "PharmaKG":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _on_refreshed(self, event: Event) -> None:
        logger.info("Data refreshed for %s (%d records); rebuild to include it", event.source_id, event.record_count)
