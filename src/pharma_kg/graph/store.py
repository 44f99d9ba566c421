"""
Knowledge graph snapshots.

Graphs live in memory while the process runs and are written to
``graphs/<graph_id>.json`` when a build finishes. Reads go to memory first,
then disk, so a graph is readable by id right after it is saved.
"""

import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from pharma_kg.config import Settings, settings
from pharma_kg.errors import GraphNotFoundError, PersistenceError
from pharma_kg.jsonio import read_json, write_json
from pharma_kg.models import GraphStatus, KnowledgeGraph

logger = logging.getLogger(__name__)


class GraphStore:
    """In-memory graph map backed by JSON snapshots."""

    def __init__(self, config: Settings | None = None):
        self.config = config or settings
        self.config.graphs_dir.mkdir(parents=True, exist_ok=True)
        self._graphs: dict[str, KnowledgeGraph] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def lock_for(self, graph_id: str) -> threading.Lock:
        """Single-writer lock for one graph id."""
        with self._lock:
            return self._locks.setdefault(graph_id, threading.Lock())

    def path_for(self, graph_id: str) -> Path:
        return self.config.graphs_dir / f"{graph_id}.json"

    def remember(self, graph: KnowledgeGraph) -> None:
        """Keep a graph in memory without writing a snapshot."""
        with self._lock:
            self._graphs[graph.id] = graph

    def save(self, graph: KnowledgeGraph) -> None:
        """
        Write a snapshot and keep the graph in memory.

        Raises:
            PersistenceError: Snapshot could not be written
        """
        write_json(self.path_for(graph.id), graph.model_dump(mode="json", by_alias=True))
        self.remember(graph)
        logger.debug("Knowledge graph snapshot saved: %s", graph.id)

    def get(self, graph_id: str) -> KnowledgeGraph:
        """
        Copy of a graph by id; stored graphs are never handed out directly.

        Raises:
            GraphNotFoundError: Unknown id
            PersistenceError: Snapshot exists but cannot be read
        """
        with self._lock:
            graph = self._graphs.get(graph_id)
        if graph is not None:
            with self.lock_for(graph_id):
                return graph.model_copy(deep=True)

        path = self.path_for(graph_id)
        if not path.exists():
            raise GraphNotFoundError(graph_id)
        try:
            graph = KnowledgeGraph.model_validate(read_json(path))
        except ValidationError as e:
            raise PersistenceError(f"Corrupt graph snapshot {path}: {e}") from e
        self.remember(graph)
        return graph.model_copy(deep=True)

    def list(self, include_building: bool = False) -> list[KnowledgeGraph]:
        """Known graphs (memory + disk), newest first; in-progress builds only on request."""
        ids = {p.stem for p in self.config.graphs_dir.glob("*.json")}
        with self._lock:
            ids.update(self._graphs)
        graphs = []
        for graph_id in ids:
            try:
                graph = self.get(graph_id)
            except PersistenceError as e:
                logger.warning("Skipping unreadable graph snapshot: %s", e)
                continue
            if include_building or graph.status is not GraphStatus.BUILDING:
                graphs.append(graph)
        return sorted(graphs, key=lambda g: g.created_at, reverse=True)
