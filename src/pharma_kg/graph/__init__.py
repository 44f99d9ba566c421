"""
Knowledge graph construction, storage, query and export.

Provides:
- GraphBuilder: runs agents over sources and merges their output
- GraphStore: in-memory graphs with JSON snapshots and per-graph write locks
- run_query: entity-type filter and bounded neighbour / subgraph traversal
- export_graph: json, cypher and graphlib serializations
"""

from pharma_kg.graph.export import EXPORT_FORMATS, export_graph
from pharma_kg.graph.integrator import GraphBuilder
from pharma_kg.graph.merge import MergeStrategy
from pharma_kg.graph.query import run_query
from pharma_kg.graph.store import GraphStore

__all__ = [
    "EXPORT_FORMATS",
    "GraphBuilder",
    "GraphStore",
    "MergeStrategy",
    "export_graph",
    "run_query",
]
