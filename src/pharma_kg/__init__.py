"""
pharma_kg: Pharmaceutical Intelligence Knowledge Graph

Fuses heterogeneous pharma data into one typed, provenance-tracked graph:

    DataSource → Parse/Validate → Extraction Agents → Integrator → KnowledgeGraph

Core constraints:
- Sources are polled JSON APIs (scheduled refresh) or uploaded CSV/JSON files
- Agents are pure functions of a record batch (safe to run in parallel)
- Entity identity is a deterministic function of type + normalized name
- Graph snapshots are plain JSON documents keyed by graph id
"""

__version__ = "0.1.0"
