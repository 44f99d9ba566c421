"""
Data source registry and refresh scheduling.

- registry.py: source configuration, refresh of API/file sources, uploads,
  latest record batch per source
- fetch.py: HTTP GET with explicit timeout and bounded retry
- scheduler.py: one self-rescheduling timer per API source
"""

from pharma_kg.sources.fetch import Fetcher
from pharma_kg.sources.registry import SourceRegistry, UploadResult
from pharma_kg.sources.scheduler import RefreshScheduler

__all__ = ["Fetcher", "RefreshScheduler", "SourceRegistry", "UploadResult"]
