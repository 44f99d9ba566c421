"""
Exception hierarchy for pharma_kg.

Only configuration, lookup and persistence errors are meant to reach API
callers; upstream and agent failures are recorded on source/graph state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pharma_kg.models import KnowledgeGraph


class PharmaKGError(Exception):
    """Base class for all pharma_kg errors."""


# Configuration ---------------------------------------------------------------


class ConfigError(PharmaKGError):
    """Bad source registration or upload target."""


class DuplicateSourceError(ConfigError):
    """A data source with this id is already registered."""

    def __init__(self, source_id: str):
        super().__init__(f"Data source already registered: {source_id}")
        self.source_id = source_id


class InvalidConfigError(ConfigError):
    """Source configuration failed validation."""


# Lookup ----------------------------------------------------------------------


class NotFoundError(PharmaKGError, KeyError):
    """Requested object does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class SourceNotFoundError(NotFoundError):
    def __init__(self, source_id: str):
        super().__init__(f"Data source not found: {source_id}")
        self.source_id = source_id


class GraphNotFoundError(NotFoundError):
    def __init__(self, graph_id: str):
        super().__init__(f"Knowledge graph not found: {graph_id}")
        self.graph_id = graph_id


class EntityNotFoundError(NotFoundError):
    def __init__(self, graph_id: str, entity_id: str):
        super().__init__(f"Entity not found in {graph_id}: {entity_id}")
        self.graph_id = graph_id
        self.entity_id = entity_id


class GraphNotReadyError(NotFoundError):
    """Graph exists but has not completed, so it is not queryable."""

    def __init__(self, graph_id: str, status: str):
        super().__init__(f"Knowledge graph {graph_id} is not completed (status={status})")
        self.graph_id = graph_id
        self.status = status


# Ingestion -------------------------------------------------------------------


class UpstreamError(PharmaKGError):
    """API source unreachable or answered with a non-2xx status."""

    def __init__(self, source_id: str, message: str):
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id
        self.message = message


class RefreshInProgressError(PharmaKGError):
    """A refresh of the same source is already running."""

    def __init__(self, source_id: str):
        super().__init__(f"Refresh already in progress: {source_id}")
        self.source_id = source_id


class ParseError(PharmaKGError):
    """Raw file content could not be decoded."""


class UnsupportedFormatError(ParseError, ValueError):
    """File or export format is not supported."""

    def __init__(self, fmt: str, supported: tuple[str, ...]):
        super().__init__(f"Unsupported format: {fmt!r} (supported: {', '.join(supported)})")
        self.format = fmt


# Graph construction ----------------------------------------------------------


class AgentError(PharmaKGError):
    """An extraction agent failed on one source."""

    def __init__(self, agent_id: str, source_id: str, cause: BaseException):
        super().__init__(f"Agent {agent_id} failed on {source_id}: {cause}")
        self.agent_id = agent_id
        self.source_id = source_id
        self.cause = cause


class PersistenceError(PharmaKGError):
    """A registry or snapshot write failed."""

    def __init__(self, message: str, graph: KnowledgeGraph | None = None):
        super().__init__(message)
        self.graph = graph
