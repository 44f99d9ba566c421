"""
Pydantic models for sources, records and the knowledge graph.

These are the persisted shapes: the source registry and graph snapshots are
``model_dump(mode="json", by_alias=True)`` of the models below.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_serializer,
    model_validator,
)

Record = dict[str, Any]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Data sources
# ---------------------------------------------------------------------------


class SourceKind(str, Enum):
    API = "api"
    FILE = "file"


class SourceStatus(str, Enum):
    ACTIVE = "active"
    ERROR = "error"


class DataQuality(str, Enum):
    UNKNOWN = "unknown"
    VERIFIED = "verified"
    ERROR = "error"


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"
    OBJECT = "object"


class FieldSpec(BaseModel):
    """Schema entry for one record field."""
    type: FieldType = FieldType.STRING
    required: bool = False


class RenameRule(BaseModel):
    """Move ``from`` to ``to``."""
    type: Literal["rename"] = "rename"
    from_: str = Field(validation_alias=AliasChoices("from", "from_"), serialization_alias="from")
    to: str


class FormatRule(BaseModel):
    """Reformat a field in place."""
    type: Literal["format"] = "format"
    field: str
    format: Literal["uppercase", "lowercase", "date"]


DeriveFunction = Literal["concat", "sum", "difference", "product", "ratio", "copy", "year", "coalesce"]


class DeriveRule(BaseModel):
    """Compute ``field`` from other fields with a named derivation."""
    type: Literal["derive"] = "derive"
    field: str
    function: DeriveFunction
    args: list[str] = Field(min_length=1)
    separator: str = " "


TransformRule = Annotated[RenameRule | FormatRule | DeriveRule, Field(discriminator="type")]


class SourceConfig(BaseModel):
    """Caller-supplied configuration of a data source."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = ""
    kind: SourceKind = Field(
        default=SourceKind.FILE,
        validation_alias=AliasChoices("kind", "type"),
    )
    endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("endpoint", "url", "endpointOrPath"),
    )
    credentials: SecretStr | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("credentials", "apiKey", "api_key"),
    )
    data_type: str = Field(validation_alias=AliasChoices("data_type", "dataType"))
    refresh_interval: timedelta | None = Field(
        default=None,
        validation_alias=AliasChoices("refresh_interval", "refreshInterval"),
        description="API sources only; numbers are seconds",
    )
    record_schema: dict[str, FieldSpec] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("schema", "record_schema"),
        serialization_alias="schema",
    )
    transformations: list[TransformRule] = Field(default_factory=list)
    primary_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("primary_key", "primaryKey"),
    )

    @model_validator(mode="after")
    def _check_kind(self) -> "SourceConfig":
        if not self.name:
            self.name = self.id
        if self.kind is SourceKind.API and not self.endpoint:
            raise ValueError("api sources require an endpoint")
        if self.refresh_interval is not None and self.refresh_interval <= timedelta(0):
            raise ValueError("refresh_interval must be positive")
        return self

    @field_serializer("credentials", when_used="json")
    def _dump_credentials(self, value: SecretStr | None) -> str | None:
        # The registry document is the only JSON consumer and must round-trip
        return value.get_secret_value() if value else None


class DataSource(SourceConfig):
    """A registered source plus its refresh lifecycle state."""

    status: SourceStatus = SourceStatus.ACTIVE
    data_quality: DataQuality = DataQuality.UNKNOWN
    record_count: int = 0
    last_refresh_at: datetime | None = None
    next_refresh_at: datetime | None = None
    last_error: str | None = None
    upload_path: str | None = None
    registered_at: datetime = Field(default_factory=utcnow)

    def public_dict(self) -> dict[str, Any]:
        """JSON-safe view with credentials masked."""
        data = self.model_dump(mode="json", by_alias=True)
        if data.get("credentials"):
            data["credentials"] = "**********"
        return data


# ---------------------------------------------------------------------------
# Knowledge graph
# ---------------------------------------------------------------------------


class Entity(BaseModel):
    """Typed graph node; ``id`` is ``{type}_{normalized name}``."""

    id: str
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)

    @property
    def name(self) -> str | None:
        return self.properties.get("name")

    def add_source(self, source_id: str) -> None:
        if source_id not in self.sources:
            self.sources.append(source_id)


class Relationship(BaseModel):
    """Directed edge; ``id`` is ``rel_{source}_{target}``."""

    id: str
    source: str
    target: str
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)

    def add_source(self, source_id: str) -> None:
        if source_id not in self.sources:
            self.sources.append(source_id)


class Insight(BaseModel):
    """Derived summary statistic; the graph keeps these as an audit trail."""

    type: str
    description: str
    metrics: dict[str, Any] = Field(default_factory=dict)
    source: str | None = None
    agent: str | None = None
    timestamp: datetime | None = None


class GraphStatus(str, Enum):
    BUILDING = "building"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentFailure(BaseModel):
    agent: str
    source: str
    error: str


class GraphMetadata(BaseModel):
    entity_count: int = 0
    relationship_count: int = 0
    data_quality: Literal["unknown", "verified", "partial"] = "unknown"
    last_updated: datetime = Field(default_factory=utcnow)
    sources_processed: list[str] = Field(default_factory=list)
    sources_skipped: list[str] = Field(default_factory=list)
    agent_failures: list[AgentFailure] = Field(default_factory=list)


class KnowledgeGraph(BaseModel):
    """One build of the knowledge graph."""

    id: str
    created_at: datetime = Field(default_factory=utcnow)
    status: GraphStatus = GraphStatus.BUILDING
    sources: list[str] = Field(default_factory=list)
    entities: dict[str, Entity] = Field(default_factory=dict)
    relationships: dict[str, Relationship] = Field(default_factory=dict)
    insights: list[Insight] = Field(default_factory=list)
    metadata: GraphMetadata = Field(default_factory=GraphMetadata)

    def entities_of_type(self, entity_type: str) -> list[Entity]:
        return [e for e in self.entities.values() if e.type == entity_type]

    def summary(self) -> dict[str, Any]:
        """Small JSON-safe description (no entity payloads)."""
        return {
            "id": self.id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "sources": list(self.sources),
            "entity_count": len(self.entities),
            "relationship_count": len(self.relationships),
            "insight_count": len(self.insights),
            "data_quality": self.metadata.data_quality,
        }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class QueryKind(str, Enum):
    ENTITIES = "entities"
    NEIGHBORS = "neighbors"
    SUBGRAPH = "subgraph"


class Direction(str, Enum):
    OUT = "out"
    IN = "in"
    BOTH = "both"


class GraphQuery(BaseModel):
    """Subgraph retrieval request."""

    kind: QueryKind = QueryKind.ENTITIES
    entity_type: str | None = None
    entity_id: str | None = None
    depth: int = Field(default=1, ge=1, le=5)
    relationship_types: list[str] | None = None
    direction: Direction = Direction.BOTH
    limit: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_target(self) -> "GraphQuery":
        if self.kind is QueryKind.ENTITIES and not self.entity_type:
            raise ValueError("entities queries require entity_type")
        if self.kind is not QueryKind.ENTITIES and not self.entity_id:
            raise ValueError(f"{self.kind.value} queries require entity_id")
        return self


class QueryResult(BaseModel):
    query: GraphQuery
    results: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
