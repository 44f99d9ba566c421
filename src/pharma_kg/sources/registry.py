"""
Data source registry.

Holds every registered source, refreshes them (API fetch or file
reprocessing), accepts uploads, and keeps the latest accepted record batch
of each source on disk. A failed refresh never touches the stored batch, so
the last good data stays available.

Persisted layout (under ``settings.data_dir``):
- data_sources.json: all sources keyed by id
- records/<source_id>.json: latest accepted records
- uploads/<source_id>.<ext>: copy of the last uploaded file
"""

from __future__ import annotations

import logging
import shutil
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from pharma_kg.config import Settings, settings
from pharma_kg.errors import (
    ConfigError,
    DuplicateSourceError,
    InvalidConfigError,
    ParseError,
    RefreshInProgressError,
    SourceNotFoundError,
    UpstreamError,
)
from pharma_kg.events import DataRefreshed, EventBus
from pharma_kg.ingest import annotate_provenance, normalize_payload, parse, transform, validate
from pharma_kg.ingest.validate import ValidationReport
from pharma_kg.jsonio import read_json, write_json
from pharma_kg.models import (
    DataQuality,
    DataSource,
    Record,
    SourceConfig,
    SourceKind,
    SourceStatus,
    utcnow,
)
from pharma_kg.sources.fetch import Fetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    """Outcome of processing an uploaded file."""
    source_id: str
    records_accepted: int
    records_rejected: int


def coerce_config(config: SourceConfig | dict[str, Any]) -> SourceConfig:
    """Validate a raw config mapping, mapping pydantic errors to InvalidConfigError."""
    if isinstance(config, SourceConfig):
        return config
    try:
        return SourceConfig.model_validate(config)
    except ValidationError as e:
        raise InvalidConfigError(f"Invalid source configuration: {e}") from e


class SourceRegistry:
    """Registry of data sources and their latest records."""

    def __init__(
        self,
        config: Settings | None = None,
        fetcher: Fetcher | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or settings
        self.config.ensure_dirs()
        self.fetcher = fetcher or Fetcher(config=self.config)
        self.events = events or EventBus()
        self._clock = clock
        self._sources: dict[str, DataSource] = {}
        self._lock = threading.RLock()
        self._in_flight: set[str] = set()
        self._load()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, config: SourceConfig | dict[str, Any]) -> DataSource:
        """
        Register a new data source.

        Args:
            config: SourceConfig or raw mapping (camelCase keys accepted)

        Returns:
            The registered DataSource

        Raises:
            DuplicateSourceError: id already registered
            InvalidConfigError: config failed validation
        """
        cfg = coerce_config(config)
        with self._lock:
            if cfg.id in self._sources:
                raise DuplicateSourceError(cfg.id)
            source = self._new_source(cfg)
            self._sources[cfg.id] = source
            self._save()
        logger.info("Data source registered: %s (%s, %s)", cfg.id, cfg.name, cfg.kind.value)
        return source.model_copy(deep=True)

    def deregister(self, source_id: str) -> DataSource:
        """Remove a source and its stored records."""
        with self._lock:
            source = self._require(source_id)
            del self._sources[source_id]
            self._save()
            self._records_path(source_id).unlink(missing_ok=True)
        logger.info("Data source deregistered: %s", source_id)
        return source

    def get(self, source_id: str) -> DataSource:
        with self._lock:
            return self._require(source_id).model_copy(deep=True)

    def list(self) -> list[DataSource]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sources.values()]

    def __contains__(self, source_id: object) -> bool:
        with self._lock:
            return source_id in self._sources

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, source_id: str) -> DataSource:
        """
        Refresh one source.

        API sources are fetched; file sources re-process their last upload.

        Returns:
            Updated DataSource

        Raises:
            SourceNotFoundError: Unknown id
            RefreshInProgressError: Same source is already refreshing
            UpstreamError: Fetch failed (failure is recorded on the source)
        """
        source = self.get(source_id)
        with self._refreshing(source_id):
            if source.kind is SourceKind.API:
                self._refresh_api(source)
            else:
                self._reprocess_file(source)
        return self.get(source_id)

    def is_refreshing(self, source_id: str) -> bool:
        with self._lock:
            return source_id in self._in_flight

    @contextmanager
    def _refreshing(self, source_id: str) -> Iterator[None]:
        with self._lock:
            if source_id in self._in_flight:
                raise RefreshInProgressError(source_id)
            self._in_flight.add(source_id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(source_id)

    def _refresh_api(self, source: DataSource) -> None:
        interval = source.refresh_interval or self.config.default_refresh_interval
        token = source.credentials.get_secret_value() if source.credentials else None
        logger.info("Refreshing live data source: %s", source.id)

        try:
            payload = self.fetcher.get_json(source.endpoint, token=token)
        except httpx.HTTPStatusError as e:
            message = f"API responded with status: {e.response.status_code}"
            self._record_failure(source.id, message, interval)
            raise UpstreamError(source.id, message) from e
        except httpx.HTTPError as e:
            message = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
            self._record_failure(source.id, message, interval)
            raise UpstreamError(source.id, message) from e
        except ValueError as e:
            message = f"Invalid JSON body: {e}"
            self._record_failure(source.id, message, interval)
            raise UpstreamError(source.id, message) from e

        records = normalize_payload(source.data_type, payload)
        report, batch = self._prepare(source, records)

        now = self._clock()
        with self._lock:
            # Deregistered while fetching: nothing may be written for it
            current = self._require(source.id)
            self._store_records(source.id, batch)
            current.status = SourceStatus.ACTIVE
            current.data_quality = DataQuality.VERIFIED
            current.record_count = len(batch)
            current.last_refresh_at = now
            current.next_refresh_at = now + interval
            current.last_error = None
            self._save()

        self.events.emit(DataRefreshed(source_id=source.id, record_count=len(batch)))
        logger.info(
            "Live data source refreshed: %s - %d records (%d rejected)",
            source.id,
            len(batch),
            report.rejected,
        )

    def _record_failure(self, source_id: str, message: str, interval) -> None:
        logger.error("Failed to refresh data source %s: %s", source_id, message)
        with self._lock:
            current = self._sources.get(source_id)
            if current is None:
                return
            current.status = SourceStatus.ERROR
            current.data_quality = DataQuality.ERROR
            current.last_error = message
            current.next_refresh_at = self._clock() + interval
            self._save()

    def _reprocess_file(self, source: DataSource) -> None:
        if not source.upload_path or not Path(source.upload_path).exists():
            logger.warning("No uploaded file to reprocess for source: %s", source.id)
            return

        logger.info("Reprocessing file source: %s", source.id)
        try:
            report, batch = self._ingest_file(source, Path(source.upload_path))
        except ParseError as e:
            message = str(e)
            with self._lock:
                current = self._require(source.id)
                current.status = SourceStatus.ERROR
                current.data_quality = DataQuality.ERROR
                current.last_error = message
                self._save()
            raise UpstreamError(source.id, message) from e

        with self._lock:
            self._require(source.id)
            self._store_records(source.id, batch)
            self._mark_loaded(source.id, len(report.accepted))
        self.events.emit(DataRefreshed(source_id=source.id, record_count=len(report.accepted)))

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def upload_file(self, path: str | Path, config: SourceConfig | dict[str, Any]) -> UploadResult:
        """
        Parse, validate and store an uploaded CSV/JSON file.

        The first upload registers the source as a file source; later uploads
        replace its record batch. The registered configuration (schema,
        transformations) is used once a source exists.

        Args:
            path: Path of the uploaded file
            config: Source configuration for the file

        Returns:
            UploadResult with accepted/rejected counts

        Raises:
            ConfigError: Target is an API source, or config is invalid
            UnsupportedFormatError / ParseError: File cannot be parsed
        """
        cfg = coerce_config(config)
        path = Path(path)
        if cfg.kind is SourceKind.API:
            raise ConfigError(f"Uploads require a file source, got api source: {cfg.id}")

        with self._lock:
            existing = self._sources.get(cfg.id)
        if existing is not None and existing.kind is SourceKind.API:
            raise ConfigError(f"Cannot upload a file to api source: {cfg.id}")

        logger.info("Processing file upload: %s", path)
        source = existing or self._new_source(cfg.model_copy(update={"endpoint": str(path)}))

        with self._refreshing(cfg.id):
            report, batch = self._ingest_file(source, path)

            stored = self.config.uploads_dir / f"{cfg.id}{path.suffix.lower()}"
            if path.resolve() != stored.resolve():
                shutil.copyfile(path, stored)

            with self._lock:
                if cfg.id not in self._sources:
                    self._sources[cfg.id] = source
                    logger.info("Data source registered: %s (%s, file)", cfg.id, source.name)
                self._store_records(cfg.id, batch)
                self._sources[cfg.id].upload_path = str(stored)
                self._mark_loaded(cfg.id, len(report.accepted))

        self.events.emit(DataRefreshed(source_id=cfg.id, record_count=len(report.accepted)))
        logger.info(
            "File processed successfully: %s - %d accepted, %d rejected",
            path.name,
            len(report.accepted),
            report.rejected,
        )
        return UploadResult(
            source_id=cfg.id,
            records_accepted=len(report.accepted),
            records_rejected=report.rejected,
        )

    def _ingest_file(self, source: DataSource, path: Path) -> tuple[ValidationReport, list[Record]]:
        records = parse(path)
        return self._prepare(source, records)

    def _mark_loaded(self, source_id: str, record_count: int) -> None:
        with self._lock:
            current = self._require(source_id)
            current.status = SourceStatus.ACTIVE
            current.data_quality = DataQuality.VERIFIED
            current.record_count = record_count
            current.last_refresh_at = self._clock()
            current.last_error = None
            self._save()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _prepare(self, source: DataSource, records: list[Record]) -> tuple[ValidationReport, list[Record]]:
        """Validate → transform → annotate one batch."""
        report = validate(records, source.record_schema)
        transformed = transform(report.accepted, source.transformations)
        batch = annotate_provenance(
            transformed,
            source.id,
            primary_key=source.primary_key,
            ingested_at=self._clock(),
        )
        return report, batch

    def load_records(self, source_id: str) -> list[Record]:
        """Latest accepted record batch of a source (empty if none stored)."""
        self._require_exists(source_id)
        return read_json(self._records_path(source_id), default=[])

    def _store_records(self, source_id: str, records: list[Record]) -> None:
        write_json(self._records_path(source_id), records)

    def _records_path(self, source_id: str) -> Path:
        return self.config.records_dir / f"{source_id}.json"

    # ------------------------------------------------------------------
    # Data quality
    # ------------------------------------------------------------------

    def quality_metrics(self, source_id: str) -> dict[str, Any]:
        """Refresh/quality indicators for one source."""
        source = self.get(source_id)
        now = self._clock()
        overdue = bool(source.next_refresh_at and now > source.next_refresh_at)
        return {
            "source_id": source.id,
            "last_refresh_at": source.last_refresh_at.isoformat() if source.last_refresh_at else None,
            "record_count": source.record_count,
            "data_quality": source.data_quality.value,
            "last_error": source.last_error,
            "refresh_overdue": overdue,
            "needs_refresh": source.last_refresh_at is None or overdue,
        }

    def quality_report(self) -> dict[str, Any]:
        """Aggregate quality view over all sources, with recommendations."""
        report: dict[str, Any] = {
            "total_sources": 0,
            "sources_by_kind": {},
            "sources_by_quality": {},
            "refresh_status": {"up_to_date": 0, "needs_refresh": 0, "overdue": 0, "error": 0},
            "recommendations": [],
        }
        for source in self.list():
            metrics = self.quality_metrics(source.id)
            report["total_sources"] += 1
            kind = source.kind.value
            quality = source.data_quality.value
            report["sources_by_kind"][kind] = report["sources_by_kind"].get(kind, 0) + 1
            report["sources_by_quality"][quality] = report["sources_by_quality"].get(quality, 0) + 1

            if source.data_quality is DataQuality.ERROR:
                report["refresh_status"]["error"] += 1
                report["recommendations"].append({
                    "source_id": source.id,
                    "type": "error_resolution",
                    "priority": "high",
                    "description": f"Resolve error in {source.name}: {source.last_error}",
                })
            elif metrics["refresh_overdue"]:
                report["refresh_status"]["overdue"] += 1
                report["recommendations"].append({
                    "source_id": source.id,
                    "type": "refresh_overdue",
                    "priority": "medium",
                    "description": f"Refresh overdue data source: {source.name}",
                })
            elif metrics["needs_refresh"]:
                report["refresh_status"]["needs_refresh"] += 1
            else:
                report["refresh_status"]["up_to_date"] += 1
        return report

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _new_source(self, cfg: SourceConfig) -> DataSource:
        data = cfg.model_dump()
        if cfg.kind is SourceKind.API and cfg.refresh_interval is None:
            data["refresh_interval"] = self.config.default_refresh_interval
        return DataSource.model_validate({**data, "registered_at": self._clock()})

    def _require(self, source_id: str) -> DataSource:
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def _require_exists(self, source_id: str) -> None:
        with self._lock:
            self._require(source_id)

    def _save(self) -> None:
        doc = {sid: s.model_dump(mode="json", by_alias=True) for sid, s in self._sources.items()}
        write_json(self.config.registry_path, doc)

    def _load(self) -> None:
        doc = read_json(self.config.registry_path, default={})
        for sid, raw in doc.items():
            try:
                self._sources[sid] = DataSource.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping unreadable data source %s: %s", sid, e)
        if self._sources:
            logger.info("Loaded %d data sources", len(self._sources))
