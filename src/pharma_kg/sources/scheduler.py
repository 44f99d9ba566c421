"""
Periodic refresh of API sources.

One daemon ``threading.Timer`` per source. A timer fires, refreshes its
source, then re-arms itself from the source's ``next_refresh_at``; failures
are already recorded on the source by the registry, so the scheduler only
logs them and keeps going.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from pharma_kg.errors import RefreshInProgressError, SourceNotFoundError, UpstreamError
from pharma_kg.models import SourceKind, utcnow
from pharma_kg.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Keeps every API source refreshed at its configured interval."""

    def __init__(
        self,
        registry: SourceRegistry,
        clock: Callable[[], datetime] = utcnow,
        min_delay: float = 1.0,
    ):
        self.registry = registry
        self._clock = clock
        self.min_delay = min_delay
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def scheduled(self) -> list[str]:
        with self._lock:
            return sorted(self._timers)

    def start(self) -> None:
        """Arm a timer for every registered API source."""
        with self._lock:
            self._running = True
        count = 0
        for source in self.registry.list():
            if source.kind is SourceKind.API:
                self.schedule(source.id)
                count += 1
        logger.info("Refresh scheduler started (%d api sources)", count)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        logger.info("Refresh scheduler stopped")

    def schedule(self, source_id: str, delay: float | None = None) -> None:
        """
        Arm (or re-arm) the timer for one source.

        Args:
            source_id: API source to refresh
            delay: Seconds until the refresh; computed from the source's
                ``next_refresh_at`` when omitted (0 if never refreshed)
        """
        if delay is None:
            delay = self._delay_for(source_id)
        timer = threading.Timer(delay, self._run, args=(source_id,))
        timer.daemon = True
        timer.name = f"refresh-{source_id}"
        with self._lock:
            if not self._running:
                return
            previous = self._timers.pop(source_id, None)
            if previous is not None:
                previous.cancel()
            self._timers[source_id] = timer
        timer.start()
        logger.debug("Refresh of %s scheduled in %.1fs", source_id, delay)

    def cancel(self, source_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(source_id, None)
        if timer is not None:
            timer.cancel()

    def _delay_for(self, source_id: str) -> float:
        source = self.registry.get(source_id)
        if source.next_refresh_at is None:
            return 0.0
        return max((source.next_refresh_at - self._clock()).total_seconds(), 0.0)

    def _run(self, source_id: str) -> None:
        with self._lock:
            if self._timers.get(source_id) is not threading.current_thread():
                return
        try:
            self.registry.refresh(source_id)
        except SourceNotFoundError:
            logger.info("Source %s was deregistered; dropping its schedule", source_id)
            with self._lock:
                self._timers.pop(source_id, None)
            return
        except RefreshInProgressError:
            logger.debug("Refresh of %s already running; skipping this tick", source_id)
        except UpstreamError as e:
            logger.warning("Scheduled refresh failed for %s: %s", source_id, e.message)
        except Exception:
            logger.exception("Unexpected error refreshing %s", source_id)

        with self._lock:
            # Cancelled or stopped while refreshing
            if self._timers.get(source_id) is not threading.current_thread():
                return
        try:
            delay = max(self._delay_for(source_id), self.min_delay)
        except SourceNotFoundError:
            with self._lock:
                self._timers.pop(source_id, None)
            return
        self.schedule(source_id, delay)
