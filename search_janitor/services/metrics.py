"""
Search Janitor — Prometheus metrics plugin.

Collectors register their metrics on a shared ``CollectorRegistry`` and get
two hooks: ``collect_metrics()`` right before a scrape is served (cheap,
throttled) and an optional ``process_metrics()`` run off the request path on
an hourly loop (expensive work, may be async).
"""

from __future__ import annotations

import inspect
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterable

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

from search_janitor.config import settings
from search_janitor.services.index_health import (
    validate_index_posts_count,
    validate_index_users_count,
)

logger = logging.getLogger(__name__)

SLOW_COLLECTION_SECONDS = 4 * 60


class Collector(ABC):
    """Base class for everything the plugin can load."""

    @abstractmethod
    def initialize(self, registry: CollectorRegistry) -> None:
        """Create this collector's metrics on ``registry``."""

    @abstractmethod
    def collect_metrics(self) -> None:
        """Last chance to update metrics before they are scraped."""


class MetricsPlugin:
    """Owns the registry and the loaded collectors."""

    _instance: MetricsPlugin | None = None

    def __init__(
        self,
        collection_ttl: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry: CollectorRegistry | None = None
        self._collectors: list[Collector] = []
        self._site_label = ""
        self._last_collection: float | None = None
        self._clock = clock
        self.collection_ttl = settings.metrics_collection_ttl if collection_ttl is None else collection_ttl

    @classmethod
    def get_instance(cls) -> MetricsPlugin:
        if cls._instance is None:
            cls._instance = cls()
            cls._instance.init_registry()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the shared instance (tests)."""
        cls._instance = None

    def init_registry(self) -> None:
        self.registry = CollectorRegistry()

    def load_collectors(self, candidates: Iterable[object]) -> None:
        """Initialize and keep every new ``Collector`` among ``candidates``."""
        if self.registry is None:
            self.init_registry()

        loaded = {id(c) for c in self._collectors}
        for candidate in candidates or []:
            if not isinstance(candidate, Collector):
                logger.warning("Ignoring non-collector %r", candidate)
                continue
            if id(candidate) in loaded:
                continue
            candidate.initialize(self.registry)
            self._collectors.append(candidate)
            loaded.add(id(candidate))

    def get_collectors(self) -> list[Collector]:
        return list(self._collectors)

    def collect_metrics(self) -> bool:
        """Run every collector, at most once per ``collection_ttl``. Returns True if it ran."""
        started = self._clock()
        if self._last_collection is not None and started - self._last_collection < self.collection_ttl:
            return False
        self._last_collection = started

        for collector in self._collectors:
            try:
                collector.collect_metrics()
            except Exception as e:
                logger.error("Collector %s failed: %s", type(collector).__name__, e)

        if self._clock() - started > SLOW_COLLECTION_SECONDS:
            logger.warning("Prometheus: collecting metrics took longer than expected")
        return True

    async def process_metrics(self) -> None:
        """Run ``process_metrics`` on collectors that define it."""
        for collector in self._collectors:
            process = getattr(collector, "process_metrics", None)
            if not callable(process):
                continue
            try:
                result = process()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Processing metrics for %s failed: %s", type(collector).__name__, e)

    def get_site_label(self) -> str:
        """Site id, rolled up into ``network`` on large multisite installs."""
        if self._site_label:
            return self._site_label

        self._site_label = str(settings.site_id)
        if settings.network_site_count > settings.max_network_sites:
            self._site_label = "network"
        return self._site_label

    def render(self) -> bytes:
        """Prometheus text exposition for the scrape endpoint."""
        if self.registry is None:
            self.init_registry()
        self.collect_metrics()
        return generate_latest(self.registry)


# ─────────────────────────────────────────────────────────────────────
# built-in collectors
# ─────────────────────────────────────────────────────────────────────

class VersioningCleanupCollector(Collector):
    """Counters fed by the versioning cleanup job."""

    def __init__(self):
        self.deleted: Counter | None = None
        self.failed: Counter | None = None
        self.stale: Gauge | None = None
        self.last_run: Gauge | None = None

    def initialize(self, registry: CollectorRegistry) -> None:
        labels = ["site", "indexable"]
        self.deleted = Counter(
            "search_versioning_deleted_versions",
            "Stale index versions deleted",
            labels, registry=registry,
        )
        self.failed = Counter(
            "search_versioning_delete_failures",
            "Stale index versions that failed to delete",
            labels, registry=registry,
        )
        self.stale = Gauge(
            "search_versioning_stale_versions",
            "Stale index versions found on the last sweep",
            labels, registry=registry,
        )
        self.last_run = Gauge(
            "search_versioning_last_run_timestamp_seconds",
            "When the last cleanup sweep finished",
            ["site"], registry=registry,
        )

    def collect_metrics(self) -> None:
        pass

    def _site(self) -> str:
        return MetricsPlugin.get_instance().get_site_label()

    def record_stale(self, indexable: str, count: int) -> None:
        if self.stale is not None:
            self.stale.labels(self._site(), indexable).set(count)

    def record_deleted(self, indexable: str) -> None:
        if self.deleted is not None:
            self.deleted.labels(self._site(), indexable).inc()

    def record_failed(self, indexable: str) -> None:
        if self.failed is not None:
            self.failed.labels(self._site(), indexable).inc()

    def record_run(self, timestamp: float | None = None) -> None:
        if self.last_run is not None:
            self.last_run.labels(self._site()).set(timestamp if timestamp is not None else time.time())


class IndexHealthCollector(Collector):
    """DB vs index count differences, refreshed off the request path."""

    def __init__(self, client):
        self.client = client
        self.diff: Gauge | None = None
        self.errors: Gauge | None = None

    def initialize(self, registry: CollectorRegistry) -> None:
        labels = ["site", "entity", "type"]
        self.diff = Gauge(
            "search_index_count_diff",
            "Index document count minus database object count",
            labels, registry=registry,
        )
        self.errors = Gauge(
            "search_index_count_error",
            "1 when the count check failed on the last pass",
            labels, registry=registry,
        )

    def collect_metrics(self) -> None:
        pass

    async def process_metrics(self) -> None:
        site = MetricsPlugin.get_instance().get_site_label()
        results = await validate_index_posts_count(self.client)
        results += await validate_index_users_count(self.client)

        for result in results:
            labels = (site, result["entity"], result["type"])
            if "error" in result:
                self.errors.labels(*labels).set(1)
                continue
            self.errors.labels(*labels).set(0)
            self.diff.labels(*labels).set(result["diff"])
