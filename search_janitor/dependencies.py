"""
Search Janitor — Process-wide service instances and their FastAPI dependencies.
"""

from search_janitor.services.metrics import (
    IndexHealthCollector,
    MetricsPlugin,
    VersioningCleanupCollector,
)
from search_janitor.services.search_host import SearchHostClient
from search_janitor.services.versioning_cleanup import VersioningCleanupJob

search_host = SearchHostClient()

cleanup_collector = VersioningCleanupCollector()
health_collector = IndexHealthCollector(search_host)

# The search host serves both the indexable list and the versions
cleanup_job = VersioningCleanupJob(
    indexables=search_host,
    versioning=search_host,
    collector=cleanup_collector,
)


def get_search_host() -> SearchHostClient:
    return search_host


def get_cleanup_job() -> VersioningCleanupJob:
    return cleanup_job


def get_metrics_plugin() -> MetricsPlugin:
    return MetricsPlugin.get_instance()
