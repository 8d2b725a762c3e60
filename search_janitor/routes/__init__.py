"""
API Routes — health, index count reconciliation, versioning cleanup.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from search_janitor import __version__
from search_janitor.config import settings
from search_janitor.dependencies import get_cleanup_job, get_search_host
from search_janitor.schemas import CleanupResponse, HealthResponse, StaleVersionsResponse
from search_janitor.services.index_health import (
    validate_index_posts_count,
    validate_index_users_count,
)
from search_janitor.services.search_host import SearchHostClient, SearchHostError
from search_janitor.services.versioning_cleanup import CleanupAlreadyRunning, VersioningCleanupJob

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Health ──────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health(job: VersioningCleanupJob = Depends(get_cleanup_job)):
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=settings.app_environment or "unset",
        scheduled=job.is_scheduled,
    )


@router.get("/health/index-counts", tags=["system"])
async def index_counts(client: SearchHostClient = Depends(get_search_host)):
    """Database vs index object counts for posts (per type) and users."""
    posts = await validate_index_posts_count(client)
    users = await validate_index_users_count(client)
    results = posts + users
    return {
        "results": results,
        "healthy": all("error" not in r and r["diff"] == 0 for r in results),
    }


# ── Versioning cleanup ──────────────────────────────────

@router.post("/admin/versioning-cleanup", response_model=CleanupResponse, tags=["admin"])
async def run_versioning_cleanup(job: VersioningCleanupJob = Depends(get_cleanup_job)):
    """Run one cleanup sweep now instead of waiting for the schedule."""
    started = datetime.now(timezone.utc)
    logger.info("🧹 Manual versioning cleanup requested")
    try:
        reports = await job.run_cleanup(trigger="manual")
    except CleanupAlreadyRunning:
        raise HTTPException(status_code=409, detail="Versioning cleanup is already running")
    return CleanupResponse(
        started_at=started.isoformat(),
        finished_at=datetime.now(timezone.utc).isoformat(),
        retention_window_seconds=job.policy.retention_window_seconds,
        indexables=reports,
    )


@router.get(
    "/admin/indexables/{slug}/stale-versions",
    response_model=StaleVersionsResponse,
    tags=["admin"],
)
async def stale_versions(
    slug: str,
    client: SearchHostClient = Depends(get_search_host),
    job: VersioningCleanupJob = Depends(get_cleanup_job),
):
    """Dry run — which versions the next sweep would delete."""
    try:
        versions = await client.list_versions(slug)
        active = await client.get_active_version(slug)
    except SearchHostError as e:
        raise HTTPException(status_code=502, detail=str(e))

    now = job.policy.now()
    return StaleVersionsResponse(
        indexable=slug,
        cutoff=job.policy.cutoff(now),
        active=active,
        stale=job.policy.select_stale_versions(versions, active, now=now),
    )
