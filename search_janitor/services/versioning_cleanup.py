"""
Search Janitor — Versioning cleanup job.

Weekly sweep that deletes stale, inactive index versions for every
indexable the search host knows about. Best effort: a failed delete is
alerted and simply retried on the next sweep, since the version will still
be judged stale. Nothing in here is allowed to take the process down.

The first sweep is delayed by a random 1..N days so a fleet of janitors
does not hit the search host at the same moment.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

from search_janitor.config import DAY_IN_SECONDS, settings
from search_janitor.database import async_session
from search_janitor.models.version_deletion import VersionDeletion
from search_janitor.schemas import IndexableCleanupReport, IndexableCollection
from search_janitor.services.metrics import VersioningCleanupCollector
from search_janitor.services.notify import send_alert
from search_janitor.services.retention import RetentionPolicy
from search_janitor.services.search_host import (
    IndexableRegistry,
    SearchHostError,
    VersioningService,
)

logger = logging.getLogger(__name__)

JOB_NAME = "search_versioning_cleanup"


class CleanupAlreadyRunning(Exception):
    """A sweep is in progress in this process."""


def first_run_delay() -> int:
    """Random 1..``cleanup_max_jitter_days`` days, in seconds."""
    return random.randint(1, settings.cleanup_max_jitter_days) * DAY_IN_SECONDS


class VersioningCleanupJob:
    def __init__(
        self,
        indexables: IndexableRegistry,
        versioning: VersioningService,
        policy: RetentionPolicy | None = None,
        collector: VersioningCleanupCollector | None = None,
        alert: Callable[[str], Awaitable[bool]] | None = None,
        session_factory=None,
    ):
        self.indexables = indexables
        self.versioning = versioning
        self.policy = policy or RetentionPolicy.from_settings(settings)
        self.collector = collector
        self._alert = alert or send_alert
        self._session_factory = session_factory
        self._task: asyncio.Task | None = None
        self._sweep_lock = asyncio.Lock()

    # ── scheduling ─────────────────────────────────────────

    def init(self) -> asyncio.Task | None:
        """Schedule the sweep, but only inside a known application environment."""
        if not settings.app_environment:
            logger.info("ℹ️ No app environment configured — versioning cleanup not scheduled")
            return None
        return self.schedule_job()

    def schedule_job(self, first_delay: float | None = None) -> asyncio.Task:
        """Start the periodic sweep unless it is already scheduled."""
        if self.is_scheduled:
            return self._task

        delay = first_run_delay() if first_delay is None else first_delay
        interval = settings.cleanup_interval_days * DAY_IN_SECONDS
        self._task = asyncio.create_task(self._run_periodically(delay, interval), name=JOB_NAME)
        logger.info(
            "🗓️ Versioning cleanup scheduled — first run in %.1f days, then every %d days",
            delay / DAY_IN_SECONDS, settings.cleanup_interval_days,
        )
        return self._task

    @property
    def is_scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run_periodically(self, first_delay: float, interval: float) -> None:
        delay = first_delay
        while True:
            try:
                await asyncio.sleep(delay)
                await self.run_cleanup()
            except asyncio.CancelledError:
                break
            except CleanupAlreadyRunning:
                logger.info("⏭️ Versioning cleanup already in progress — skipping scheduled run")
            except Exception as e:
                logger.error("Versioning cleanup sweep error: %s", e)
            delay = interval

    # ── sweep ──────────────────────────────────────────────

    async def run_cleanup(
        self,
        all_indexables: list[IndexableCollection] | None = None,
        trigger: str = "schedule",
    ) -> list[IndexableCleanupReport]:
        """
        Delete stale inactive versions of every indexable.

        Only one sweep runs at a time per job; a second caller gets
        ``CleanupAlreadyRunning`` instead of issuing duplicate deletes.
        """
        if self._sweep_lock.locked():
            raise CleanupAlreadyRunning(f"{JOB_NAME} is already running")

        async with self._sweep_lock:
            return await self._sweep(all_indexables, trigger)

    @property
    def is_running(self) -> bool:
        return self._sweep_lock.locked()

    async def _sweep(
        self,
        all_indexables: list[IndexableCollection] | None,
        trigger: str,
    ) -> list[IndexableCleanupReport]:
        if all_indexables is None:
            try:
                all_indexables = await self.indexables.get_all()
            except SearchHostError as e:
                logger.error("❌ Could not list indexables — skipping sweep: %s", e)
                return []

        logger.info("🧹 Versioning cleanup: sweeping %d indexables...", len(all_indexables))
        reports = []
        for indexable in all_indexables:
            try:
                reports.append(await self._cleanup_indexable(indexable, trigger))
            except Exception as e:
                logger.error("❌ Versioning cleanup of '%s' failed: %s", indexable.slug, e)
                self._record_skipped(indexable.slug)
                reports.append(IndexableCleanupReport(indexable=indexable.slug, skipped=True, error=str(e)))

        if self.collector:
            self.collector.record_run()
        logger.info(
            "🧹 Versioning cleanup complete — %d deleted, %d failed",
            sum(len(r.deleted) for r in reports),
            sum(len(r.failed) for r in reports),
        )
        return reports

    async def _cleanup_indexable(self, indexable: IndexableCollection, trigger: str) -> IndexableCleanupReport:
        report = IndexableCleanupReport(indexable=indexable.slug)

        try:
            versions = await self.versioning.list_versions(indexable)
            active = await self.versioning.get_active_version(indexable)
        except SearchHostError as e:
            logger.error("❌ Could not load versions for '%s': %s", indexable.slug, e)
            self._record_skipped(indexable.slug)
            report.skipped = True
            report.error = str(e)
            return report

        if active is None or not active.activated_time:
            logger.info("⏭️ '%s' has no dated active version — skipping", indexable.slug)
            self._record_skipped(indexable.slug)
            report.skipped = True
            return report

        stale = self.policy.select_stale_versions(versions, active)
        report.stale = [v.number for v in stale]
        if self.collector:
            self.collector.record_stale(indexable.slug, len(stale))

        for version in stale:
            # The two reads above are not atomic; never touch the active version
            if version.active or version.number == active.number:
                logger.warning(
                    "Version %d of '%s' is active — not deleting", version.number, indexable.slug,
                )
                continue

            if await self.delete_version(indexable.slug, version.number, trigger=trigger):
                report.deleted.append(version.number)
            else:
                report.failed.append(version.number)

        return report

    def _record_skipped(self, indexable_slug: str) -> None:
        # Nothing was judged stale this pass
        if self.collector:
            self.collector.record_stale(indexable_slug, 0)

    async def delete_version(self, indexable_slug: str, version_number: int, trigger: str = "schedule") -> bool:
        """Delete one stale version. Alerts on failure, records on success."""
        try:
            await self.versioning.delete_version(indexable_slug, version_number)
        except SearchHostError as e:
            error_message = getattr(e, "message", str(e))
            message = (
                f"Application {settings.site_id} - {settings.home_url} Unsuccessfully deleted "
                f"inactive index version {version_number} for '{indexable_slug}' indexable: {error_message}"
            )
            logger.error("❌ %s", message)
            await self._alert(message)
            if self.collector:
                self.collector.record_failed(indexable_slug)
            await self._record(indexable_slug, version_number, "failed", error_message, trigger)
            return False

        extra = {
            "feature": "search_versioning",
            "homeurl": settings.home_url,
            "version_deleted": version_number,
            "indexable": indexable_slug,
        }
        logger.info("✅ Successfully deleted inactive index version", extra=extra)
        if self.collector:
            self.collector.record_deleted(indexable_slug)
        await self._record(
            indexable_slug, version_number, "deleted",
            "Successfully deleted inactive index version", trigger,
        )
        return True

    async def _record(self, indexable: str, version: int, status: str, message: str, trigger: str) -> None:
        entry = VersionDeletion(
            indexable=indexable,
            version_number=version,
            status=status,
            message=message,
            extra_data={"homeurl": settings.home_url, "trigger": trigger},
        )
        try:
            async with (self._session_factory or async_session)() as session:
                session.add(entry)
                await session.commit()
        except Exception as e:
            logger.warning(f"Failed to write deletion record: {e}")
