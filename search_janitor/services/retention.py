"""
Search Janitor — Stale index version retention policy.

Two safety layers decide which versions of an indexable may be deleted:

1. A global holdback: while the active version was activated inside the
   retention window, nothing is deleted, so its predecessor stays around as
   a rollback target no matter how old it is.
2. A per-version age check: only inactive versions created before the
   cutoff are proposed.

Missing data never leads to a deletion.
"""

from __future__ import annotations

import time
from typing import Callable, Sequence

from search_janitor.config import Settings
from search_janitor.schemas import IndexVersion

LEGACY_VERSION_NUMBER = 1


class RetentionPolicy:
    """Pure selection of stale, inactive index versions."""

    def __init__(
        self,
        retention_window_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        if retention_window_seconds <= 0:
            raise ValueError("retention_window_seconds must be positive")
        self.retention_window_seconds = retention_window_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "RetentionPolicy":
        return cls(settings.retention_window_seconds, clock=clock)

    def now(self) -> int:
        return int(self._clock())

    def cutoff(self, now: int | None = None) -> int:
        """Timestamp before which a version counts as old."""
        return (self.now() if now is None else now) - self.retention_window_seconds

    def select_stale_versions(
        self,
        versions: Sequence[IndexVersion] | None,
        active: IndexVersion | None,
        now: int | None = None,
    ) -> list[IndexVersion]:
        """Return the inactive versions old enough to delete, in input order."""
        if not versions or not isinstance(versions, (list, tuple)):
            return []

        if active is None or not active.activated_time:
            # No trustworthy cutoff without an activation time
            return []

        now = self.now() if now is None else now
        cutoff = self.cutoff(now)

        if active.activated_time > cutoff:
            # Keep the previous version while the new one proves stable
            return []

        stale: list[IndexVersion] = []
        for version in versions:
            if version.active:
                continue

            created_time = version.created_time
            if created_time is None and version.number == LEGACY_VERSION_NUMBER:
                # Legacy version 1 predates timestamps; anchor it to the current activation
                created_time = active.activated_time

            if (created_time if created_time is not None else now) > cutoff:
                continue

            stale.append(version)

        return stale
