"""
Search Janitor — Pydantic schemas for search host payloads and API responses.
"""

from pydantic import BaseModel, Field, field_validator


class IndexVersion(BaseModel):
    """One generation of a physical index backing an indexable."""

    number: int = Field(..., ge=1)
    active: bool = False
    created_time: int | None = None     # epoch seconds, absent on legacy version 1
    activated_time: int | None = None   # epoch seconds

    model_config = {"extra": "ignore", "frozen": True}

    @field_validator("active", mode="before")
    @classmethod
    def _missing_means_inactive(cls, v):
        return False if v is None else v


class IndexableCollection(BaseModel):
    """A logical search-index collection (posts, users, ...)."""

    slug: str = Field(..., min_length=1)
    post_types: list[str] = Field(default_factory=list)
    post_statuses: list[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    scheduled: bool


class IndexableCleanupReport(BaseModel):
    indexable: str
    stale: list[int] = Field(default_factory=list)
    deleted: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
    skipped: bool = False
    error: str | None = None


class CleanupResponse(BaseModel):
    started_at: str
    finished_at: str
    retention_window_seconds: int
    indexables: list[IndexableCleanupReport]


class StaleVersionsResponse(BaseModel):
    indexable: str
    cutoff: int
    active: IndexVersion | None = None
    stale: list[IndexVersion]
