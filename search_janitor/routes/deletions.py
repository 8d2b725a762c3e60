"""
Search Janitor — Deletion history API routes.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from search_janitor.database import get_db
from search_janitor.models.version_deletion import VersionDeletion

deletions_router = APIRouter(prefix="/deletions", tags=["deletions"])


@deletions_router.get("")
async def list_deletions(
    indexable: str | None = Query(None, description="Filter by indexable slug"),
    status: str | None = Query(None, description="'deleted' or 'failed'"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List version delete attempts, newest first."""
    stmt = (
        select(VersionDeletion)
        .order_by(VersionDeletion.created_at.desc(), VersionDeletion.version_number.desc())
        .limit(limit)
    )

    if indexable:
        stmt = stmt.where(VersionDeletion.indexable == indexable)
    if status:
        stmt = stmt.where(VersionDeletion.status == status)

    result = await db.execute(stmt)
    rows = result.scalars().all()

    return {
        "deletions": [row.to_dict() for row in rows],
        "total": len(rows),
    }
