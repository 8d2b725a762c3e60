"""
Search Janitor — Version deletion audit model.
Records every delete attempt the cleanup job makes against the search host.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, func

from search_janitor.database import Base


class VersionDeletion(Base):
    """Immutable record of one stale index version delete attempt."""
    __tablename__ = "version_deletions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    indexable = Column(String(100), nullable=False, index=True)   # "post", "user", ...
    version_number = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False)                   # "deleted" | "failed"
    message = Column(Text, default="")

    # homeurl, trigger ("schedule" / "manual"), error details
    extra_data = Column("metadata", JSON, default=dict)

    # Python-side default keeps sub-second order; SQLite CURRENT_TIMESTAMP is whole seconds
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "indexable": self.indexable,
            "version_number": self.version_number,
            "status": self.status,
            "message": self.message,
            "metadata": self.extra_data or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<VersionDeletion {self.indexable}/v{self.version_number} — {self.status}>"
