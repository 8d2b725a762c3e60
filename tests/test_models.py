"""
Tests for ORM models and payload schemas.
"""

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from search_janitor.models.version_deletion import VersionDeletion
from search_janitor.schemas import IndexableCollection, IndexVersion


class TestVersionDeletionModel:
    async def test_create(self, db_session):
        row = VersionDeletion(
            indexable="post",
            version_number=3,
            status="deleted",
            message="Successfully deleted inactive index version",
            extra_data={"trigger": "schedule"},
        )
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)

        assert row.id is not None
        assert row.created_at is not None

        result = await db_session.execute(select(VersionDeletion).where(VersionDeletion.indexable == "post"))
        assert result.scalar_one().version_number == 3

    async def test_to_dict(self, db_session):
        row = VersionDeletion(indexable="user", version_number=1, status="failed", message="boom")
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)

        d = row.to_dict()
        assert d["indexable"] == "user"
        assert d["status"] == "failed"
        assert d["metadata"] == {}
        assert "created_at" in d

    async def test_created_at_keeps_insert_order(self, db_session):
        first = VersionDeletion(indexable="post", version_number=4, status="deleted")
        db_session.add(first)
        await db_session.commit()
        second = VersionDeletion(indexable="post", version_number=3, status="deleted")
        db_session.add(second)
        await db_session.commit()

        result = await db_session.execute(
            select(VersionDeletion).order_by(VersionDeletion.created_at.desc())
        )
        assert [r.version_number for r in result.scalars()] == [3, 4]


class TestIndexVersionSchema:
    def test_missing_active_means_inactive(self):
        assert IndexVersion.model_validate({"number": 2}).active is False
        assert IndexVersion.model_validate({"number": 2, "active": None}).active is False

    def test_unknown_fields_ignored(self):
        v = IndexVersion.model_validate({"number": 2, "active": True, "index_name": "vip-post-v2"})
        assert v.active is True

    def test_number_must_be_positive(self):
        with pytest.raises(ValidationError):
            IndexVersion(number=0)

    def test_frozen(self):
        v = IndexVersion(number=1)
        with pytest.raises(ValidationError):
            v.created_time = 5

    def test_indexable_defaults(self):
        i = IndexableCollection(slug="user")
        assert i.post_types == []
        assert i.post_statuses == []
