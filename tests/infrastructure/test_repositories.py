"""Tests for the SQLAlchemy repositories against in-memory SQLite."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from facesearch.core.exceptions import ProviderConfigInvalidError
from facesearch.domain.entities.face import FaceEmbeddingRecord
from facesearch.domain.entities.provider import ProviderType
from facesearch.infrastructure.database.models import (
    Base,
    FaceEmbedding,
    FaceRecognitionSetting,
    Relationship,
)
from facesearch.infrastructure.database.repositories import (
    SqlAlchemyEmbeddingRepository,
    SqlAlchemyProviderConfigStore,
    SqlAlchemyReferenceRepository,
)
from facesearch.infrastructure.database.session import create_session_factory


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()


async def add_rows(session_factory, *rows):
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def relationship(relationship_id: str, photo=None, **overrides) -> Relationship:
    values = {
        "id": relationship_id,
        "user_id": "user-1",
        "user_name": "Owner",
        "partner_name": f"Partner {relationship_id}",
        "partner_phone": "+15555550100",
        "partner_face_photo": photo,
        "type": "dating",
        "status": "active",
    }
    values.update(overrides)
    return Relationship(**values)


def setting(setting_id: str, provider_type: str = "custom", **overrides) -> FaceRecognitionSetting:
    values = {
        "id": setting_id,
        "name": f"Setting {setting_id}",
        "provider_type": provider_type,
        "custom_endpoint": "https://faces.example.com",
        "custom_api_key": "secret",
        "similarity_threshold": 0.75,
        "max_results": 5,
        "is_active": True,
        "enabled": True,
    }
    values.update(overrides)
    return FaceRecognitionSetting(**values)


class TestProviderConfigStore:
    """Test suite for SqlAlchemyProviderConfigStore."""

    async def test_returns_active_enabled_config(self, session_factory):
        await add_rows(
            session_factory,
            setting("inactive", is_active=False),
            setting("disabled", enabled=False),
            setting("active"),
        )

        config = await SqlAlchemyProviderConfigStore(session_factory).get_active()

        assert config.id == "active"
        assert config.provider_type == ProviderType.CUSTOM
        assert config.similarity_threshold == 0.75
        assert config.custom_api_key.get_secret_value() == "secret"

    async def test_none_when_nothing_active(self, session_factory):
        await add_rows(session_factory, setting("inactive", is_active=False))

        assert await SqlAlchemyProviderConfigStore(session_factory).get_active() is None

    async def test_multiple_active_picks_most_recent(self, session_factory):
        now = datetime.now(timezone.utc)
        await add_rows(
            session_factory,
            setting("older", updated_at=now - timedelta(days=1)),
            setting("newer", updated_at=now),
        )

        config = await SqlAlchemyProviderConfigStore(session_factory).get_active()

        assert config.id == "newer"

    async def test_unknown_provider_type(self, session_factory):
        await add_rows(session_factory, setting("bad", provider_type="watson"))

        with pytest.raises(ProviderConfigInvalidError):
            await SqlAlchemyProviderConfigStore(session_factory).get_active()


class TestEmbeddingRepository:
    """Test suite for SqlAlchemyEmbeddingRepository."""

    async def test_upsert_inserts_then_updates(self, session_factory):
        await add_rows(session_factory, relationship("r1", photo="https://photos.example.com/r1.jpg"))
        repository = SqlAlchemyEmbeddingRepository(session_factory)
        record = FaceEmbeddingRecord(
            relationship_id="r1",
            partner_name="Partner r1",
            face_photo_url="https://photos.example.com/r1.jpg",
            face_service_id="face-1",
            face_service_type=ProviderType.AZURE,
        )

        assert await repository.upsert(record)
        assert await repository.upsert(record.model_copy(update={
            "face_service_id": "face-2",
            "face_service_type": ProviderType.AWS,
        }))

        stored = await repository.get("r1")
        assert stored.face_service_id == "face-2"
        assert stored.face_service_type == ProviderType.AWS
        assert stored.updated_at is not None
        assert stored.reference.user_name == "Owner"

        async with session_factory() as session:
            rows = (await session.execute(FaceEmbedding.__table__.select())).all()
        assert len(rows) == 1

    async def test_get_missing(self, session_factory):
        assert await SqlAlchemyEmbeddingRepository(session_factory).get("missing") is None

    async def test_list_skips_records_without_photo(self, session_factory):
        await add_rows(
            session_factory,
            relationship("r1"), relationship("r2"), relationship("r3"),
            FaceEmbedding(relationship_id="r2", partner_name="B", face_photo_url="https://p/2.jpg",
                          face_service_id="f2", face_service_type="custom"),
            FaceEmbedding(relationship_id="r1", partner_name="A", face_photo_url="https://p/1.jpg",
                          face_service_id="f1", face_service_type="google"),
            FaceEmbedding(relationship_id="r3", partner_name="C", face_photo_url=""),
        )

        records = await SqlAlchemyEmbeddingRepository(session_factory).list_all_with_photos()

        assert [r.relationship_id for r in records] == ["r1", "r2"]
        assert records[0].face_id.provider == ProviderType.GOOGLE

    async def test_unknown_service_type_is_treated_as_missing(self, session_factory):
        await add_rows(
            session_factory,
            relationship("r1"),
            FaceEmbedding(relationship_id="r1", partner_name="A", face_photo_url="https://p/1.jpg",
                          face_service_id="f1", face_service_type="legacy"),
        )

        record = await SqlAlchemyEmbeddingRepository(session_factory).get("r1")

        assert record.face_service_type is None
        assert record.face_id is None


class TestReferenceRepository:
    """Test suite for SqlAlchemyReferenceRepository."""

    async def test_get_maps_relationship(self, session_factory):
        await add_rows(session_factory, relationship("r1", photo="https://p/1.jpg", partner_user_id="u2"))

        reference = await SqlAlchemyReferenceRepository(session_factory).get("r1")

        assert reference.partner_face_photo == "https://p/1.jpg"
        assert reference.partner_user_id == "u2"
        assert reference.relationship_type == "dating"
        assert reference.user_phone is None

    async def test_list_with_photos(self, session_factory):
        await add_rows(
            session_factory,
            relationship("r2", photo="https://p/2.jpg"),
            relationship("r1", photo="https://p/1.jpg"),
            relationship("r3", photo=""),
            relationship("r4"),
        )

        references = await SqlAlchemyReferenceRepository(session_factory).list_with_photos()

        assert [r.relationship_id for r in references] == ["r1", "r2"]
