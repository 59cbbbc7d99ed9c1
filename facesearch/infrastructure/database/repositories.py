"""Database repositories for the face search service."""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from facesearch.core.exceptions import ProviderConfigInvalidError, StorageError
from facesearch.core.logging import get_logger
from facesearch.domain.entities.face import FaceEmbeddingRecord, ReferenceStub
from facesearch.domain.entities.provider import ProviderConfig, ProviderType
from facesearch.domain.interfaces.storage import (
    EmbeddingRepository,
    ProviderConfigStore,
    ReferenceRepository,
)
from facesearch.infrastructure.database.models import (
    FaceEmbedding,
    FaceRecognitionSetting,
    Relationship,
)
from facesearch.infrastructure.database.session import get_db_session

logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _to_reference(row: Relationship) -> ReferenceStub:
    return ReferenceStub(
        relationship_id=row.id,
        partner_name=row.partner_name or "",
        partner_phone=row.partner_phone,
        partner_user_id=row.partner_user_id,
        partner_face_photo=row.partner_face_photo,
        relationship_type=row.type,
        relationship_status=row.status,
        user_id=row.user_id,
        user_name=row.user_name,
        user_phone=row.user_phone,
    )


def _to_record(row: FaceEmbedding, reference: Optional[Relationship] = None) -> FaceEmbeddingRecord:
    try:
        service_type = ProviderType(row.face_service_type) if row.face_service_type else None
    except ValueError:
        # Unknown variants can never be compared, so the identifier is stale
        logger.warning(
            "Unknown face service type on stored embedding",
            relationship_id=row.relationship_id,
            face_service_type=row.face_service_type
        )
        service_type = None
    return FaceEmbeddingRecord(
        relationship_id=row.relationship_id,
        partner_name=row.partner_name or "",
        partner_phone=row.partner_phone,
        face_photo_url=row.face_photo_url,
        face_service_id=row.face_service_id,
        face_service_type=service_type,
        updated_at=row.updated_at,
        reference=_to_reference(reference) if reference is not None else None,
    )


class SqlAlchemyProviderConfigStore(ProviderConfigStore):
    """Provider configuration store backed by the face_recognition_settings table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize store.

        Args:
            session_factory: Database session factory
        """
        self._session_factory = session_factory

    async def get_active(self) -> Optional[ProviderConfig]:
        stmt = (
            select(FaceRecognitionSetting)
            .where(
                FaceRecognitionSetting.is_active.is_(True),
                FaceRecognitionSetting.enabled.is_(True)
            )
            .order_by(FaceRecognitionSetting.updated_at.desc(), FaceRecognitionSetting.id)
        )
        try:
            async with get_db_session(self._session_factory) as session:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load provider configuration: {e}") from e

        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(
                "Multiple active provider configurations, using the most recent",
                config_ids=[row.id for row in rows]
            )

        row = rows[0]
        try:
            return ProviderConfig(
                id=row.id,
                name=row.name,
                provider_type=row.provider_type,
                aws_access_key_id=row.aws_access_key_id,
                aws_secret_access_key=row.aws_secret_access_key,
                aws_region=row.aws_region,
                aws_collection_id=row.aws_collection_id,
                azure_endpoint=row.azure_endpoint,
                azure_subscription_key=row.azure_subscription_key,
                google_api_key=row.google_api_key,
                custom_endpoint=row.custom_endpoint,
                custom_api_key=row.custom_api_key,
                similarity_threshold=row.similarity_threshold,
                max_results=row.max_results,
                is_active=row.is_active,
                enabled=row.enabled,
            )
        except ValidationError as e:
            raise ProviderConfigInvalidError(
                f"Invalid provider configuration {row.id}: {e.error_count()} invalid field(s)",
                provider=row.provider_type
            ) from e


class SqlAlchemyEmbeddingRepository(EmbeddingRepository):
    """Face identifier repository backed by the face_embeddings table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize repository.

        Args:
            session_factory: Database session factory
        """
        self._session_factory = session_factory

    async def get(self, relationship_id: str) -> Optional[FaceEmbeddingRecord]:
        stmt = (
            select(FaceEmbedding, Relationship)
            .outerjoin(Relationship, Relationship.id == FaceEmbedding.relationship_id)
            .where(FaceEmbedding.relationship_id == relationship_id)
        )
        try:
            async with get_db_session(self._session_factory) as session:
                result = await session.execute(stmt)
                row = result.one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load face embedding {relationship_id}: {e}") from e

        if row is None:
            return None
        embedding, reference = row
        return _to_record(embedding, reference)

    async def upsert(self, record: FaceEmbeddingRecord) -> bool:
        values = {
            "relationship_id": record.relationship_id,
            "partner_name": record.partner_name,
            "partner_phone": record.partner_phone,
            "face_photo_url": record.face_photo_url,
            "face_service_id": record.face_service_id,
            "face_service_type": record.face_service_type.value if record.face_service_type else None,
            "updated_at": record.updated_at or datetime.now(timezone.utc),
        }
        try:
            async with get_db_session(self._session_factory) as session:
                dialect = session.get_bind().dialect.name
                insert = _UPSERT_DIALECTS.get(dialect)
                if insert is None:
                    raise StorageError(f"Upsert is not supported on '{dialect}'")
                stmt = insert(FaceEmbedding).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[FaceEmbedding.relationship_id],
                    set_={
                        key: stmt.excluded[key]
                        for key in values
                        if key != "relationship_id"
                    }
                )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to store face embedding {record.relationship_id}: {e}") from e

        logger.debug(
            "Stored face embedding",
            relationship_id=record.relationship_id,
            face_service_type=values["face_service_type"]
        )
        return True

    async def list_all_with_photos(self) -> List[FaceEmbeddingRecord]:
        stmt = (
            select(FaceEmbedding, Relationship)
            .outerjoin(Relationship, Relationship.id == FaceEmbedding.relationship_id)
            .where(
                FaceEmbedding.face_photo_url.is_not(None),
                FaceEmbedding.face_photo_url != ""
            )
            .order_by(FaceEmbedding.relationship_id)
        )
        try:
            async with get_db_session(self._session_factory) as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list face embeddings: {e}") from e

        return [_to_record(embedding, reference) for embedding, reference in rows]


class SqlAlchemyReferenceRepository(ReferenceRepository):
    """Reference subjects backed by the relationships table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize repository.

        Args:
            session_factory: Database session factory
        """
        self._session_factory = session_factory

    async def get(self, relationship_id: str) -> Optional[ReferenceStub]:
        try:
            async with get_db_session(self._session_factory) as session:
                row = await session.get(Relationship, relationship_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load relationship {relationship_id}: {e}") from e
        return _to_reference(row) if row is not None else None

    async def list_with_photos(self) -> List[ReferenceStub]:
        stmt = (
            select(Relationship)
            .where(
                Relationship.partner_face_photo.is_not(None),
                Relationship.partner_face_photo != ""
            )
            .order_by(Relationship.id)
        )
        try:
            async with get_db_session(self._session_factory) as session:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list relationships with photos: {e}") from e
        return [_to_reference(row) for row in rows]
