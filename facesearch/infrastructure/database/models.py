"""SQLAlchemy models for the face search service."""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from facesearch.core.config import settings


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class FaceRecognitionSetting(Base):
    """Face recognition provider configuration managed from the admin settings."""

    __tablename__ = "face_recognition_settings"
    __table_args__ = (
        Index("idx_face_settings_active", "is_active", "enabled"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    provider_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Provider variant tag: aws, azure, google or custom"
    )

    aws_access_key_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    aws_secret_access_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    aws_region: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    aws_collection_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    azure_endpoint: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    azure_subscription_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    google_api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    custom_endpoint: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    custom_api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    similarity_threshold: Mapped[float] = mapped_column(
        Float, default=settings.DEFAULT_SIMILARITY_THRESHOLD, nullable=False
    )
    max_results: Mapped[int] = mapped_column(
        Integer, default=settings.DEFAULT_MAX_RESULTS, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Relationship(Base):
    """Registered relationship, read here only as the reference subject of face search."""

    __tablename__ = "relationships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    partner_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    partner_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    partner_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    partner_face_photo: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="URL of the partner face photo"
    )
    type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class FaceEmbedding(Base):
    """Provider face identifier computed from a relationship's partner photo."""

    __tablename__ = "face_embeddings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    relationship_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("relationships.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    partner_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    partner_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    face_photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    face_service_id: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Opaque identifier issued by the face recognition provider"
    )
    face_service_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Provider variant that issued face_service_id"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
