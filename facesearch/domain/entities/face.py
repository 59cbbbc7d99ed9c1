"""Core face domain entities."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from facesearch.domain.entities.provider import ProviderType


class FaceId(BaseModel):
    """Opaque face identifier tagged with the provider that produced it."""
    provider: ProviderType = Field(..., description="Provider variant that issued the identifier")
    value: str = Field(..., description="Provider-specific identifier", min_length=1)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.value


class ReferenceStub(BaseModel):
    """Reference subject (a relationship partner) that can be searched by face."""
    relationship_id: str = Field(..., description="Relationship identifier")
    partner_name: str = Field("", description="Partner display name")
    partner_phone: Optional[str] = Field(None, description="Partner phone number")
    partner_user_id: Optional[str] = Field(None, description="Partner user ID, if registered")
    partner_face_photo: Optional[str] = Field(None, description="URL of the partner face photo")
    relationship_type: Optional[str] = Field(None, description="Relationship type")
    relationship_status: Optional[str] = Field(None, description="Relationship status")
    user_id: Optional[str] = Field(None, description="Owner user ID")
    user_name: Optional[str] = Field(None, description="Owner display name")
    user_phone: Optional[str] = Field(None, description="Owner phone number")


class FaceEmbeddingRecord(BaseModel):
    """Stored face identifier for a reference subject."""
    relationship_id: str = Field(..., description="Relationship identifier")
    partner_name: str = Field("", description="Partner display name")
    partner_phone: Optional[str] = Field(None, description="Partner phone number")
    face_photo_url: Optional[str] = Field(None, description="Source photo of the stored identifier")
    face_service_id: Optional[str] = Field(None, description="Provider-specific face identifier")
    face_service_type: Optional[ProviderType] = Field(None, description="Provider that produced the identifier")
    updated_at: Optional[datetime] = Field(None, description="When the identifier was last computed")

    # Carried through from the reference when the record is built from one
    reference: Optional[ReferenceStub] = Field(None, exclude=True)

    @classmethod
    def from_reference(
        cls,
        reference: ReferenceStub,
        face_id: Optional[FaceId] = None,
        updated_at: Optional[datetime] = None,
    ) -> "FaceEmbeddingRecord":
        """Build a record for a reference, optionally with a fresh identifier."""
        return cls(
            relationship_id=reference.relationship_id,
            partner_name=reference.partner_name,
            partner_phone=reference.partner_phone,
            face_photo_url=reference.partner_face_photo,
            face_service_id=face_id.value if face_id else None,
            face_service_type=face_id.provider if face_id else None,
            updated_at=updated_at,
            reference=reference,
        )

    @property
    def face_id(self) -> Optional[FaceId]:
        """Stored identifier as a tagged FaceId, if one is present."""
        if not self.face_service_id or self.face_service_type is None:
            return None
        return FaceId(provider=self.face_service_type, value=self.face_service_id)

    def is_usable_for(
        self,
        provider: ProviderType,
        identifier_ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether the stored identifier can be compared by the given provider.

        Identifiers from another provider are always stale. For providers whose
        identifiers expire, an identifier older than the TTL (or of unknown age)
        is stale as well.
        """
        if self.face_id is None or self.face_service_type != provider:
            return False
        if identifier_ttl is None:
            return True
        if self.updated_at is None:
            return False
        updated_at = self.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return now - updated_at < identifier_ttl
