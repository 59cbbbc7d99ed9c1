"""Face recognition value objects."""
from typing import List, Optional

from pydantic import BaseModel, Field

from facesearch.domain.entities.face import FaceEmbeddingRecord


class FaceMatch(BaseModel):
    """Face match result from a search operation."""
    relationship_id: str = Field(..., description="Relationship identifier")
    partner_name: str = Field("", description="Partner display name")
    partner_phone: Optional[str] = Field(None, description="Partner phone number")
    partner_user_id: Optional[str] = Field(None, description="Partner user ID, if registered")
    relationship_type: Optional[str] = Field(None, description="Relationship type")
    relationship_status: Optional[str] = Field(None, description="Relationship status")
    user_id: Optional[str] = Field(None, description="Owner user ID")
    user_name: Optional[str] = Field(None, description="Owner display name")
    user_phone: Optional[str] = Field(None, description="Owner phone number")
    face_photo_url: Optional[str] = Field(None, description="URL of the matched reference photo")
    similarity: float = Field(..., description="Similarity score with the searched face", ge=0.0, le=1.0)

    @classmethod
    def from_record(cls, record: FaceEmbeddingRecord, similarity: float) -> "FaceMatch":
        """Create a match from the reference record it was found on."""
        reference = record.reference
        return cls(
            relationship_id=record.relationship_id,
            partner_name=record.partner_name,
            partner_phone=record.partner_phone,
            partner_user_id=reference.partner_user_id if reference else None,
            relationship_type=reference.relationship_type if reference else None,
            relationship_status=reference.relationship_status if reference else None,
            user_id=reference.user_id if reference else None,
            user_name=reference.user_name if reference else None,
            user_phone=reference.user_phone if reference else None,
            face_photo_url=record.face_photo_url,
            similarity=similarity,
        )


class RegenerationReport(BaseModel):
    """Outcome of a batch regeneration of stored face identifiers."""
    success: int = Field(0, description="References whose identifier was recomputed")
    failed: int = Field(0, description="References that could not be processed")
    errors: List[str] = Field(default_factory=list, description="Deduplicated error summaries")

    @property
    def total(self) -> int:
        """Number of references processed."""
        return self.success + self.failed

    def add_error(self, message: str) -> None:
        """Record an error summary unless an identical one is already present."""
        if message not in self.errors:
            self.errors.append(message)
