"""API specific face models."""
from typing import List, Optional

from pydantic import BaseModel, Field

from facesearch.domain.entities.face import FaceId
from facesearch.domain.value_objects.recognition import FaceMatch, RegenerationReport

# Constants for validation ranges used in API models
MIN_THRESHOLD = 0.0
MAX_THRESHOLD = 1.0


class ImageRequest(BaseModel):
    """Request carrying a single image reference."""
    image: str = Field(
        ...,
        description="Image as a data URL, an HTTP(S) URL or a bare base64 string",
        min_length=1
    )


class FaceExtractionResponse(BaseModel):
    """Response model for the /extract endpoint."""
    face_id: Optional[str] = Field(None, description="Provider face identifier, null when no face was detected")
    provider: Optional[str] = Field(None, description="Provider that issued the identifier")

    @classmethod
    def from_face_id(cls, face_id: Optional[FaceId]) -> "FaceExtractionResponse":
        if face_id is None:
            return cls()
        return cls(face_id=face_id.value, provider=face_id.provider.value)


class FaceSearchRequest(ImageRequest):
    """Request model for the /search endpoint."""
    threshold: Optional[float] = Field(
        None,
        description="Minimum similarity score, defaults to the provider configuration's",
        ge=MIN_THRESHOLD, le=MAX_THRESHOLD
    )


class FaceSearchResponse(BaseModel):
    """Response model for the /search endpoint."""
    matches: List[FaceMatch] = Field(..., description="Matches ordered by similarity, best first")


class StoreEmbeddingRequest(BaseModel):
    """Request model for storing the face identifier of a reference."""
    photo: Optional[str] = Field(
        None,
        description="Photo to index instead of the reference's stored face photo"
    )


class StoreEmbeddingResponse(BaseModel):
    """Response model for storing the face identifier of a reference."""
    relationship_id: str = Field(..., description="Reference that was indexed")
    stored: bool = Field(..., description="Whether the identifier was stored")


class RegenerationResponse(BaseModel):
    """Response model for the regeneration endpoint."""
    success: int = Field(..., description="References whose identifier was recomputed")
    failed: int = Field(..., description="References that could not be processed")
    total: int = Field(..., description="References processed")
    errors: List[str] = Field(..., description="Deduplicated error summaries")

    @classmethod
    def from_report(cls, report: RegenerationReport) -> "RegenerationResponse":
        return cls(
            success=report.success,
            failed=report.failed,
            total=report.total,
            errors=list(report.errors)
        )
