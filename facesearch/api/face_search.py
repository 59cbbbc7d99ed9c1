"""Face search API endpoints."""
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from facesearch.api.models.face import (
    FaceExtractionResponse,
    FaceSearchRequest,
    FaceSearchResponse,
    ImageRequest,
    RegenerationResponse,
    StoreEmbeddingRequest,
    StoreEmbeddingResponse,
)
from facesearch.core.exceptions import (
    FeatureRequiresApprovalError,
    InvalidImageError,
    NoActiveProviderError,
    NoFaceDetectedError,
    ProviderError,
    StorageError,
)
from facesearch.core.logging import get_logger
from facesearch.infrastructure.dependencies import (
    get_face_indexing_service,
    get_face_search_engine,
)
from facesearch.services.face_indexing import FaceIndexingService
from facesearch.services.face_matching import (
    NO_FACE_MESSAGE,
    NO_PROVIDER_MESSAGE,
    FaceSearchEngine,
)

logger = get_logger(__name__)
router = APIRouter(
    tags=["face-search"],
    responses={
        400: {"description": "Invalid image"},
        503: {"description": "Face matching unavailable"},
        500: {"description": "Internal server error"}
    }
)


@router.post(
    "/extract",
    response_model=FaceExtractionResponse,
    summary="Extract face features",
    description="Extracts the face identifier of an image with the active provider.",
)
async def extract_face_features(
    request: ImageRequest,
    engine: FaceSearchEngine = Depends(get_face_search_engine)
) -> FaceExtractionResponse:
    """Extract the face identifier of an image.

    Raises:
        HTTPException: If the image is invalid or no provider is available
    """
    try:
        face_id = await engine.extract_face_features(request.image)
        return FaceExtractionResponse.from_face_id(face_id)

    except NoActiveProviderError:
        raise HTTPException(status_code=503, detail=NO_PROVIDER_MESSAGE)
    except InvalidImageError as e:
        logger.warning("Invalid image", error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error("Face extraction failed", error=str(e), provider=e.provider)
        raise HTTPException(status_code=502, detail="Face recognition provider error")


@router.post(
    "/search",
    response_model=FaceSearchResponse,
    summary="Search references by face",
    description="Finds registered partners whose face photo matches the uploaded photo.",
    responses={
        200: {
            "description": "Search completed",
            "content": {
                "application/json": {
                    "example": {
                        "matches": [
                            {
                                "relationship_id": "5b0c4b64-4a8e-4f8e-9d0a-0d6f8e9c2b11",
                                "partner_name": "Alex",
                                "partner_phone": "+15555550100",
                                "face_photo_url": "https://example.com/alex.jpg",
                                "similarity": 0.93,
                            }
                        ]
                    }
                }
            },
        },
        422: {"description": "No face detected in the photo"},
    },
)
async def search_by_face(
    request: FaceSearchRequest,
    engine: FaceSearchEngine = Depends(get_face_search_engine)
) -> FaceSearchResponse:
    """Search the references for faces matching the uploaded photo.

    Raises:
        HTTPException: If the request is invalid or face matching is unavailable
    """
    try:
        matches = await engine.search(request.image, threshold=request.threshold)
        return FaceSearchResponse(matches=matches)

    except NoActiveProviderError:
        raise HTTPException(status_code=503, detail=NO_PROVIDER_MESSAGE)
    except NoFaceDetectedError:
        raise HTTPException(status_code=422, detail=NO_FACE_MESSAGE)
    except InvalidImageError as e:
        logger.warning("Invalid search image", error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except FeatureRequiresApprovalError as e:
        logger.error("Face search requires provider approval", error=str(e), provider=e.provider)
        raise HTTPException(status_code=503, detail=NO_PROVIDER_MESSAGE)
    except (ProviderError, StorageError) as e:
        logger.error("Face search failed", error=str(e))
        raise HTTPException(status_code=502, detail="Face search failed")


@router.post(
    "/embeddings/regenerate",
    response_model=RegenerationResponse,
    summary="Regenerate all face embeddings",
    description="Recomputes the stored face identifier of every reference with a photo.",
)
async def regenerate_all_face_embeddings(
    service: FaceIndexingService = Depends(get_face_indexing_service)
) -> RegenerationResponse:
    """Recompute every stored face identifier.

    Raises:
        HTTPException: If no provider is available or references cannot be listed
    """
    try:
        report = await service.regenerate_all()
        return RegenerationResponse.from_report(report)

    except NoActiveProviderError:
        raise HTTPException(status_code=503, detail=NO_PROVIDER_MESSAGE)
    except (ProviderError, StorageError) as e:
        logger.error("Face embedding regeneration failed", error=str(e), exc_info=True)
        raise HTTPException(status_code=502, detail=str(e))


@router.post(
    "/embeddings/{relationship_id}",
    response_model=StoreEmbeddingResponse,
    summary="Store the face embedding of a reference",
    description="Computes and stores the face identifier of one reference photo.",
)
async def store_face_embedding(
    relationship_id: str,
    request: Optional[StoreEmbeddingRequest] = Body(None),
    service: FaceIndexingService = Depends(get_face_indexing_service)
) -> StoreEmbeddingResponse:
    """Compute and store the face identifier of one reference.

    Raises:
        HTTPException: If no provider is available
    """
    try:
        photo = request.photo if request else None
        stored = await service.store_face_embedding(relationship_id, photo)
        return StoreEmbeddingResponse(relationship_id=relationship_id, stored=stored)

    except NoActiveProviderError:
        raise HTTPException(status_code=503, detail=NO_PROVIDER_MESSAGE)
