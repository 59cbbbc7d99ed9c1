"""API v1 router initialization."""
from fastapi import APIRouter

from .face_search import router as face_search_router

# Create v1 router
router = APIRouter()

# Include face search endpoints
router.include_router(
    face_search_router,
    prefix="/face-search",
    tags=["face-search"]
)
