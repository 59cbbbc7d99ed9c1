"""FastAPI dependency providers."""
from typing import AsyncGenerator

from fastapi import Depends

from facesearch.core.container import ServiceContainer, container
from facesearch.core.exceptions import ServiceNotInitializedError
from facesearch.services.face_indexing import FaceIndexingService
from facesearch.services.face_matching import FaceSearchEngine


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.initialized:
        # Attempt to initialize if not already done (e.g., outside the app lifespan)
        try:
            await container.initialize()
        except Exception as e:
            raise ServiceNotInitializedError(f"Service container could not be initialized: {e}")
    return container


async def get_face_search_engine(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[FaceSearchEngine, None]:
    """Provide the face search engine.

    Yields:
        FaceSearchEngine: Initialized search engine

    Raises:
        ServiceNotInitializedError: If the engine is not initialized
    """
    if container.face_search_engine is None:
        raise ServiceNotInitializedError("FaceSearchEngine not found in initialized container")
    yield container.face_search_engine


async def get_face_indexing_service(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[FaceIndexingService, None]:
    """Provide the face indexing service.

    Yields:
        FaceIndexingService: Initialized indexing service

    Raises:
        ServiceNotInitializedError: If the service is not initialized
    """
    if container.face_indexing_service is None:
        raise ServiceNotInitializedError("FaceIndexingService not found in initialized container")
    yield container.face_indexing_service
