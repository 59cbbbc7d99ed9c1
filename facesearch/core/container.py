"""Service container for dependency injection."""
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from facesearch.core.utils.http import default_timeout
from facesearch.domain.interfaces.storage import (
    EmbeddingRepository,
    ProviderConfigStore,
    ReferenceRepository,
)
from facesearch.infrastructure.database.repositories import (
    SqlAlchemyEmbeddingRepository,
    SqlAlchemyProviderConfigStore,
    SqlAlchemyReferenceRepository,
)
from facesearch.infrastructure.database.session import create_engine, create_session_factory
from facesearch.services.face_indexing import FaceIndexingService
from facesearch.services.face_matching import FaceSearchEngine
from facesearch.services.image_loader import ImageLoader
from facesearch.services.provider_config import ProviderConfigCache


class ServiceContainer:
    """Container for application services.

    This container manages the lifecycle and dependencies of all services in the application.
    It ensures proper initialization order and provides a single source of truth for service instances.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        engine = container.face_search_engine
        matches = await engine.search(image_ref)
        ```
    """

    def __init__(self) -> None:
        """Initialize empty container."""
        # Infrastructure
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.http_client: Optional[httpx.AsyncClient] = None

        # Stores (typed by interface)
        self.provider_config_store: Optional[ProviderConfigStore] = None
        self.embedding_repository: Optional[EmbeddingRepository] = None
        self.reference_repository: Optional[ReferenceRepository] = None

        # Domain services
        self.provider_config_cache: Optional[ProviderConfigCache] = None
        self.image_loader: Optional[ImageLoader] = None
        self.face_search_engine: Optional[FaceSearchEngine] = None
        self.face_indexing_service: Optional[FaceIndexingService] = None

    @property
    def initialized(self) -> bool:
        return self.face_search_engine is not None

    async def initialize(self, database_url: Optional[str] = None) -> None:
        """Initialize all services in the correct order."""
        self.engine = create_engine(database_url)
        self.session_factory = create_session_factory(self.engine)
        self.http_client = httpx.AsyncClient(timeout=default_timeout(), follow_redirects=True)

        self.provider_config_store = SqlAlchemyProviderConfigStore(self.session_factory)
        self.embedding_repository = SqlAlchemyEmbeddingRepository(self.session_factory)
        self.reference_repository = SqlAlchemyReferenceRepository(self.session_factory)

        self.provider_config_cache = ProviderConfigCache(self.provider_config_store)
        self.image_loader = ImageLoader(client=self.http_client)
        self.face_search_engine = FaceSearchEngine(
            config_cache=self.provider_config_cache,
            embeddings=self.embedding_repository,
            references=self.reference_repository,
            image_loader=self.image_loader,
        )
        self.face_indexing_service = FaceIndexingService(
            config_cache=self.provider_config_cache,
            embeddings=self.embedding_repository,
            references=self.reference_repository,
            image_loader=self.image_loader,
        )

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        self.face_indexing_service = None
        self.face_search_engine = None
        self.image_loader = None
        self.provider_config_cache = None

        self.reference_repository = None
        self.embedding_repository = None
        self.provider_config_store = None

        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None

        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
        self.session_factory = None


# Global container instance
container = ServiceContainer()
