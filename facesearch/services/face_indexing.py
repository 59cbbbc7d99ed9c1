"""Face indexing service for computing and storing reference face identifiers."""
import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from facesearch.core.config import settings
from facesearch.core.exceptions import (
    FaceRecognitionError,
    FeatureRequiresApprovalError,
    InvalidImageError,
    NoActiveProviderError,
)
from facesearch.core.logging import get_logger
from facesearch.core.utils.image import is_http_url
from facesearch.domain.entities.face import FaceEmbeddingRecord, ReferenceStub
from facesearch.domain.entities.provider import ProviderConfig
from facesearch.domain.interfaces.recognition import FaceProviderClient
from facesearch.domain.interfaces.storage import EmbeddingRepository, ReferenceRepository
from facesearch.domain.value_objects.recognition import RegenerationReport
from facesearch.services.face_matching import NO_PROVIDER_MESSAGE, ProviderFactory
from facesearch.services.image_loader import ImageLoader
from facesearch.services.provider_config import ProviderConfigCache
from facesearch.services.recognition import create_face_provider

logger = get_logger(__name__)


def approval_error_summary(provider: str) -> str:
    """Report entry shared by every reference refused for lack of approval."""
    return (
        f"The {provider} face recognition account requires approval for face "
        f"verification. Request access from the provider, then regenerate again."
    )


class FaceIndexingService:
    """Service for computing the face identifiers of reference photos.

    Identifiers are extracted with the active provider and upserted per
    reference, so recomputing them is idempotent.

    Example:
        ```python
        service = FaceIndexingService(cache, embeddings, references, ImageLoader())

        stored = await service.store_face_embedding("relationship-id")
        report = await service.regenerate_all()
        ```
    """

    def __init__(
        self,
        config_cache: ProviderConfigCache,
        embeddings: EmbeddingRepository,
        references: ReferenceRepository,
        image_loader: ImageLoader,
        provider_factory: ProviderFactory = create_face_provider,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the face indexing service.

        Args:
            config_cache: Cache of the active provider configuration
            embeddings: Repository of stored face identifiers
            references: Repository of reference subjects
            image_loader: Loader turning photo references into bytes
            provider_factory: Builds the provider client for a configuration
            batch_size: References per regeneration batch, defaults to settings.REGENERATION_BATCH_SIZE
            concurrency: Maximum references processed at once, defaults to settings.REGENERATION_CONCURRENCY
            batch_delay: Seconds to wait between batches, defaults to settings.REGENERATION_BATCH_DELAY_SECONDS
            sleep: Awaitable sleep used between batches
        """
        self._config_cache = config_cache
        self._embeddings = embeddings
        self._references = references
        self._image_loader = image_loader
        self._provider_factory = provider_factory
        self.batch_size = max(1, batch_size or settings.REGENERATION_BATCH_SIZE)
        self.concurrency = max(1, concurrency or settings.REGENERATION_CONCURRENCY)
        self.batch_delay = settings.REGENERATION_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self._sleep = sleep

    async def _active_config(self) -> ProviderConfig:
        config = await self._config_cache.get()
        if config is None:
            raise NoActiveProviderError(NO_PROVIDER_MESSAGE)
        return config

    async def store_face_embedding(self, relationship_id: str, photo_ref: Optional[str] = None) -> bool:
        """Compute and store the face identifier of one reference.

        Args:
            relationship_id: Reference to index
            photo_ref: Photo to use instead of the reference's stored face photo

        Returns:
            True if the identifier was stored, False otherwise

        Raises:
            NoActiveProviderError: If no provider is configured
        """
        config = await self._active_config()
        try:
            reference = await self._references.get(relationship_id)
            if reference is None:
                logger.warning("Reference not found", relationship_id=relationship_id)
                return False

            async with self._provider_factory(config) as provider:
                await self._index_reference(provider, reference, photo_ref)

            logger.info(
                "Stored face embedding",
                relationship_id=relationship_id,
                provider=config.provider_type.value
            )
            return True

        except FaceRecognitionError as e:
            logger.warning(
                "Failed to store face embedding",
                relationship_id=relationship_id,
                provider=config.provider_type.value,
                operation="store",
                error=str(e)
            )
            return False
        except Exception as e:
            logger.error(
                "Unexpected error storing face embedding",
                relationship_id=relationship_id,
                provider=config.provider_type.value,
                error=str(e),
                exc_info=True
            )
            return False

    async def regenerate_all(self) -> RegenerationReport:
        """Recompute the face identifier of every reference with a photo.

        References are processed in batches with a pause between batches;
        within a batch they run concurrently and independently.

        Returns:
            RegenerationReport with success/failure counts and deduplicated errors

        Raises:
            NoActiveProviderError: If no provider is configured; no work is started
        """
        config = await self._active_config()
        provider_name = config.provider_type.value
        references = await self._references.list_with_photos()
        report = RegenerationReport()

        logger.info(
            "Regenerating face embeddings",
            provider=provider_name,
            references_count=len(references),
            batch_size=self.batch_size
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def regenerate(reference: ReferenceStub) -> None:
            async with semaphore:
                await self._index_reference(provider, reference)

        async with self._provider_factory(config) as provider:
            for start in range(0, len(references), self.batch_size):
                if start:
                    await self._sleep(self.batch_delay)

                batch: List[ReferenceStub] = references[start:start + self.batch_size]
                results = await asyncio.gather(
                    *(regenerate(reference) for reference in batch),
                    return_exceptions=True
                )

                for reference, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        report.failed += 1
                        self._record_failure(report, reference, result, provider_name)
                    else:
                        report.success += 1

        logger.info(
            "Face embedding regeneration completed",
            provider=provider_name,
            success=report.success,
            failed=report.failed
        )
        return report

    def _record_failure(
        self,
        report: RegenerationReport,
        reference: ReferenceStub,
        error: BaseException,
        provider_name: str,
    ) -> None:
        if isinstance(error, FeatureRequiresApprovalError):
            report.add_error(approval_error_summary(provider_name))
            logger.warning(
                "Face embedding requires provider approval",
                relationship_id=reference.relationship_id,
                provider=provider_name,
                error=str(error)
            )
            return

        report.add_error(f"{reference.relationship_id}: {error}")
        logger.warning(
            "Failed to regenerate face embedding",
            relationship_id=reference.relationship_id,
            provider=provider_name,
            operation="regenerate",
            error=str(error)
        )

    async def _index_reference(
        self,
        provider: FaceProviderClient,
        reference: ReferenceStub,
        photo_ref: Optional[str] = None,
    ) -> None:
        photo = photo_ref or reference.partner_face_photo
        if not photo:
            raise InvalidImageError(f"Reference {reference.relationship_id} has no face photo")

        image_bytes = await self._image_loader.load(photo)
        face_id = await provider.extract(image_bytes)

        record = FaceEmbeddingRecord.from_reference(
            reference,
            face_id=face_id,
            updated_at=datetime.now(timezone.utc)
        )
        if photo_ref and is_http_url(photo_ref):
            record = record.model_copy(update={"face_photo_url": photo_ref})

        previous = await self._embeddings.get(reference.relationship_id)
        await self._embeddings.upsert(record)

        replaced = previous.face_id if previous is not None else None
        if replaced is not None and replaced != face_id:
            await provider.release(replaced)
