"""Face matching service for finding reference subjects similar to a photo."""
import asyncio
from typing import Callable, List, Optional, Tuple

from facesearch.core.config import settings
from facesearch.core.exceptions import (
    FeatureRequiresApprovalError,
    IdentifierExpiredError,
    InvalidImageError,
    NoActiveProviderError,
    NoFaceDetectedError,
)
from facesearch.core.logging import get_logger
from facesearch.domain.entities.face import FaceEmbeddingRecord, FaceId
from facesearch.domain.entities.provider import ProviderConfig
from facesearch.domain.interfaces.recognition import FaceProviderClient
from facesearch.domain.interfaces.storage import EmbeddingRepository, ReferenceRepository
from facesearch.domain.value_objects.recognition import FaceMatch
from facesearch.services.image_loader import ImageLoader
from facesearch.services.provider_config import ProviderConfigCache
from facesearch.services.recognition import create_face_provider

logger = get_logger(__name__)

ProviderFactory = Callable[[ProviderConfig], FaceProviderClient]

NO_PROVIDER_MESSAGE = "Face matching unavailable"
NO_FACE_MESSAGE = "Could not detect a face in your photo"


class FaceSearchEngine:
    """Service for matching a photo against the stored reference photos.

    This service:
    1. Resolves the active provider through the configuration cache
    2. Extracts the searched face with that provider
    3. Compares it against every reference, re-deriving stale identifiers
    4. Returns the matches above the threshold, best first

    Example:
        ```python
        engine = FaceSearchEngine(cache, embeddings, references, ImageLoader())
        matches = await engine.search("https://example.com/photo.jpg", threshold=0.85)
        ```
    """

    def __init__(
        self,
        config_cache: ProviderConfigCache,
        embeddings: EmbeddingRepository,
        references: ReferenceRepository,
        image_loader: ImageLoader,
        provider_factory: ProviderFactory = create_face_provider,
        concurrency: Optional[int] = None,
    ) -> None:
        """Initialize the face search engine.

        Args:
            config_cache: Cache of the active provider configuration
            embeddings: Repository of stored face identifiers
            references: Repository of reference subjects
            image_loader: Loader turning image references into bytes
            provider_factory: Builds the provider client for a configuration
            concurrency: Maximum comparisons in flight, defaults to settings.SEARCH_CONCURRENCY
        """
        self._config_cache = config_cache
        self._embeddings = embeddings
        self._references = references
        self._image_loader = image_loader
        self._provider_factory = provider_factory
        self._concurrency = max(1, concurrency or settings.SEARCH_CONCURRENCY)

    async def _active_config(self) -> ProviderConfig:
        config = await self._config_cache.get()
        if config is None:
            raise NoActiveProviderError(NO_PROVIDER_MESSAGE)
        return config

    async def extract_face_features(self, image_ref: str) -> Optional[FaceId]:
        """Extract the face identifier of an image with the active provider.

        Args:
            image_ref: Data URL, HTTP(S) URL or base64 image

        Returns:
            FaceId of the primary face, or None when no face is detected

        Raises:
            NoActiveProviderError: If no provider is configured
            InvalidImageError: If the image cannot be loaded
            ProviderError: If the provider call fails
        """
        config = await self._active_config()
        image_bytes = await self._image_loader.load(image_ref)
        async with self._provider_factory(config) as provider:
            try:
                return await provider.extract(image_bytes)
            except NoFaceDetectedError:
                logger.info("No face detected in image", provider=config.provider_type.value)
                return None

    async def search(self, image_ref: str, threshold: Optional[float] = None) -> List[FaceMatch]:
        """Find the references whose face matches the searched photo.

        Args:
            image_ref: Data URL, HTTP(S) URL or base64 image of the searched face
            threshold: Minimum similarity (0.0 to 1.0), defaults to the provider configuration's

        Returns:
            Matches with similarity >= threshold, sorted by similarity descending
            (ties by relationship ID) and truncated to the configured max_results

        Raises:
            NoActiveProviderError: If no provider is configured; no network call is made
            NoFaceDetectedError: If no face is detected in the searched photo
            InvalidImageError: If the searched photo cannot be loaded
            FeatureRequiresApprovalError: If every comparison was refused for lack of approval
        """
        config = await self._active_config()
        effective_threshold = config.similarity_threshold if threshold is None else threshold
        if not 0.0 <= effective_threshold <= 1.0:
            raise ValueError("Similarity threshold must be between 0 and 1")

        query_image = await self._image_loader.load(image_ref)

        async with self._provider_factory(config) as provider:
            try:
                query_face = await provider.extract(query_image)
            except NoFaceDetectedError as e:
                logger.info("No face detected in searched photo", provider=config.provider_type.value)
                raise NoFaceDetectedError(NO_FACE_MESSAGE) from e

            # Faces indexed only for this search
            transient_faces: List[FaceId] = [query_face]
            try:
                corpus = await self._load_corpus()
                logger.info(
                    "Searching references",
                    provider=config.provider_type.value,
                    references_count=len(corpus),
                    threshold=effective_threshold
                )

                semaphore = asyncio.Semaphore(self._concurrency)
                approval_errors: List[FeatureRequiresApprovalError] = []

                async def score(record: FaceEmbeddingRecord) -> Tuple[FaceEmbeddingRecord, float]:
                    async with semaphore:
                        similarity = await self._score_reference(
                            provider, query_face, record, approval_errors, transient_faces
                        )
                    return record, similarity

                scored = await asyncio.gather(*(score(record) for record in corpus))
            finally:
                for face_id in transient_faces:
                    await provider.release(face_id)

        if corpus and len(approval_errors) == len(corpus):
            raise approval_errors[0]

        matches = [
            FaceMatch.from_record(record, similarity)
            for record, similarity in scored
            if similarity >= effective_threshold
        ]
        matches.sort(key=lambda match: (-match.similarity, match.relationship_id))
        matches = matches[:config.max_results]

        logger.info(
            "Face search completed",
            provider=config.provider_type.value,
            compared_count=len(scored),
            matches_count=len(matches)
        )
        return matches

    async def _load_corpus(self) -> List[FaceEmbeddingRecord]:
        """Stored identifiers, or the raw references when none are stored yet."""
        try:
            records = await self._embeddings.list_all_with_photos()
        except Exception as e:
            logger.warning(
                "Stored face embeddings unavailable, falling back to references",
                error=str(e)
            )
            records = []
        if records:
            return records

        references = await self._references.list_with_photos()
        logger.info("No stored face embeddings, deriving from references", references_count=len(references))
        return [FaceEmbeddingRecord.from_reference(reference) for reference in references]

    async def _score_reference(
        self,
        provider: FaceProviderClient,
        query_face: FaceId,
        record: FaceEmbeddingRecord,
        approval_errors: List[FeatureRequiresApprovalError],
        transient_faces: List[FaceId],
    ) -> float:
        """Similarity of one reference, 0.0 when it could not be compared.

        Identifiers re-derived here are not stored, so they are appended to
        transient_faces for release once the search ends.
        """
        try:
            target_image: Optional[bytes] = None
            if record.is_usable_for(provider.provider_type, provider.identifier_ttl):
                reference_face = record.face_id
            else:
                target_image, reference_face = await self._derive_reference_face(provider, record)
                transient_faces.append(reference_face)

            try:
                return await provider.compare(query_face, reference_face, target_image)
            except IdentifierExpiredError:
                if target_image is not None:
                    raise
                logger.info(
                    "Stored face identifier expired, re-deriving",
                    relationship_id=record.relationship_id,
                    provider=provider.provider_type.value
                )
                target_image, reference_face = await self._derive_reference_face(provider, record)
                transient_faces.append(reference_face)
                return await provider.compare(query_face, reference_face, target_image)

        except FeatureRequiresApprovalError as e:
            approval_errors.append(e)
            logger.warning(
                "Face comparison requires provider approval",
                relationship_id=record.relationship_id,
                provider=provider.provider_type.value,
                error=str(e)
            )
        except Exception as e:
            logger.warning(
                "Face comparison failed for reference",
                relationship_id=record.relationship_id,
                provider=provider.provider_type.value,
                operation="compare",
                error=str(e)
            )
        return 0.0

    async def _derive_reference_face(
        self,
        provider: FaceProviderClient,
        record: FaceEmbeddingRecord,
    ) -> Tuple[bytes, FaceId]:
        if not record.face_photo_url:
            raise InvalidImageError(f"Reference {record.relationship_id} has no face photo")
        image_bytes = await self._image_loader.load(record.face_photo_url)
        return image_bytes, await provider.extract(image_bytes)
