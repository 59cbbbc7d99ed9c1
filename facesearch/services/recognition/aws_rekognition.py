"""
Amazon Rekognition implementation of the face provider interface using aioboto3.

Faces are indexed into a Rekognition collection; the returned ``FaceId``
persists until it is deleted from the collection. Comparison searches the
collection from the first face and reads the similarity reported for the
second. Released faces (searched photos, superseded references) are deleted
from the collection when the provider is closed.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional, Set

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from facesearch.core.config import settings
from facesearch.core.exceptions import (
    FaceRecognitionError,
    IdentifierExpiredError,
    ImageDecodeError,
    ImageTooLargeError,
    NoFaceDetectedError,
    ProviderConfigInvalidError,
    ProviderError,
    ProviderUnavailableError,
)
from facesearch.core.logging import get_logger
from facesearch.domain.entities.face import FaceId
from facesearch.domain.entities.provider import ProviderConfig, ProviderType, secret_value
from facesearch.domain.interfaces.recognition import FaceProviderClient
from facesearch.services.recognition.registry import register_provider

logger = get_logger(__name__)

# Upper bound of SearchFaces MaxFaces
MAX_SEARCH_FACES = 4096
# Upper bound of DeleteFaces FaceIds
MAX_DELETE_FACES = 4096

_CONFIG_ERRORS = {
    "ResourceNotFoundException",
    "AccessDeniedException",
    "UnrecognizedClientException",
    "InvalidSignatureException",
    "ExpiredTokenException",
}
_TRANSIENT_ERRORS = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "InternalServerError",
    "ServiceUnavailableException",
    "LimitExceededException",
}


@register_provider(ProviderType.AWS)
class AwsRekognitionProvider(FaceProviderClient):
    """Amazon Rekognition provider."""

    def __init__(self, config: ProviderConfig, session: Optional[aioboto3.Session] = None) -> None:
        access_key_id = secret_value(config.aws_access_key_id)
        secret_access_key = secret_value(config.aws_secret_access_key)
        if bool(access_key_id) != bool(secret_access_key):
            raise ProviderConfigInvalidError(
                "AWS access key ID and secret access key must be configured together",
                provider=ProviderType.AWS.value
            )
        super().__init__(config)
        self.region_name = config.aws_region or settings.AWS_DEFAULT_REGION
        self.collection_id = config.aws_collection_id or settings.AWS_DEFAULT_COLLECTION_ID
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._session = session or aioboto3.Session()
        self._boto_config = BotoConfig(
            connect_timeout=settings.HTTP_CONNECT_TIMEOUT_SECONDS,
            read_timeout=settings.HTTP_TIMEOUT_SECONDS,
            retries={"max_attempts": 2, "mode": "standard"},
        )
        # SearchFaces results per searched face, reused across compare calls
        self._searches: Dict[str, "asyncio.Task[Dict[str, float]]"] = {}
        # Faces no longer referenced, deleted from the collection on close
        self._released: Set[str] = set()

    @asynccontextmanager
    async def _get_client(self) -> AsyncGenerator[Any, None]:
        """Async context manager yielding a Rekognition client."""
        client_args = {
            "region_name": self.region_name,
            "config": self._boto_config,
        }
        if self._access_key_id and self._secret_access_key:
            client_args["aws_access_key_id"] = self._access_key_id
            client_args["aws_secret_access_key"] = self._secret_access_key
        else:
            logger.debug("Allowing aioboto3 to discover AWS credentials automatically")

        async with self._session.client("rekognition", **client_args) as client:
            yield client

    async def _extract(self, image_bytes: bytes) -> Optional[str]:
        try:
            async with self._get_client() as client:
                response = await client.index_faces(
                    CollectionId=self.collection_id,
                    Image={"Bytes": image_bytes},
                    MaxFaces=1,
                    QualityFilter="AUTO",
                    DetectionAttributes=["DEFAULT"],
                )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, "index_faces") from e

        records = response.get("FaceRecords") or []
        if not records:
            return None
        return records[0]["Face"]["FaceId"]

    async def _compare(self, face_id_1: str, face_id_2: str, target_image: Optional[bytes]) -> float:
        # Concurrent comparisons against the same face share one SearchFaces call
        task = self._searches.get(face_id_1)
        if task is None:
            task = asyncio.ensure_future(self._search(face_id_1))
            self._searches[face_id_1] = task
        try:
            similarities = await asyncio.shield(task)
        except Exception:
            if self._searches.get(face_id_1) is task:
                del self._searches[face_id_1]
            raise
        if face_id_2 not in similarities and target_image is not None:
            # Faces indexed after the shared search started are missing from it
            reverse = await self._search(face_id_2)
            return reverse.get(face_id_1, 0.0)
        return similarities.get(face_id_2, 0.0)

    async def release(self, face_id: FaceId) -> None:
        if face_id.provider == self.provider_type:
            self._released.add(face_id.value)

    async def aclose(self) -> None:
        for task in self._searches.values():
            if not task.done():
                task.cancel()
        self._searches.clear()
        await self._delete_released()

    async def _delete_released(self) -> None:
        """Delete released faces from the collection."""
        face_ids = sorted(self._released)
        self._released.clear()
        for start in range(0, len(face_ids), MAX_DELETE_FACES):
            batch = face_ids[start:start + MAX_DELETE_FACES]
            try:
                async with self._get_client() as client:
                    await client.delete_faces(CollectionId=self.collection_id, FaceIds=batch)
            except (ClientError, BotoCoreError) as e:
                # Unreferenced faces only cost collection space
                logger.warning(
                    "Failed to delete released faces",
                    collection_id=self.collection_id,
                    faces_count=len(batch),
                    error=str(e)
                )
                continue
            logger.debug("Deleted released faces", collection_id=self.collection_id, faces_count=len(batch))

    async def _search(self, face_id: str) -> Dict[str, float]:
        try:
            async with self._get_client() as client:
                response = await client.search_faces(
                    CollectionId=self.collection_id,
                    FaceId=face_id,
                    MaxFaces=MAX_SEARCH_FACES,
                    FaceMatchThreshold=0.0,
                )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, "search_faces") from e

        # Rekognition reports similarity as a percentage
        return {
            match["Face"]["FaceId"]: float(match["Similarity"]) / 100.0
            for match in response.get("FaceMatches", [])
        }

    def _translate_error(self, error: Exception, operation: str) -> FaceRecognitionError:
        """Map a botocore error onto the provider error taxonomy."""
        provider = ProviderType.AWS.value
        if isinstance(error, NoCredentialsError):
            logger.error("AWS credentials not found", operation=operation)
            return ProviderConfigInvalidError("AWS credentials not found or configured correctly", provider=provider)
        if not isinstance(error, ClientError):
            logger.warning("Rekognition request failed", operation=operation, error=str(error))
            return ProviderUnavailableError(f"Rekognition {operation} failed: {error}", provider=provider)

        code = error.response.get("Error", {}).get("Code", "")
        message = error.response.get("Error", {}).get("Message", str(error))
        logger.warning(
            "Rekognition request failed",
            operation=operation,
            error_code=code,
            error=message
        )

        if code in _CONFIG_ERRORS:
            return ProviderConfigInvalidError(f"Rekognition rejected the configuration: {message}", provider=provider)
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in _TRANSIENT_ERRORS or status >= 500:
            return ProviderUnavailableError(f"Rekognition {operation} unavailable: {message}", provider=provider)
        if code == "InvalidImageFormatException":
            return ImageDecodeError(f"Rekognition rejected the image: {message}")
        if code == "ImageTooLargeException":
            return ImageTooLargeError(f"Rekognition rejected the image size: {message}")
        if code == "InvalidParameterException" and operation == "index_faces" and "face" in message.lower():
            return NoFaceDetectedError(f"Rekognition found no face: {message}")
        if code == "InvalidParameterException" and operation == "search_faces":
            # The face was removed from the collection
            return IdentifierExpiredError(f"Rekognition face ID not found: {message}", provider=provider)
        return ProviderError(f"Rekognition {operation} failed ({code}): {message}", provider=provider)
