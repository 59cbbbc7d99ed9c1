"""Face recognition provider interface."""
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, ClassVar, Optional, TypeVar

from facesearch.core.exceptions import NoFaceDetectedError, ProviderMismatchError
from ...entities.face import FaceId
from ...entities.provider import ProviderConfig, ProviderType

T = TypeVar("T", bound="FaceProviderClient")


class FaceProviderClient(ABC):
    """Interface for remote face recognition providers.

    Providers are black boxes: ``extract`` turns an image into an opaque face
    identifier, ``compare`` turns two identifiers issued by the same provider
    into a similarity in [0, 1]. Subclasses implement ``_extract`` and
    ``_compare``; the public methods tag identifiers with the provider variant
    and refuse identifiers issued by any other variant.
    """

    provider_type: ClassVar[ProviderType]

    # Lifetime of issued identifiers, None when they never expire
    identifier_ttl: Optional[timedelta] = None

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    async def __aenter__(self: T) -> T:
        return self

    async def __aexit__(self, exc_type: Optional[type], exc_val: Optional[Exception],
                        exc_tb: Optional[Any]) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release any network resources held by the provider."""

    async def release(self, face_id: FaceId) -> None:
        """Mark an identifier as no longer referenced.

        Providers that keep faces in server-side storage drop them no later
        than ``aclose``. Identifiers issued by other providers are ignored.
        """

    async def extract(self, image_bytes: bytes) -> FaceId:
        """
        Extract the primary face identifier from an image.

        Args:
            image_bytes: Raw image data

        Returns:
            FaceId tagged with this provider's variant

        Raises:
            NoFaceDetectedError: If the provider found no face
            ProviderUnavailableError: On transient provider failures
            ProviderConfigInvalidError: If the provider rejects the configuration
        """
        value = await self._extract(image_bytes)
        if not value:
            raise NoFaceDetectedError("No face detected in image")
        return FaceId(provider=self.provider_type, value=value)

    async def compare(
        self,
        face_id_1: FaceId,
        face_id_2: FaceId,
        target_image: Optional[bytes] = None,
    ) -> float:
        """
        Compare two face identifiers issued by this provider.

        Args:
            face_id_1: Identifier of the searched face
            face_id_2: Identifier of the reference face
            target_image: Reference photo bytes, for providers that can use them

        Returns:
            Similarity in [0, 1]

        Raises:
            ProviderMismatchError: If an identifier was issued by another provider
            FeatureRequiresApprovalError: If comparison is not provisioned for the account
            IdentifierExpiredError: If an identifier is no longer known to the provider
            ProviderUnavailableError: On transient provider failures
        """
        for face_id in (face_id_1, face_id_2):
            if face_id.provider != self.provider_type:
                raise ProviderMismatchError(
                    f"Identifier issued by '{face_id.provider.value}' cannot be compared "
                    f"by '{self.provider_type.value}'",
                    provider=self.provider_type.value,
                )
        similarity = await self._compare(face_id_1.value, face_id_2.value, target_image)
        return min(max(float(similarity), 0.0), 1.0)

    @abstractmethod
    async def _extract(self, image_bytes: bytes) -> Optional[str]:
        """Return the provider identifier of the primary face, or None if there is none."""
        pass

    @abstractmethod
    async def _compare(self, face_id_1: str, face_id_2: str, target_image: Optional[bytes]) -> float:
        """Return the provider similarity of two raw identifiers."""
        pass
