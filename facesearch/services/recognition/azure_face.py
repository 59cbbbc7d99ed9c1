"""
Azure AI Face implementation of the face provider interface.

Detection returns a transient ``faceId`` that Azure keeps for at most 24
hours; verification compares two such IDs. Verification and identification
are Limited Access features, so accounts without approval can detect faces
but every verify call fails with ``UnsupportedFeature``.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx

from facesearch.core.config import settings
from facesearch.core.exceptions import (
    FaceRecognitionError,
    FeatureRequiresApprovalError,
    IdentifierExpiredError,
    ImageDecodeError,
    ProviderConfigInvalidError,
    ProviderError,
    ProviderUnavailableError,
)
from facesearch.core.logging import get_logger
from facesearch.domain.entities.provider import ProviderConfig, ProviderType, secret_value
from facesearch.services.recognition.http_provider import HttpFaceProvider
from facesearch.services.recognition.registry import register_provider

logger = get_logger(__name__)

API_PATH = "/face/v1.0"
RECOGNITION_MODEL = "recognition_04"
DETECTION_MODEL = "detection_03"

_APPROVAL_CODES = {"UnsupportedFeature"}
_EXPIRED_CODES = {"FaceNotFound"}


@register_provider(ProviderType.AZURE)
class AzureFaceProvider(HttpFaceProvider):
    """Azure Face API provider."""

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        endpoint = (config.azure_endpoint or "").strip().rstrip("/")
        subscription_key = secret_value(config.azure_subscription_key)
        if not endpoint or not subscription_key:
            raise ProviderConfigInvalidError(
                "Azure Face requires an endpoint and a subscription key",
                provider=ProviderType.AZURE.value
            )
        super().__init__(config, client)
        self.base_url = f"{endpoint}{API_PATH}"
        self._subscription_key = subscription_key
        self.identifier_ttl = timedelta(seconds=settings.AZURE_FACE_ID_TTL_SECONDS)

    async def _extract(self, image_bytes: bytes) -> Optional[str]:
        response = await self._request(
            "POST",
            f"{self.base_url}/detect",
            operation="detect",
            params={
                "returnFaceId": "true",
                "returnFaceLandmarks": "false",
                "recognitionModel": RECOGNITION_MODEL,
                "detectionModel": DETECTION_MODEL,
                "faceIdTimeToLive": str(settings.AZURE_FACE_ID_TTL_SECONDS),
            },
            headers={
                "Ocp-Apim-Subscription-Key": self._subscription_key,
                "Content-Type": "application/octet-stream",
            },
            content=image_bytes,
        )
        if not response.is_success:
            raise self._translate_error(response, "detect")

        faces: List[Dict[str, Any]] = self._json(response) or []
        if not faces:
            return None

        # Several faces may be returned; the largest one is the subject
        primary = max(faces, key=_face_area)
        if len(faces) > 1:
            logger.debug("Multiple faces detected, using the largest", faces_count=len(faces))
        return primary.get("faceId")

    async def _compare(self, face_id_1: str, face_id_2: str, target_image: Optional[bytes]) -> float:
        response = await self._request(
            "POST",
            f"{self.base_url}/verify",
            operation="verify",
            headers={"Ocp-Apim-Subscription-Key": self._subscription_key},
            json={"faceId1": face_id_1, "faceId2": face_id_2},
        )
        if not response.is_success:
            raise self._translate_error(response, "verify")

        body = self._json(response) or {}
        return float(body.get("confidence", 0.0))

    def _translate_error(self, response: httpx.Response, operation: str) -> FaceRecognitionError:
        """Map an Azure error response onto the provider error taxonomy."""
        body = self._json(response) or {}
        error = body.get("error", {}) if isinstance(body, dict) else {}
        code = str(error.get("code", ""))
        message = str(error.get("message", "")) or response.reason_phrase
        status = response.status_code
        provider = ProviderType.AZURE.value

        logger.warning(
            "Azure Face request failed",
            operation=operation,
            status_code=status,
            error_code=code,
            error=message
        )

        lowered = message.lower()
        if code in _APPROVAL_CODES or "approval" in lowered or "limited access" in lowered:
            return FeatureRequiresApprovalError(
                f"Azure Face {operation} requires approval: {message}",
                provider=provider
            )
        if code in _EXPIRED_CODES or ("face" in lowered and "expired" in lowered):
            return IdentifierExpiredError(f"Azure face ID expired: {message}", provider=provider)
        if code.startswith("InvalidImage"):
            return ImageDecodeError(f"Azure rejected the image: {message}")
        if status in (401, 403) or code in ("Unauthorized", "PermissionDenied"):
            return ProviderConfigInvalidError(f"Azure Face rejected credentials: {message}", provider=provider)
        if status == 404:
            return ProviderConfigInvalidError(f"Azure Face endpoint not found: {message}", provider=provider)
        if status == 429 or status >= 500:
            return ProviderUnavailableError(f"Azure Face {operation} unavailable: {message}", provider=provider)
        return ProviderError(f"Azure Face {operation} failed ({status}): {message}", provider=provider)


def _face_area(face: Dict[str, Any]) -> int:
    rectangle = face.get("faceRectangle") or {}
    return int(rectangle.get("width", 0)) * int(rectangle.get("height", 0))
