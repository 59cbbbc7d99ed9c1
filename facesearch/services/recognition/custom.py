"""Custom HTTP face service implementation of the face provider interface."""
import base64
from typing import Optional

import httpx

from facesearch.core.exceptions import (
    FaceRecognitionError,
    FeatureRequiresApprovalError,
    IdentifierExpiredError,
    NoFaceDetectedError,
    ProviderConfigInvalidError,
    ProviderError,
    ProviderUnavailableError,
)
from facesearch.core.logging import get_logger
from facesearch.domain.entities.provider import ProviderConfig, ProviderType, secret_value
from facesearch.services.recognition.http_provider import HttpFaceProvider
from facesearch.services.recognition.registry import register_provider

logger = get_logger(__name__)


@register_provider(ProviderType.CUSTOM)
class CustomFaceProvider(HttpFaceProvider):
    """Provider for a self-hosted face service.

    Expected endpoints, relative to the configured base URL:
        POST /extract   body: raw image bytes          -> {"face_id": "..."}
        POST /compare   body: {"face_id_1", "face_id_2", "target_image"?} -> {"similarity": 0.93}

    Requests carry the configured API key in ``X-API-Key``.
    """

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        endpoint = (config.custom_endpoint or "").strip().rstrip("/")
        if not endpoint:
            raise ProviderConfigInvalidError(
                "Custom face provider requires an endpoint",
                provider=ProviderType.CUSTOM.value
            )
        super().__init__(config, client)
        self.base_url = endpoint
        api_key = secret_value(config.custom_api_key)
        self._headers = {"X-API-Key": api_key} if api_key else {}

    async def _extract(self, image_bytes: bytes) -> Optional[str]:
        response = await self._request(
            "POST",
            f"{self.base_url}/extract",
            operation="extract",
            headers={**self._headers, "Content-Type": "application/octet-stream"},
            content=image_bytes,
        )
        if response.status_code == 422:
            return None
        if not response.is_success:
            raise self._translate_error(response, "extract")

        body = self._json(response) or {}
        face_id = body.get("face_id") if isinstance(body, dict) else None
        return str(face_id) if face_id else None

    async def _compare(self, face_id_1: str, face_id_2: str, target_image: Optional[bytes]) -> float:
        payload = {"face_id_1": face_id_1, "face_id_2": face_id_2}
        if target_image is not None:
            payload["target_image"] = base64.b64encode(target_image).decode("ascii")

        response = await self._request(
            "POST",
            f"{self.base_url}/compare",
            operation="compare",
            headers=self._headers,
            json=payload,
        )
        if not response.is_success:
            raise self._translate_error(response, "compare")

        body = self._json(response)
        if not isinstance(body, dict) or "similarity" not in body:
            raise ProviderError("Custom face service returned no similarity", provider=ProviderType.CUSTOM.value)
        return float(body["similarity"])

    def _translate_error(self, response: httpx.Response, operation: str) -> FaceRecognitionError:
        """Map a custom service status code onto the provider error taxonomy."""
        body = self._json(response)
        detail = ""
        if isinstance(body, dict):
            detail = str(body.get("detail") or body.get("message") or body.get("error") or "")
        detail = detail or response.reason_phrase
        status = response.status_code
        provider = ProviderType.CUSTOM.value

        logger.warning(
            "Custom face service request failed",
            operation=operation,
            status_code=status,
            error=detail
        )

        if status == 401:
            return ProviderConfigInvalidError(f"Custom face service rejected the API key: {detail}", provider=provider)
        if status == 403:
            return FeatureRequiresApprovalError(f"Custom face service {operation} requires approval: {detail}", provider=provider)
        if status in (404, 410):
            if operation == "compare":
                return IdentifierExpiredError(f"Custom face identifier expired: {detail}", provider=provider)
            return ProviderConfigInvalidError(
                f"Custom face service has no {operation} endpoint: {detail}",
                provider=provider
            )
        if status == 422:
            return NoFaceDetectedError(f"No face detected: {detail}")
        if status == 429 or status >= 500:
            return ProviderUnavailableError(f"Custom face service {operation} unavailable: {detail}", provider=provider)
        return ProviderError(f"Custom face service {operation} failed ({status}): {detail}", provider=provider)
