"""
Google Cloud Vision implementation of the face provider interface.

Cloud Vision detects faces and landmarks but has no identity comparison
endpoint. The identifier issued here is a self-contained signature of the
primary face's landmark geometry, and comparison happens locally:

1. Landmarks are projected to 2D in a fixed order
2. The shape is centred and scaled to unit norm
3. Two shapes are aligned with orthogonal Procrustes
4. The residual distance is mapped onto a similarity in [0, 1]

Geometry is a coarse signal; thresholds for this provider should be set
higher than for the dedicated face APIs.
"""
import base64
import binascii
from typing import Any, Dict, List, Optional

import httpx
import numpy as np

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

ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"
SIGNATURE_PREFIX = "gv1:"

# Procrustes residual at which similarity reaches zero
SHAPE_TOLERANCE = 0.35

LANDMARK_TYPES = (
    "LEFT_EYE", "RIGHT_EYE",
    "LEFT_OF_LEFT_EYEBROW", "RIGHT_OF_LEFT_EYEBROW",
    "LEFT_OF_RIGHT_EYEBROW", "RIGHT_OF_RIGHT_EYEBROW",
    "MIDPOINT_BETWEEN_EYES", "NOSE_TIP", "UPPER_LIP", "LOWER_LIP",
    "MOUTH_LEFT", "MOUTH_RIGHT", "MOUTH_CENTER",
    "NOSE_BOTTOM_RIGHT", "NOSE_BOTTOM_LEFT", "NOSE_BOTTOM_CENTER",
    "LEFT_EYE_TOP_BOUNDARY", "LEFT_EYE_RIGHT_CORNER",
    "LEFT_EYE_BOTTOM_BOUNDARY", "LEFT_EYE_LEFT_CORNER",
    "RIGHT_EYE_TOP_BOUNDARY", "RIGHT_EYE_RIGHT_CORNER",
    "RIGHT_EYE_BOTTOM_BOUNDARY", "RIGHT_EYE_LEFT_CORNER",
    "LEFT_EYEBROW_UPPER_MIDPOINT", "RIGHT_EYEBROW_UPPER_MIDPOINT",
    "LEFT_EAR_TRAGION", "RIGHT_EAR_TRAGION",
    "FOREHEAD_GLABELLA", "CHIN_GNATHION",
    "CHIN_LEFT_GONION", "CHIN_RIGHT_GONION",
    "LEFT_CHEEK_CENTER", "RIGHT_CHEEK_CENTER",
)

# Fewer shared landmarks than this cannot be compared meaningfully
MIN_SHARED_LANDMARKS = 8


def encode_landmarks(landmarks: List[Dict[str, Any]]) -> Optional[str]:
    """Encode Vision landmarks as a signature string, NaN marking missing points."""
    points = np.full((len(LANDMARK_TYPES), 2), np.nan, dtype=np.float32)
    index = {name: i for i, name in enumerate(LANDMARK_TYPES)}
    for landmark in landmarks:
        i = index.get(landmark.get("type", ""))
        position = landmark.get("position") or {}
        if i is None or "x" not in position or "y" not in position:
            continue
        points[i] = (float(position["x"]), float(position["y"]))

    if int(np.isfinite(points[:, 0]).sum()) < MIN_SHARED_LANDMARKS:
        return None
    return SIGNATURE_PREFIX + base64.b64encode(points.tobytes()).decode("ascii")


def decode_landmarks(signature: str) -> np.ndarray:
    """Decode a signature back into a (landmarks, 2) array.

    Raises:
        ValueError: If the signature is not a current-version landmark signature
    """
    if not signature.startswith(SIGNATURE_PREFIX):
        raise ValueError("Unknown signature version")
    try:
        raw = base64.b64decode(signature[len(SIGNATURE_PREFIX):], validate=True)
    except binascii.Error as e:
        raise ValueError(f"Corrupt signature: {e}") from e
    points = np.frombuffer(raw, dtype=np.float32)
    if points.size != len(LANDMARK_TYPES) * 2:
        raise ValueError("Signature has the wrong number of landmarks")
    return points.reshape(len(LANDMARK_TYPES), 2)


def shape_similarity(points_1: np.ndarray, points_2: np.ndarray) -> float:
    """Similarity in [0, 1] of two landmark shapes after Procrustes alignment."""
    shared = np.isfinite(points_1[:, 0]) & np.isfinite(points_2[:, 0])
    if int(shared.sum()) < MIN_SHARED_LANDMARKS:
        return 0.0

    shapes = []
    for points in (points_1[shared], points_2[shared]):
        centred = points.astype(np.float64) - points.mean(axis=0)
        norm = np.linalg.norm(centred)
        if norm == 0:
            return 0.0
        shapes.append(centred / norm)

    # For unit-norm shapes the aligned residual is sqrt(2 - 2 * nuclear norm)
    singular_values = np.linalg.svd(shapes[1].T @ shapes[0], compute_uv=False)
    residual = float(np.sqrt(max(0.0, 2.0 - 2.0 * float(singular_values.sum()))))
    return max(0.0, 1.0 - residual / SHAPE_TOLERANCE)


@register_provider(ProviderType.GOOGLE)
class GoogleVisionProvider(HttpFaceProvider):
    """Google Cloud Vision provider."""

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        api_key = secret_value(config.google_api_key)
        if not api_key:
            raise ProviderConfigInvalidError(
                "Google Cloud Vision requires an API key",
                provider=ProviderType.GOOGLE.value
            )
        super().__init__(config, client)
        self._api_key = api_key

    async def _extract(self, image_bytes: bytes) -> Optional[str]:
        response = await self._request(
            "POST",
            ANNOTATE_URL,
            operation="annotate",
            params={"key": self._api_key},
            json={
                "requests": [{
                    "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
                    "features": [{"type": "FACE_DETECTION", "maxResults": 5}],
                }]
            },
        )
        body = self._json(response) or {}
        if not response.is_success:
            raise self._translate_error(body.get("error", {}), response.status_code)

        result = (body.get("responses") or [{}])[0]
        if result.get("error"):
            raise self._translate_error(result["error"], response.status_code)

        faces = result.get("faceAnnotations") or []
        if not faces:
            return None
        primary = max(faces, key=lambda face: float(face.get("detectionConfidence", 0.0)))
        return encode_landmarks(primary.get("landmarks") or [])

    async def _compare(self, face_id_1: str, face_id_2: str, target_image: Optional[bytes]) -> float:
        points = []
        for signature in (face_id_1, face_id_2):
            try:
                points.append(decode_landmarks(signature))
            except ValueError as e:
                raise IdentifierExpiredError(
                    f"Stale Google Vision face signature: {e}",
                    provider=ProviderType.GOOGLE.value
                ) from e
        return shape_similarity(points[0], points[1])

    def _translate_error(self, error: Dict[str, Any], status: int) -> FaceRecognitionError:
        """Map a Vision error object onto the provider error taxonomy."""
        message = str(error.get("message", "")) or f"HTTP {status}"
        error_status = str(error.get("status", ""))
        code = error.get("code")
        provider = ProviderType.GOOGLE.value

        logger.warning(
            "Google Vision request failed",
            status_code=status,
            error_status=error_status,
            error=message
        )

        lowered = message.lower()
        if error_status == "PERMISSION_DENIED" and (
            "billing" in lowered or "has not been used" in lowered or "disabled" in lowered
        ):
            return FeatureRequiresApprovalError(
                f"Google Vision face detection is not enabled for this project: {message}",
                provider=provider
            )
        if "api key not valid" in lowered or status in (401, 403) or error_status in (
            "UNAUTHENTICATED", "PERMISSION_DENIED"
        ):
            return ProviderConfigInvalidError(f"Google Vision rejected credentials: {message}", provider=provider)
        if error_status == "INVALID_ARGUMENT" or code == 3:
            return ImageDecodeError(f"Google Vision rejected the image: {message}")
        if status == 429 or status >= 500 or error_status in ("RESOURCE_EXHAUSTED", "UNAVAILABLE"):
            return ProviderUnavailableError(f"Google Vision unavailable: {message}", provider=provider)
        return ProviderError(f"Google Vision request failed ({status}): {message}", provider=provider)
