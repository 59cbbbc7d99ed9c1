"""
Image reference utility functions.
"""
import base64
import binascii
import re
from typing import Optional

from facesearch.core.exceptions import ImageDecodeError, ImageTooLargeError

_WHITESPACE = re.compile(r"\s+")
_URLSAFE_CHARS = re.compile(r"[-_]")
_STANDARD_CHARS = re.compile(r"[+/]")
_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


def is_http_url(reference: str) -> bool:
    """Whether an image reference points at an HTTP(S) URL."""
    lowered = reference[:8].lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def is_data_url(reference: str) -> bool:
    """Whether an image reference is an inline data URL."""
    return reference[:5].lower() == "data:"


def split_data_url(reference: str) -> str:
    """Return the base64 payload of a ``data:<mime>;base64,<payload>`` URL.

    Raises:
        ImageDecodeError: If the data URL is malformed or not base64 encoded
    """
    header, separator, payload = reference.partition(",")
    if not separator:
        raise ImageDecodeError("Malformed data URL: missing ',' separator")
    if ";base64" not in header.lower():
        raise ImageDecodeError("Only base64 encoded data URLs are supported")
    return payload


def decode_base64_image(data: str, max_bytes: Optional[int] = None) -> bytes:
    """Decode a base64 image payload.

    Whitespace is ignored, missing padding is restored and the URL-safe
    alphabet is accepted.

    Args:
        data: Base64 text
        max_bytes: Largest decoded size accepted

    Returns:
        bytes: Decoded image data

    Raises:
        ImageDecodeError: If the payload is empty or not valid base64
        ImageTooLargeError: If the decoded image would exceed max_bytes
    """
    payload = _WHITESPACE.sub("", data)
    if not payload:
        raise ImageDecodeError("Empty image data")

    # Reject oversized payloads before decoding them
    if max_bytes is not None and (len(payload) * 3) // 4 > max_bytes + 2:
        raise ImageTooLargeError(
            f"Image exceeds maximum size of {max_bytes} bytes",
            details={"max_bytes": max_bytes}
        )

    if _URLSAFE_CHARS.search(payload):
        if _STANDARD_CHARS.search(payload):
            raise ImageDecodeError("Invalid base64 image data: mixed standard and URL-safe alphabets")
        payload = payload.translate(_URLSAFE_TO_STANDARD)

    payload += "=" * (-len(payload) % 4)
    try:
        image_bytes = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 image data: {e}") from e

    if not image_bytes:
        raise ImageDecodeError("Empty image data")
    if max_bytes is not None and len(image_bytes) > max_bytes:
        raise ImageTooLargeError(
            f"Image exceeds maximum size of {max_bytes} bytes",
            details={"max_bytes": max_bytes, "size": len(image_bytes)}
        )
    return image_bytes
