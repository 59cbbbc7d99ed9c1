"""Custom exceptions for the face search service."""
from typing import Optional


class FaceRecognitionError(Exception):
    """Base exception for face recognition operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize face recognition error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


class NoActiveProviderError(FaceRecognitionError):
    """Raised when no enabled and active provider configuration exists."""
    pass


class InvalidImageError(FaceRecognitionError):
    """Raised when the provided image is invalid or cannot be processed."""
    pass


class ImageFetchError(InvalidImageError):
    """Raised when an image URL cannot be fetched."""
    pass


class ImageDecodeError(InvalidImageError):
    """Raised when inline image data cannot be decoded."""
    pass


class ImageTooLargeError(InvalidImageError):
    """Raised when the image exceeds the maximum allowed size."""
    pass


class NoFaceDetectedError(FaceRecognitionError):
    """Raised when no face is detected in the image."""
    pass


class ProviderError(FaceRecognitionError):
    """Base exception for failures reported by a face recognition provider."""

    def __init__(self, message: str, provider: Optional[str] = None, details: Optional[dict] = None):
        """
        Initialize provider error.

        Args:
            message: Error description
            provider: Provider variant that raised the error
            details: Additional error context
        """
        super().__init__(message, details)
        self.provider = provider


class FeatureRequiresApprovalError(ProviderError):
    """Raised when the provider account is not entitled to a feature yet."""
    pass


class IdentifierExpiredError(ProviderError):
    """Raised when a stored face identifier is no longer known to the provider."""
    pass


class ProviderUnavailableError(ProviderError):
    """Raised on transient network or HTTP failures talking to a provider."""
    pass


class ProviderConfigInvalidError(ProviderError):
    """Raised when the provider configuration is missing or rejected."""
    pass


class ProviderMismatchError(ProviderError):
    """Raised when a face identifier is passed to a provider that did not produce it."""
    pass


class StorageError(FaceRecognitionError):
    """Raised when the persistent store fails."""
    pass


class ServiceNotInitializedError(FaceRecognitionError):
    """Raised when a service is requested before the container is initialized."""
    pass
