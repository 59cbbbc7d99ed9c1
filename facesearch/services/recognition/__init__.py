"""Face recognition provider implementations."""
from .factory import create_face_provider
from .registry import register_provider, registered_providers

__all__ = ["create_face_provider", "register_provider", "registered_providers"]
