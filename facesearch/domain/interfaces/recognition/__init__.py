"""Face recognition interfaces."""
from .face_provider import FaceProviderClient

__all__ = ["FaceProviderClient"]
