"""Service interfaces package."""
from .recognition import FaceProviderClient
from .storage import EmbeddingRepository, ProviderConfigStore, ReferenceRepository

__all__ = ["EmbeddingRepository", "FaceProviderClient", "ProviderConfigStore", "ReferenceRepository"]
