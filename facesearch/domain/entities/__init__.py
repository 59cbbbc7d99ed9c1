"""Domain entities package."""
from .face import FaceEmbeddingRecord, FaceId, ReferenceStub
from .provider import ProviderConfig, ProviderType

__all__ = ["FaceEmbeddingRecord", "FaceId", "ProviderConfig", "ProviderType", "ReferenceStub"]
