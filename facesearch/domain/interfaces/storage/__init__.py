"""Storage interfaces."""
from .repositories import EmbeddingRepository, ProviderConfigStore, ReferenceRepository

__all__ = ["EmbeddingRepository", "ProviderConfigStore", "ReferenceRepository"]
