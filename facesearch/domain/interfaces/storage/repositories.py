"""Persistent store interfaces for provider configuration and face identifiers."""
from abc import ABC, abstractmethod
from typing import List, Optional

from ...entities.face import FaceEmbeddingRecord, ReferenceStub
from ...entities.provider import ProviderConfig


class ProviderConfigStore(ABC):
    """Read access to the provider configuration records."""

    @abstractmethod
    async def get_active(self) -> Optional[ProviderConfig]:
        """
        Get the active and enabled provider configuration.

        Returns:
            The first active configuration, or None when there is none

        Raises:
            StorageError: If the store cannot be queried
        """
        pass


class EmbeddingRepository(ABC):
    """Stored face identifiers, one per reference."""

    @abstractmethod
    async def get(self, relationship_id: str) -> Optional[FaceEmbeddingRecord]:
        """
        Get the stored record of a reference.

        Args:
            relationship_id: Reference identifier

        Returns:
            The record, or None when nothing is stored for the reference
        """
        pass

    @abstractmethod
    async def upsert(self, record: FaceEmbeddingRecord) -> bool:
        """
        Insert or replace the record of a reference (last write wins).

        Args:
            record: Record to store, keyed by relationship_id

        Returns:
            True once the record is stored

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_all_with_photos(self) -> List[FaceEmbeddingRecord]:
        """
        List every stored record that has a source photo.

        Raises:
            StorageError: If the store cannot be queried
        """
        pass


class ReferenceRepository(ABC):
    """Read access to the reference subjects that can be searched."""

    @abstractmethod
    async def get(self, relationship_id: str) -> Optional[ReferenceStub]:
        """Get a reference by identifier, or None when it does not exist."""
        pass

    @abstractmethod
    async def list_with_photos(self) -> List[ReferenceStub]:
        """List every reference with a non-empty face photo."""
        pass
