"""Time-bounded cache of the active provider configuration."""
import asyncio
import time
from typing import Callable, Optional

from facesearch.core.config import settings
from facesearch.core.logging import get_logger
from facesearch.domain.entities.provider import ProviderConfig
from facesearch.domain.interfaces.storage import ProviderConfigStore

logger = get_logger(__name__)


class ProviderConfigCache:
    """Caches the active provider configuration for a fixed TTL.

    Only successful lookups are cached: when the store fails or has no active
    configuration, ``get`` returns None and the next call queries the store
    again. Staleness up to the TTL after an admin change is accepted.

    Example:
        ```python
        cache = ProviderConfigCache(SqlAlchemyProviderConfigStore(session_factory))
        config = await cache.get()
        ```
    """

    def __init__(
        self,
        store: ProviderConfigStore,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            store: Store the active configuration is read from
            ttl_seconds: Cache lifetime, defaults to settings.PROVIDER_CONFIG_TTL_SECONDS
            clock: Monotonic time source in seconds
        """
        self._store = store
        self._ttl = settings.PROVIDER_CONFIG_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._config: Optional[ProviderConfig] = None
        self._loaded_at: Optional[float] = None

    async def get(self) -> Optional[ProviderConfig]:
        """Return the active configuration, from cache while it is fresh."""
        async with self._lock:
            if self._config is not None and self._loaded_at is not None:
                if self._clock() - self._loaded_at < self._ttl:
                    return self._config

        # The store is queried outside the lock; concurrent misses both query
        # and the last write wins.
        try:
            config = await self._store.get_active()
        except Exception as e:
            logger.error(
                "Failed to load active provider configuration",
                error=str(e),
                exc_info=True
            )
            return None

        if config is None:
            logger.warning("No active face recognition provider configured")
            return None

        async with self._lock:
            self._config = config
            self._loaded_at = self._clock()

        logger.debug(
            "Loaded active provider configuration",
            config_id=config.id,
            provider=config.provider_type.value
        )
        return config

    async def invalidate(self) -> None:
        """Drop the cached configuration so the next call reads the store."""
        async with self._lock:
            self._config = None
            self._loaded_at = None
