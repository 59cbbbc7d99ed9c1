"""Registry of face recognition provider variants."""
from typing import Callable, Dict, Type, TypeVar

from facesearch.domain.entities.provider import ProviderType
from facesearch.domain.interfaces.recognition import FaceProviderClient

P = TypeVar("P", bound=FaceProviderClient)

_PROVIDERS: Dict[ProviderType, Type[FaceProviderClient]] = {}


def register_provider(provider_type: ProviderType) -> Callable[[Type[P]], Type[P]]:
    """Class decorator registering a provider implementation for a variant tag.

    Example:
        ```python
        @register_provider(ProviderType.CUSTOM)
        class CustomFaceProvider(HttpFaceProvider):
            ...
        ```
    """
    def decorator(cls: Type[P]) -> Type[P]:
        cls.provider_type = provider_type
        _PROVIDERS[provider_type] = cls
        return cls
    return decorator


def registered_providers() -> Dict[ProviderType, Type[FaceProviderClient]]:
    """Snapshot of the registered provider implementations."""
    return dict(_PROVIDERS)
