"""Factory selecting the provider implementation for a configuration."""
from facesearch.core.exceptions import ProviderConfigInvalidError
from facesearch.core.logging import get_logger
from facesearch.domain.entities.provider import ProviderConfig
from facesearch.domain.interfaces.recognition import FaceProviderClient
from facesearch.services.recognition.registry import registered_providers

# Imported for their registration side effect
from facesearch.services.recognition import aws_rekognition, azure_face, custom, google_vision  # noqa: F401

logger = get_logger(__name__)


def create_face_provider(config: ProviderConfig) -> FaceProviderClient:
    """Create the provider client for a configuration's variant tag.

    Args:
        config: Active provider configuration

    Returns:
        FaceProviderClient: Client for the configured variant

    Raises:
        ProviderConfigInvalidError: If no implementation is registered for the
            variant or its credentials are incomplete
    """
    provider_cls = registered_providers().get(config.provider_type)
    if provider_cls is None:
        raise ProviderConfigInvalidError(
            f"No face recognition provider registered for '{config.provider_type.value}'",
            provider=config.provider_type.value
        )
    logger.debug(
        "Creating face recognition provider",
        provider=config.provider_type.value,
        config_id=config.id
    )
    return provider_cls(config)
