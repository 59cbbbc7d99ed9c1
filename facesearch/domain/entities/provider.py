"""Face recognition provider domain entities."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class ProviderType(str, Enum):
    """Face recognition provider variants."""
    AWS = "aws"
    AZURE = "azure"
    GOOGLE = "google"
    CUSTOM = "custom"


class ProviderConfig(BaseModel):
    """Active face recognition provider configuration.

    Only one record is expected to be active and enabled at a time. Credentials
    are held as secrets so they never end up in logs or reprs.
    """
    id: str = Field(..., description="Configuration record identifier")
    name: str = Field("", description="Display name")
    provider_type: ProviderType = Field(..., description="Provider variant tag")

    aws_access_key_id: Optional[SecretStr] = Field(None, description="AWS access key ID")
    aws_secret_access_key: Optional[SecretStr] = Field(None, description="AWS secret access key")
    aws_region: Optional[str] = Field(None, description="AWS region for Rekognition")
    aws_collection_id: Optional[str] = Field(None, description="Rekognition collection holding indexed faces")

    azure_endpoint: Optional[str] = Field(None, description="Azure Face resource endpoint")
    azure_subscription_key: Optional[SecretStr] = Field(None, description="Azure Face subscription key")

    google_api_key: Optional[SecretStr] = Field(None, description="Google Cloud Vision API key")

    custom_endpoint: Optional[str] = Field(None, description="Base URL of the custom face service")
    custom_api_key: Optional[SecretStr] = Field(None, description="API key of the custom face service")

    similarity_threshold: float = Field(0.8, description="Default comparison cutoff", ge=0.0, le=1.0)
    max_results: int = Field(10, description="Maximum number of search results", gt=0)
    is_active: bool = Field(True, description="Whether this is the active configuration")
    enabled: bool = Field(True, description="Whether this configuration is enabled")

    model_config = ConfigDict(frozen=True)


def secret_value(secret: Optional[SecretStr]) -> Optional[str]:
    """Unwrap an optional secret, treating blank values as missing."""
    if secret is None:
        return None
    value = secret.get_secret_value().strip()
    return value or None
