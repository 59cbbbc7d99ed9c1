"""Shared fixtures."""
import pytest

from facesearch.domain.entities.provider import ProviderConfig
from facesearch.services.provider_config import ProviderConfigCache
from tests.fakes import FakeConfigStore, make_config


@pytest.fixture
def config() -> ProviderConfig:
    return make_config()


@pytest.fixture
def config_store(config) -> FakeConfigStore:
    return FakeConfigStore(config)


@pytest.fixture
def config_cache(config_store) -> ProviderConfigCache:
    return ProviderConfigCache(config_store)
