"""
Cloud provider backends.

Usage:
    from snapwarden.providers import create_provider
    provider = create_provider(config.provider)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from snapwarden.exceptions import ProviderEnvironmentError
from snapwarden.providers.aws import AwsProvider
from snapwarden.providers.azure import AzureProvider
from snapwarden.providers.base import CloudProvider, tags_match
from snapwarden.providers.memory import InMemoryProvider

if TYPE_CHECKING:
    from snapwarden.config import ProviderConfig

__all__ = [
    "AwsProvider",
    "AzureProvider",
    "CloudProvider",
    "InMemoryProvider",
    "create_provider",
    "tags_match",
]


def create_provider(config: ProviderConfig) -> CloudProvider:
    """
    Build the provider named in the configuration.

    SDKs are imported lazily, so constructing a provider never fails for a
    missing SDK; the first call does.

    Raises:
        ProviderEnvironmentError: If the provider name is unknown.
    """
    name = config.name.strip().lower()
    if name == "aws":
        return AwsProvider(region=config.region, profile=config.profile)
    if name == "azure":
        return AzureProvider(subscription_id=config.subscription_id)
    if name == "memory":
        return InMemoryProvider()
    raise ProviderEnvironmentError.unsupported_provider(config.name)
