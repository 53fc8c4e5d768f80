#!/usr/bin/env python3
"""
Providers Module

Registry for clan data providers.
"""

from typing import Any, Dict, Optional

from warstats.config import is_valid_api_key

from .clash_royale import ClashRoyaleProvider
from .demo import DemoProvider
from .provider_base import (ClanDataProvider, EndpointDisabledError, ProviderAPIError,
                            ProviderDataError, ProviderError)

PROVIDERS = {
    "clashroyale": ClashRoyaleProvider,
    "demo": DemoProvider,
}


def get_provider(provider_name: str):
    """
    Get a provider class by name.

    Raises:
        ValueError: If provider not found
    """
    if provider_name not in PROVIDERS:
        available = list(PROVIDERS.keys())
        raise ValueError(f"Provider '{provider_name}' not found. Available: {available}")
    return PROVIDERS[provider_name]


def build_provider(config: Dict[str, Any], provider_name: Optional[str] = None) -> ClanDataProvider:
    """
    Instantiate the provider for this configuration.

    Without an explicit name, a valid API key selects the live API and
    anything else falls back to demo mode.
    """
    if provider_name is None:
        provider_name = "clashroyale" if is_valid_api_key(config.get("API_KEY")) else "demo"
    return get_provider(provider_name)(config)


__all__ = [
    "ClanDataProvider", "ClashRoyaleProvider", "DemoProvider",
    "ProviderError", "ProviderAPIError", "EndpointDisabledError", "ProviderDataError",
    "PROVIDERS", "get_provider", "build_provider",
]
