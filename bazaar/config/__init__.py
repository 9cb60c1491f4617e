"""Bazaar configuration module.

This module provides TOML-based configuration with environment variable overrides.

Configuration is loaded from the following locations (in order of priority):
1. Environment variables (highest priority)
2. ./config.toml (project root - for development)
3. ~/.config/bazaar/config.toml (user config)
4. /etc/bazaar/config.toml (system config)

Secrets are loaded from secrets.env files in the same directories.
"""

from bazaar.config.schema import (
    AuthConfig,
    BazaarConfig,
    CatalogConfig,
    DatabaseConfig,
    ImageKitConfig,
    ImportConfig,
    PricingConfig,
    SecretsConfig,
    ServerConfig,
)
from bazaar.config.settings import get_settings, reset_settings, settings

__all__ = [
    "AuthConfig",
    "BazaarConfig",
    "CatalogConfig",
    "DatabaseConfig",
    "ImageKitConfig",
    "ImportConfig",
    "PricingConfig",
    "SecretsConfig",
    "ServerConfig",
    "get_settings",
    "reset_settings",
    "settings",
]
