"""Global settings instance for Bazaar.

This module provides a unified settings object that combines:
- Configuration from config.toml
- Secrets from secrets.env
- Environment variable overrides

The settings object provides a flat interface for callers while internally
using the structured configuration.
"""

import logging
import secrets as secrets_module

from bazaar.config.loader import load_config, load_secrets
from bazaar.config.schema import BazaarConfig, SecretsConfig

logger = logging.getLogger(__name__)


class Settings:
    """Unified settings object combining config and secrets.

    This class provides a flat interface for accessing configuration values
    while internally using the structured BazaarConfig and SecretsConfig.
    """

    def __init__(
        self,
        config: BazaarConfig | None = None,
        secrets: SecretsConfig | None = None,
    ):
        """Initialize settings.

        Args:
            config: Optional BazaarConfig instance. If not provided, loads from file.
            secrets: Optional SecretsConfig instance. If not provided, loads from file.
        """
        self._config = config or load_config()
        self._secrets = secrets or load_secrets()

        if not self._secrets.secret_key:
            self._secrets.secret_key = secrets_module.token_urlsafe(32)
            logger.warning(
                "SECURITY WARNING: No secret key configured. "
                "A random key has been generated and no identity provider token "
                "will verify against it. Set BAZAAR_SECRET_KEY for production use."
            )

    # =========================================================================
    # Config accessors
    # =========================================================================

    @property
    def config(self) -> BazaarConfig:
        """Get the full configuration object."""
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        """Get the secrets configuration object."""
        return self._secrets

    # =========================================================================
    # Flat property interface
    # =========================================================================

    # Application
    @property
    def app_name(self) -> str:
        return self._config.app_name

    @property
    def debug(self) -> bool:
        return self._config.server.debug

    # Server
    @property
    def host(self) -> str:
        return self._config.server.host

    @property
    def port(self) -> int:
        return self._config.server.port

    @property
    def workers(self) -> int:
        return self._config.server.workers

    @property
    def enforce_https(self) -> bool:
        return self._config.server.enforce_https

    @property
    def rate_limit_per_minute(self) -> int:
        return self._config.server.rate_limit_per_minute

    @property
    def cors_origins(self) -> list[str]:
        return self._config.server.cors_origins

    # Database
    @property
    def mongodb_url(self) -> str:
        return self._config.database.mongodb_url

    @property
    def mongodb_database(self) -> str:
        return self._config.database.mongodb_database

    @property
    def min_pool_size(self) -> int:
        return self._config.database.min_pool_size

    @property
    def max_pool_size(self) -> int:
        return self._config.database.max_pool_size

    # Auth
    @property
    def jwt_algorithm(self) -> str:
        return self._config.auth.jwt_algorithm

    @property
    def jwt_audience(self) -> str | None:
        return self._config.auth.audience

    @property
    def jwt_issuer(self) -> str | None:
        return self._config.auth.issuer

    @property
    def admin_roles(self) -> list[str]:
        return self._config.auth.admin_roles

    # Imports
    @property
    def session_ttl_minutes(self) -> int:
        return self._config.imports.session_ttl_minutes

    @property
    def cleanup_interval_minutes(self) -> int:
        return self._config.imports.cleanup_interval_minutes

    @property
    def preview_rows(self) -> int:
        return self._config.imports.preview_rows

    @property
    def max_import_rows(self) -> int:
        return self._config.imports.max_rows

    @property
    def max_data_file_bytes(self) -> int:
        return self._config.imports.max_data_file_bytes

    @property
    def max_archive_bytes(self) -> int:
        return self._config.imports.max_archive_bytes

    @property
    def max_image_bytes(self) -> int:
        return self._config.imports.max_image_bytes

    @property
    def upload_concurrency(self) -> int:
        return self._config.imports.upload_concurrency

    @property
    def image_dedup(self) -> str:
        return self._config.imports.image_dedup

    # Pricing
    @property
    def markup_percent(self) -> float:
        return self._config.pricing.markup_percent

    @property
    def dynamic_markup_percent(self) -> float:
        return self._config.pricing.dynamic_markup_percent

    # ImageKit
    @property
    def imagekit_public_key(self) -> str | None:
        return self._config.imagekit.public_key

    @property
    def imagekit_url_endpoint(self) -> str | None:
        return self._config.imagekit.url_endpoint

    @property
    def imagekit_upload_url(self) -> str:
        return self._config.imagekit.upload_url

    @property
    def imagekit_api_url(self) -> str:
        return self._config.imagekit.api_url

    @property
    def imagekit_timeout_seconds(self) -> float:
        return self._config.imagekit.timeout_seconds

    # Catalog
    @property
    def default_category_id(self) -> str | None:
        return self._config.catalog.default_category_id

    # Secrets
    @property
    def secret_key(self) -> str:
        # Never None after __init__
        return self._secrets.secret_key or ""

    @property
    def imagekit_private_key(self) -> str | None:
        return self._secrets.imagekit_private_key


# Global settings instance - lazily initialized
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    The settings are loaded once and cached for subsequent calls.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance.

    This is primarily useful for testing to reload configuration.
    """
    global _settings
    _settings = None


class _SettingsProxy:
    """Proxy object that lazily loads settings on first access."""

    def __getattr__(self, name: str):
        return getattr(get_settings(), name)

    def __repr__(self) -> str:
        return repr(get_settings())


settings = _SettingsProxy()
