"""Configuration loader for Bazaar.

Loads configuration from TOML files and secrets from .env files.
Environment variables can override any configuration value.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from bazaar.config.schema import BazaarConfig, SecretsConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "BAZAAR"

# Config keys whose environment values need type conversion
_INT_KEYS = {
    "port",
    "workers",
    "session_ttl_minutes",
    "cleanup_interval_minutes",
    "preview_rows",
    "max_rows",
    "max_data_file_mb",
    "max_archive_mb",
    "max_image_mb",
    "upload_concurrency",
}
_FLOAT_KEYS = {"markup_percent", "dynamic_markup_percent", "timeout_seconds"}
_BOOL_KEYS = {"debug", "enforce_https"}


def get_config_search_paths() -> list[Path]:
    """Get the list of paths to search for configuration files.

    Returns paths in priority order (first found wins):
    1. ./config.toml (project root - for development)
    2. ~/.config/bazaar/config.toml (user config)
    3. /etc/bazaar/config.toml (system config)
    """
    return [
        Path.cwd() / "config.toml",
        Path.home() / ".config" / "bazaar" / "config.toml",
        Path("/etc/bazaar/config.toml"),
    ]


def get_secrets_search_paths() -> list[Path]:
    """Get the list of paths to search for secrets files, in priority order."""
    return [
        Path.cwd() / "secrets.env",
        Path.home() / ".config" / "bazaar" / "secrets.env",
        Path("/etc/bazaar/secrets.env"),
    ]


def find_config_file() -> Path | None:
    """Find the first existing config file from search paths."""
    for path in get_config_search_paths():
        if path.exists() and path.is_file():
            logger.debug("Found config file: %s", path)
            return path
    return None


def find_secrets_file() -> Path | None:
    """Find the first existing secrets file from search paths."""
    for path in get_secrets_search_paths():
        if path.exists() and path.is_file():
            logger.debug("Found secrets file: %s", path)
            return path
    return None


def load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file and return its contents as a dictionary."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a simple .env file into a dictionary.

    Supports:
    - KEY=value
    - KEY="quoted value"
    - # comments
    - Empty lines
    """
    env_vars: dict[str, str] = {}

    with open(path) as f:
        for line in f:
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip()

            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            env_vars[key] = value

    return env_vars


def _convert_env_value(key: str, value: str) -> Any:
    if key in _INT_KEYS:
        return int(value)
    if key in _FLOAT_KEYS:
        return float(value)
    if key in _BOOL_KEYS:
        return value.lower() in ("true", "1", "yes")
    if key in ("admin_roles", "cors_origins"):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def apply_env_overrides(config_dict: dict[str, Any], prefix: str = ENV_PREFIX) -> None:
    """Apply environment variable overrides to configuration dictionary.

    Environment variables are mapped as follows:
    - BAZAAR_SERVER_PORT -> config_dict["server"]["port"]
    - BAZAAR_MONGODB_URL -> config_dict["database"]["mongodb_url"]
    - BAZAAR_IMPORTS_SESSION_TTL_MINUTES -> config_dict["imports"]["session_ttl_minutes"]
    - etc.

    Note: This modifies config_dict in place.
    """
    env_mappings = {
        # Server
        f"{prefix}_SERVER_HOST": ("server", "host"),
        f"{prefix}_SERVER_PORT": ("server", "port"),
        f"{prefix}_SERVER_WORKERS": ("server", "workers"),
        f"{prefix}_SERVER_CORS_ORIGINS": ("server", "cors_origins"),
        f"{prefix}_DEBUG": ("server", "debug"),
        f"{prefix}_HOST": ("server", "host"),
        f"{prefix}_PORT": ("server", "port"),
        # Database
        f"{prefix}_DATABASE_MONGODB_URL": ("database", "mongodb_url"),
        f"{prefix}_DATABASE_MONGODB_DATABASE": ("database", "mongodb_database"),
        f"{prefix}_MONGODB_URL": ("database", "mongodb_url"),
        f"{prefix}_MONGODB_DATABASE": ("database", "mongodb_database"),
        # Auth
        f"{prefix}_AUTH_JWT_ALGORITHM": ("auth", "jwt_algorithm"),
        f"{prefix}_AUTH_AUDIENCE": ("auth", "audience"),
        f"{prefix}_AUTH_ISSUER": ("auth", "issuer"),
        f"{prefix}_AUTH_ADMIN_ROLES": ("auth", "admin_roles"),
        # Imports
        f"{prefix}_IMPORTS_SESSION_TTL_MINUTES": ("imports", "session_ttl_minutes"),
        f"{prefix}_IMPORTS_CLEANUP_INTERVAL_MINUTES": ("imports", "cleanup_interval_minutes"),
        f"{prefix}_IMPORTS_MAX_ROWS": ("imports", "max_rows"),
        f"{prefix}_IMPORTS_MAX_ARCHIVE_MB": ("imports", "max_archive_mb"),
        f"{prefix}_IMPORTS_MAX_IMAGE_MB": ("imports", "max_image_mb"),
        f"{prefix}_IMPORTS_UPLOAD_CONCURRENCY": ("imports", "upload_concurrency"),
        f"{prefix}_IMPORTS_IMAGE_DEDUP": ("imports", "image_dedup"),
        # Pricing
        f"{prefix}_PRICING_MARKUP_PERCENT": ("pricing", "markup_percent"),
        f"{prefix}_PRICING_DYNAMIC_MARKUP_PERCENT": ("pricing", "dynamic_markup_percent"),
        # ImageKit
        f"{prefix}_IMAGEKIT_PUBLIC_KEY": ("imagekit", "public_key"),
        f"{prefix}_IMAGEKIT_URL_ENDPOINT": ("imagekit", "url_endpoint"),
        f"{prefix}_IMAGEKIT_TIMEOUT_SECONDS": ("imagekit", "timeout_seconds"),
        # Catalog
        f"{prefix}_CATALOG_DEFAULT_CATEGORY_ID": ("catalog", "default_category_id"),
    }

    for env_var, path in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            section, key = path

            if section not in config_dict:
                config_dict[section] = {}

            config_dict[section][key] = _convert_env_value(key, value)


def load_secrets(secrets_file: Path | None = None) -> SecretsConfig:
    """Load secrets from environment variables and optional secrets.env file.

    Environment variables take precedence over file values.
    """
    secrets_dict: dict[str, str | None] = {}

    key_mapping = {
        f"{ENV_PREFIX}_SECRET_KEY": "secret_key",
        f"{ENV_PREFIX}_IMAGEKIT_PRIVATE_KEY": "imagekit_private_key",
        "IMAGEKIT_PRIVATE_KEY": "imagekit_private_key",
    }

    if secrets_file is None:
        secrets_file = find_secrets_file()

    if secrets_file and secrets_file.exists():
        logger.info("Loading secrets from: %s", secrets_file)
        file_secrets = parse_env_file(secrets_file)

        for file_key, config_key in key_mapping.items():
            if file_key in file_secrets:
                secrets_dict[config_key] = file_secrets[file_key]

    for env_var, config_key in key_mapping.items():
        value = os.environ.get(env_var)
        if value:
            secrets_dict[config_key] = value

    return SecretsConfig(**secrets_dict)


def load_config(config_file: Path | None = None) -> BazaarConfig:
    """Load configuration from TOML file with environment variable overrides.

    Args:
        config_file: Optional path to config file. If not provided,
                     searches default locations.

    Returns:
        BazaarConfig instance with all settings loaded.
    """
    config_dict: dict[str, Any] = {}

    if config_file is None:
        config_file = find_config_file()

    if config_file and config_file.exists():
        logger.info("Loading config from: %s", config_file)
        config_dict = load_toml_file(config_file)
    else:
        logger.info("No config file found, using defaults with env overrides")

    apply_env_overrides(config_dict)

    return BazaarConfig(**config_dict)
