"""Pydantic models for Bazaar configuration.

These models define the structure of config.toml and secrets.env files.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 2
    debug: bool = False
    enforce_https: bool = False
    rate_limit_per_minute: int = 60
    # CORS configuration - empty list means same-origin only
    cors_origins: list[str] = []


class DatabaseConfig(BaseModel):
    """MongoDB database configuration."""

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "bazaar"
    # Connection pool settings
    min_pool_size: int = 10
    max_pool_size: int = 100


class AuthConfig(BaseModel):
    """Identity provider token verification."""

    jwt_algorithm: str = "HS256"
    audience: str | None = None
    issuer: str | None = None
    # Roles allowed to act on any merchant or import session
    admin_roles: list[str] = ["admin"]


class ImportConfig(BaseModel):
    """Bulk product import limits and session lifecycle."""

    session_ttl_minutes: int = 15
    cleanup_interval_minutes: int = 5
    preview_rows: int = 20
    max_rows: int = 5000
    max_data_file_mb: int = 10
    max_archive_mb: int = 50
    max_image_mb: int = 5
    upload_concurrency: int = 5
    image_dedup: Literal["fast", "sha256"] = "fast"

    @property
    def max_data_file_bytes(self) -> int:
        return self.max_data_file_mb * 1024 * 1024

    @property
    def max_archive_bytes(self) -> int:
        return self.max_archive_mb * 1024 * 1024

    @property
    def max_image_bytes(self) -> int:
        return self.max_image_mb * 1024 * 1024


class PricingConfig(BaseModel):
    """Marketplace markup applied to merchant prices."""

    markup_percent: float = Field(default=10.0, ge=0)
    dynamic_markup_percent: float = Field(default=0.0, ge=-50)


class ImageKitConfig(BaseModel):
    """ImageKit asset service configuration (private key lives in secrets)."""

    public_key: str | None = None
    url_endpoint: str | None = None
    upload_url: str = "https://upload.imagekit.io/api/v1/files/upload"
    api_url: str = "https://api.imagekit.io/v1"
    timeout_seconds: float = 30.0


class CatalogConfig(BaseModel):
    """Catalog defaults used when committing imported products."""

    # Fallback category for rows whose category label does not resolve
    default_category_id: str | None = None


class BazaarConfig(BaseModel):
    """Main Bazaar configuration loaded from config.toml."""

    app_name: str = "Bazaar Admin"
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    imports: ImportConfig = Field(default_factory=ImportConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    imagekit: ImageKitConfig = Field(default_factory=ImageKitConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)


class SecretsConfig(BaseModel):
    """Secrets loaded from secrets.env file.

    These are sensitive values that should not be stored in config.toml.
    """

    # Key used to verify identity provider tokens (HS*) or its PEM public key (RS*)
    secret_key: str | None = None
    imagekit_private_key: str | None = None
