"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "vip image variant service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True

    # ==========================================================================
    # Variant Settings
    # ==========================================================================
    # Requested widths are clamped to this value before keying the cache
    MAX_WIDTH: int = 2048
    JPEG_QUALITY: int = 75
    RESPONSE_MAX_AGE_SECONDS: int = 86400

    # ==========================================================================
    # Cache Settings
    # ==========================================================================
    CACHE_MAX_BYTES: int = 64 * 1024 * 1024  # 64MB in-process LRU

    # Shared Redis tier - leave empty to run with the in-process cache only
    REDIS_URL: Optional[str] = None
    REDIS_CACHE_TTL_SECONDS: int = 3600
    REDIS_KEY_PREFIX: str = "vip"

    # ==========================================================================
    # Storage Settings (The Bridge Pattern)
    # ==========================================================================
    STORAGE_BACKEND: str = "local"  # local, s3
    LOCAL_STORAGE_PATH: str = "./data/storage"
    MODIFIED_PREFIX: str = "modified"

    # S3 (production)
    S3_REGION: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None

    # ==========================================================================
    # Write-back Settings
    # ==========================================================================
    WRITE_BACK_MAX_PENDING: int = 256
    WRITE_BACK_CONCURRENCY: int = 8

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"


# Global settings instance
settings = Settings()
