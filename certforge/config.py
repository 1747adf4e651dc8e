"""
Application Configuration
Loads settings from environment variables
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from .env file"""

    # Application
    APP_ENV: str = "development"
    APP_NAME: str = "CertForge"
    APP_URL: str = "http://localhost:8000"  # Base of the QR verification URL
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql://localhost/certforge"

    # Storage (Supabase)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None
    STORAGE_BUCKET: str = "certforge"
    SIGNED_URL_TTL_SECONDS: int = 3600

    # Generation
    MAX_SYNC_BATCH_SIZE: int = 50
    ZIP_URL_MIN_CERTIFICATES: int = 10
    GENERATION_ITEM_TIMEOUT_SECONDS: float = 30.0
    GENERATION_BATCH_TIMEOUT_SECONDS: float = 600.0
    CERTIFICATE_NUMBER_PREFIX: str = "CERT"

    # Templates
    STYLE_MAX_BYTES: int = 8192
    PREVIEW_MAX_WIDTH: int = 1200
    FONTS_DIR: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create global settings instance
settings = Settings()
