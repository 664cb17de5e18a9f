"""
Application configuration using environment variables.
"""
import os
import secrets
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List, Optional

_GENERATED_SECRET = secrets.token_urlsafe(32)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "SMAP API"
    debug: bool = False
    environment: str = "development"
    frontend_url: str = "http://localhost:3000"

    # Security
    secret_key: str = os.getenv("SECRET_KEY", _GENERATED_SECRET)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60  # 1 hour
    refresh_token_expire_days: int = 7

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./smap.db")

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Rate limiting
    login_rate_limit: str = "5/minute"
    ai_rate_limit: str = "10/minute"

    # Scheduled post processing
    cron_secret: Optional[str] = None
    scheduler_batch_size: int = 10
    default_max_retries: int = 3
    publishing_stale_minutes: int = 15

    # Analytics cache
    analytics_cache_ttl_minutes: int = 60
    analytics_default_days: int = 30

    # Outbound HTTP
    http_timeout_seconds: float = 30.0

    # Meta (Facebook + Instagram)
    meta_client_id: Optional[str] = None
    meta_client_secret: Optional[str] = None
    meta_redirect_uri: Optional[str] = None
    graph_api_url: str = "https://graph.facebook.com/v18.0"

    # YouTube
    youtube_client_id: Optional[str] = None
    youtube_client_secret: Optional[str] = None
    youtube_redirect_uri: Optional[str] = None

    # TikTok
    tiktok_client_key: Optional[str] = None
    tiktok_client_secret: Optional[str] = None
    tiktok_redirect_uri: Optional[str] = None
    tiktok_api_url: str = "https://open.tiktokapis.com"

    # LLM (Gemini through its OpenAI-compatible endpoint)
    gemini_api_key: Optional[str] = None
    llm_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    llm_model: str = "gemini-2.0-flash"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Validate secret key on startup
settings = get_settings()
if settings.environment == "production" and settings.secret_key == _GENERATED_SECRET:
    raise ValueError(
        "SECRET_KEY must be set in production! "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
