"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch OAuth
    client_id: str = Field(..., description="Twitch OAuth Client ID")
    client_secret: str = Field(..., description="Twitch OAuth Client Secret")

    # Session cookie signing
    jwt_secret_key: str = Field(..., description="Secret key for session cookie signing")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    session_max_age_days: int = Field(default=30, description="Session lifetime in days")

    # Server URLs
    frontend_url: str = Field(default="http://localhost:3000", description="Frontend URL for CORS")
    api_url: str = Field(default="http://localhost:8000", description="API server URL")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Session storage
    session_backend: str = Field(default="memory", description="'memory' or 'postgres'")
    database_url: str = Field(default="", description="PostgreSQL URL for the postgres backend")

    # Cache (seconds)
    cache_maxsize: int = Field(default=1024, description="Max entries in the response cache")
    cache_ttl_followed: int = Field(default=300, description="Followed channel list TTL")
    cache_ttl_streams: int = Field(default=30, description="Live stream TTL")
    cache_ttl_videos: int = Field(default=120, description="VOD page TTL")
    cache_ttl_search: int = Field(default=60, description="Search result TTL")
    cache_ttl_users: int = Field(default=300, description="User lookup TTL")

    # Upstream
    video_batch_size: int = Field(default=10, description="Channel ids per /videos call")
    request_timeout: float = Field(default=10.0, description="Twitch HTTP timeout in seconds")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("session_backend")
    @classmethod
    def validate_session_backend(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ("memory", "postgres"):
            raise ValueError(f"Unknown session backend: {v}")
        return v_lower

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS allowed origins"""
        return [self.frontend_url]

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.api_url}/api/auth/callback"

    @property
    def session_max_age_seconds(self) -> int:
        return self.session_max_age_days * 24 * 60 * 60

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
