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
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(..., description="PostgreSQL (Supabase) database URL")

    # Auth
    jwt_secret_key: str = Field(..., description="Secret used to verify session JWTs")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    service_role_key: str = Field(..., description="Bearer key for privileged service calls")

    # Server
    frontend_url: str = Field(default="http://localhost:3000", description="Frontend URL for CORS")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Presence
    presence_stale_seconds: int = Field(
        default=60, ge=1, description="Heartbeat age after which a viewer counts as inactive"
    )
    presence_ttl_seconds: int = Field(
        default=300, ge=1, description="Heartbeat age after which the reaper deletes the row"
    )
    viewer_list_limit: int = Field(default=200, ge=1, le=1000, description="Max viewers listed")

    # Background sweeper
    enable_reaper: bool = Field(default=True, description="Run the presence / battle sweeper")
    reaper_interval_seconds: int = Field(default=30, ge=1, description="Sweeper interval")

    # Battles
    battle_quorum_size: int | None = Field(
        default=None,
        ge=1,
        description="Acceptances needed to start a battle (unset = every invited host)",
    )
    boost_default_multiplier: float = Field(default=1.5, gt=1.0, le=10.0)
    boost_default_seconds: int = Field(default=30, ge=1)

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

    @property
    def cors_origins(self) -> list[str]:
        return [self.frontend_url]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
