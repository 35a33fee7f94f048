"""Process settings for the TADA agent.

These are the knobs of the agent process itself (where the config file
lives, which port to bind, how to log). The operator-edited config file
with actions and containers is described by ``tada.schema``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent settings loaded from ``TADA_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TADA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    config_path: str = Field(default="./config.toml", description="Actions/containers file")
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP port")

    # Config hot reload
    poll_interval: float = Field(
        default=0.05, gt=0, description="Seconds between config file stat checks"
    )
    debounce_seconds: float = Field(
        default=0.1, ge=0, description="Quiet period before a changed file is reloaded"
    )

    # Docker
    docker_ping_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for the Docker socket check on (re)load"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
