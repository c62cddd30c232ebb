"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Discord Bot
    discord_bot_token: str = Field(
        default="",
        description="Discord bot token",
    )
    discord_fetch_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for each Discord message fetch",
    )

    # LUNA API
    luna_api_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the LUNA workflow API",
    )
    luna_workflow_id: str = Field(
        default="discord-root",
        description="Workflow that handles relayed Discord messages",
    )
    luna_api_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for LUNA API requests",
    )

    # Relay behaviour
    reply_chain_max_depth: int = Field(
        default=50,
        ge=0,
        description="Maximum reply hops to follow (0 disables the cap)",
    )
    recent_message_scan_limit: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Recent channel messages scanned when checking for replies",
    )
    debug_trigger_prefix: str = Field(
        default="!debug",
        description="Message prefix that surfaces LUNA errors back into the channel",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        valid_environments = {"development", "testing", "production"}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v

    @field_validator("luna_api_url")
    @classmethod
    def validate_luna_api_url(cls, v: str) -> str:
        """Strip the trailing slash so paths can be appended directly."""
        return v.rstrip("/")

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def override_settings(**kwargs) -> Settings:
    """Create a settings instance with overrides (useful for testing)."""
    return Settings(**kwargs)
