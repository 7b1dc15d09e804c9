"""
Window Throttle Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for store and throttling settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Throttling settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )

    # Redis configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )
    REDIS_CONNECTION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Socket connect timeout in seconds"
    )
    REDIS_OPERATION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Socket operation timeout in seconds"
    )
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(
        default=30, ge=0, le=3600, description="Connection health check interval"
    )

    # Throttling configuration
    THROTTLE_KEY_PREFIX: str = Field(
        default="window-throttle",
        min_length=1,
        description="Prefix shared by every throttle window key",
    )
    THROTTLE_FAILURE_POLICY: str = Field(
        default="open",
        description="Middleware behaviour when the store is unavailable (open/closed)",
    )
    THROTTLE_TRUSTED_PROXIES: str = Field(
        default="",
        description="Peers allowed to set X-Forwarded-For/X-Real-IP (comma-separated hosts or CIDRs)",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="console", description="console or json")

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v):
        """Validate Redis URL scheme."""
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must be a redis://, rediss:// or unix:// URL")
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("THROTTLE_KEY_PREFIX")
    @classmethod
    def validate_key_prefix(cls, v):
        """Reject prefixes that would make keys ambiguous."""
        if ":" in v or any(char.isspace() for char in v):
            raise ValueError("THROTTLE_KEY_PREFIX cannot contain ':' or whitespace")
        return v

    @field_validator("THROTTLE_FAILURE_POLICY")
    @classmethod
    def validate_failure_policy(cls, v):
        """Validate fail-open/fail-closed policy."""
        allowed = ["open", "closed"]
        if v.lower() not in allowed:
            raise ValueError(f"THROTTLE_FAILURE_POLICY must be one of: {allowed}")
        return v.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer."""
        allowed = ["console", "json"]
        if v.lower() not in allowed:
            raise ValueError(f"LOG_FORMAT must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def fail_open(self) -> bool:
        """Whether requests are forwarded when the store cannot be reached."""
        return self.THROTTLE_FAILURE_POLICY == "open"

    @property
    def trusted_proxies_list(self) -> List[str]:
        """Get trusted proxies as list."""
        return [
            proxy.strip()
            for proxy in self.THROTTLE_TRUSTED_PROXIES.split(",")
            if proxy.strip()
        ]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create global settings instance
settings = get_settings()
