"""
Environment-aware configuration settings for the process engine.

Supports dev, test, and prod environments with appropriate defaults.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""

    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class Backend(str, Enum):
    """Backends available for the queue and the store."""

    MEMORY = "memory"
    REDIS = "redis"


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis server hostname")
    port: int = Field(default=6379, description="Redis server port")
    db: int = Field(default=0, description="Redis database number")
    password: Optional[str] = Field(default=None, description="Redis password")
    max_connections: int = Field(default=50, description="Maximum connection pool size")
    socket_timeout: float = Field(default=10.0, description="Socket timeout (must be > block_ms/1000)")
    socket_connect_timeout: float = Field(default=5.0, description="Connection timeout")
    key_prefix: str = Field(default="pe", description="Prefix for every key the engine writes")

    @property
    def url(self) -> str:
        """Generate Redis connection URL."""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class QueueSettings(BaseSettings):
    """Work queue settings."""

    model_config = SettingsConfigDict(env_prefix="QUEUE_")

    backend: Backend = Field(default=Backend.MEMORY, description="Queue backend")
    consumer_group: str = Field(default="workers", description="Redis Streams consumer group")
    block_ms: int = Field(default=1000, description="How long a dequeue blocks (ms)")


class StoreSettings(BaseSettings):
    """Persistence store settings."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    backend: Backend = Field(default=Backend.MEMORY, description="Store backend")


class WorkerSettings(BaseSettings):
    """Worker configuration settings."""

    model_config = SettingsConfigDict(env_prefix="WORKER_")

    poll_interval: float = Field(default=1.0, description="Sleep when every lane is empty (seconds)")
    lanes: list[str] = Field(
        default_factory=lambda: ["processes", "tasks", "jobs"],
        description="Lanes this worker consumes, in priority order",
    )
    definition_modules: list[str] = Field(
        default_factory=list,
        description="Modules exposing register(registry), imported at startup",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False,  # REDIS_HOST and redis_host both work
        extra="ignore",        # Ignore unknown environment variables
    )

    # Application
    app_name: str = Field(default="Process Engine")
    environment: Environment = Field(default=Environment.DEV)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Sub-settings
    redis: RedisSettings = Field(default_factory=RedisSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str | Environment) -> Environment:
        """Validate and convert environment string to enum."""
        if isinstance(v, Environment):
            return v
        return Environment(v.lower())

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TEST

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PROD


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
