"""Application settings loaded from environment variables (prefix PAYMENT_STATS_)."""
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PAYMENT_STATS_", env_file=".env", extra="ignore")

    app_name: str = Field(default="payment-statistics", description="Service name used in logs")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")

    # Cache
    cache_backend: Literal["none", "memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_key_prefix: str = Field(default="payments:")
    cache_ttl_by_status_seconds: int = Field(default=300, gt=0)
    cache_ttl_sorted_seconds: int = Field(default=300, gt=0)
    cache_ttl_statistics_seconds: int = Field(default=120, gt=0)

    # Batch processing
    batch_max_workers: int = Field(default=32, gt=0)
    batch_task_delay_seconds: float = Field(
        default=0.0, ge=0.0, le=5.0, description="Simulated per-task processing delay"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
