"""Application configuration from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    modstack_env: str = "development"
    modstack_log_level: str = "info"

    # Engine
    boolean_cache_capacity: int = 256
    recovery_strategy: str = "SKIP_MODIFIER"
    slow_modifier_ms: float = 100.0
    default_shape_size: float = 100.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
