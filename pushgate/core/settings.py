# pushgate/core/settings.py
import os
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === General ===
    app_env: str = "local"  # local | development | production
    debug: bool = False

    # === Logging ===
    log_level: str = "INFO"
    log_json: bool = True

    # === Paths / presign ===
    path_prefix: str = Field("uploads", description="Global prefix for generated keys")
    presign_expires_seconds: int = 3600
    download_expires_seconds: int = 3600

    # === HTTP ===
    cors_origins: List[str] = ["*"]

    # === Metrics ===
    metrics_enabled: bool = True

    # === Client transfers ===
    client_max_retries: int = 3
    client_retry_base: float = 0.5
    client_retry_cap: float = 8.0

    model_config = SettingsConfigDict(
        env_prefix="PUSHGATE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance with simple env overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
        s.debug = False
    elif env == "development":
        s.log_level = "DEBUG"

    return s
