from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lms_data.models.cache import CacheConfig
from lms_data.models.enums import CacheStrategy
from lms_data.models.http import HttpClientConfig


class Settings(BaseSettings):
    """Data-layer configuration loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API
    api_base_url: str = "http://localhost:3001"
    api_timeout: float = 30.0
    api_retry_attempts: int = 3
    api_retry_delay: float = 1.0
    api_max_retry_delay: float = 30.0
    app_version: str = "1.0.0"

    # Cache
    cache_strategy: CacheStrategy = CacheStrategy.MEMORY
    cache_max_size: int = 1000
    cache_default_ttl: float = 300.0
    cache_sweep_interval: float = 300.0
    cache_prefix: str = "app_cache_"

    # Paths & logging
    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    log_level: str = "INFO"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def storage_path(self) -> Path:
        return self.data_dir / "storage"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def log_path(self) -> Path:
        return self.data_dir / "logs"

    def http_client_config(self) -> HttpClientConfig:
        return HttpClientConfig(
            base_url=self.api_base_url,
            timeout=self.api_timeout,
            retry_attempts=self.api_retry_attempts,
            retry_delay=self.api_retry_delay,
            max_retry_delay=self.api_max_retry_delay,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    def cache_config(self) -> CacheConfig:
        return CacheConfig(
            strategy=self.cache_strategy,
            max_size=self.cache_max_size,
            default_ttl=self.cache_default_ttl,
            prefix=self.cache_prefix,
            sweep_interval=self.cache_sweep_interval,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
