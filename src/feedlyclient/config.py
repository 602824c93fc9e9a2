"""Configuration management using Pydantic Settings."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Feedly API
    feedly_api_token: SecretStr | None = None
    feedly_base_url: str = "https://feedly.com"
    feedly_timeout_seconds: float = 30.0

    # Rate budget state
    rate_state_path: str = "~/.feedly-client/rate-state.json"
    state_lock_timeout_seconds: float = 10.0
    budget_table_path: str | None = None

    # Response cache
    cache_dir: str = "~/.feedly-client/cache"

    # Client behaviour
    request_log_path: str = "~/.feedly-client/request-log.jsonl"
    max_inline_wait_ms: int = 5000


settings = Settings()
