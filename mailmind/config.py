from datetime import timedelta
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables and .env file.
    """

    # Data directory and store paths
    data_dir: Path = Field(default=Path("data"), alias="DATA_DIR")

    cache_store_path: Path = Field(
        default=Path("data") / "cache_store.json",
        alias="CACHE_STORE_PATH",
    )
    settings_store_path: Path = Field(
        default=Path("data") / "settings_store.json",
        alias="SETTINGS_STORE_PATH",
    )

    # LLM
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    model_name: str = Field(default="gpt-4.1-mini", alias="MODEL_NAME")
    llm_base_url: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        alias="LLM_BASE_URL",
    )
    llm_timeout_seconds: float = Field(default=60.0, alias="LLM_TIMEOUT_SECONDS")

    # Result cache
    cache_soft_ceiling: int = Field(default=100, alias="CACHE_SOFT_CEILING")
    cache_max_age_days: float = Field(default=7, alias="CACHE_MAX_AGE_DAYS")
    cache_sweep_interval_minutes: float = Field(
        default=60,
        alias="CACHE_SWEEP_INTERVAL_MINUTES",
    )

    # Summaries
    summary_max_length: int = Field(default=150, alias="SUMMARY_MAX_LENGTH")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def cache_max_age(self) -> timedelta:
        return timedelta(days=self.cache_max_age_days)

    @property
    def cache_sweep_interval(self) -> timedelta:
        return timedelta(minutes=self.cache_sweep_interval_minutes)


def load_config() -> "Config":
    return Config()
