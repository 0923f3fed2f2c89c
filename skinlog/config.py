"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Skinlog configuration. All values come from environment variables."""

    # Anthropic (skincare advisor)
    anthropic_api_key: str = Field(default="")
    advisor_model: str = Field(default="claude-sonnet-4-5-20250929")
    advisor_max_tokens: int = Field(default=8000)
    advisor_temperature: float = Field(default=0.7)

    # Database
    database_path: Path = Field(default=Path("data/skinlog.db"))

    # Conversation
    conversation_window_size: int = Field(default=50)

    # Chat actions
    cabinet_flash_seconds: float = Field(default=3.0)
    default_amount_remaining: int = Field(default=100)
    rollback_failed_writes: bool = Field(default=True)

    # Shared data store
    check_in_history_limit: int = Field(default=10)

    # Photo analysis after a check-in photo action
    photo_analysis_enabled: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()
