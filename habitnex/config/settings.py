"""Environment settings for the service process, backed by pydantic-settings."""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from habitnex.config.loader import AppConfig, load_app_config
from habitnex.storage.db import DEFAULT_DB_PATH

DEV_ENVIRONMENTS = {"development", "dev", "local"}
LOCAL_DEV_USER = "local-dev-user"


class AppSettings(BaseSettings):
    """Typed configuration sourced from environment variables."""

    # Unset means production; the local-user fallback must be opted into.
    environment: str = Field(
        default="production",
        validation_alias=AliasChoices("HABITNEX_ENVIRONMENT", "ENVIRONMENT"),
    )
    ai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HABITNEX_AI_API_KEY", "OPENAI_API_KEY"),
    )
    ai_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HABITNEX_AI_BASE_URL", "OPENAI_BASE_URL"),
    )
    db_path: str = Field(
        default=DEFAULT_DB_PATH,
        validation_alias=AliasChoices("HABITNEX_DB_PATH"),
    )
    config_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HABITNEX_CONFIG_PATH"),
    )
    log_level: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HABITNEX_LOG_LEVEL"),
    )
    log_format: str = Field(
        default="json",
        validation_alias=AliasChoices("HABITNEX_LOG_FORMAT"),
    )
    admin_user_ids: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("HABITNEX_ADMIN_USER_IDS"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in DEV_ENVIRONMENTS

    @property
    def ai_enabled(self) -> bool:
        """AI routes are served only when an API key is configured."""

        return bool(self.ai_api_key)

    def is_admin(self, user_id: Optional[str]) -> bool:
        """Admins are listed explicitly; local environments also trust the dev user."""
        if not user_id:
            return False
        if user_id in self.admin_user_ids:
            return True
        return self.is_development and user_id == LOCAL_DEV_USER

    def load_config(self) -> AppConfig:
        return load_app_config(self.config_path)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Load environment variables and return a cached settings instance."""

    return AppSettings()


__all__ = ["AppSettings", "get_settings", "DEV_ENVIRONMENTS", "LOCAL_DEV_USER"]
