from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    IMPORT_CONFIG_PATH: str = "config/import.yaml"
    ACCOUNTS_CONFIG_PATH: str = "config/accounts.yaml"

    # applied when neither the file nor the user provides an account
    DEFAULT_ACCOUNT_NUMBER: str = "default-account"
    IMPORT_BATCH_SIZE: int = 500
    # timezone assumed for naive timestamps in broker exports
    DEFAULT_TIMEZONE: str = "UTC"

    TRADE_STORE_PATH: Optional[str] = None

    # Pydantic v2 config
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
