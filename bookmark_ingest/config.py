"""
Bookmark Ingest - Configuration Module

Loads settings from environment variables (and a .env file) and provides
typed access.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StoreSettings(BaseSettings):
    """Record store configuration"""
    db_path: Optional[str] = Field(default=None, alias="BOOKMARK_DB_PATH")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class NormalizerSettings(BaseSettings):
    """Field normalization switches"""
    romanize_titles: bool = Field(default=True, alias="ROMANIZE_TITLES")
    extract_hashtags: bool = Field(default=True, alias="EXTRACT_HASHTAGS")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class AppSettings(BaseSettings):
    """General application settings"""
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class Config:
    """Main configuration class that combines all settings"""

    def __init__(self):
        self.store = StoreSettings()
        self.normalizer = NormalizerSettings()
        self.app = AppSettings()


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance, creating it on first use"""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment"""
    global _config
    _config = None


def load_env(env_file: str = ".env") -> None:
    """Load environment variables from file"""
    from dotenv import load_dotenv

    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
    else:
        logger.warning(f"{env_file} not found")
