"""Configuration management for grantscan.

Loads a .env file (searched from the working directory upwards) and exposes
environment settings through properties.
"""
import os

from dotenv import find_dotenv, load_dotenv

__version__ = "0.1.0"


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self):
        """Initialize config by loading the nearest .env file."""
        load_dotenv(find_dotenv(usecwd=True))

    @property
    def db_username(self) -> str | None:
        """Database user the grants are generated for.

        Returns:
            DB_TARGET_USERNAME, or None when unset
        """
        return os.getenv("DB_TARGET_USERNAME") or None

    @property
    def db_host(self) -> str:
        """Host part of the database account, `%` matches any host."""
        return os.getenv("DB_TARGET_HOST", "%")

    @property
    def database_url(self) -> str | None:
        """SQLAlchemy URL of an account allowed to grant, used by `grant --execute`."""
        return os.getenv("GRANTSCAN_DATABASE_URL") or None

    @property
    def tsconfig_name(self) -> str:
        return os.getenv("GRANTSCAN_TSCONFIG", "tsconfig.json")

    @property
    def log_level(self) -> str:
        return os.getenv("GRANTSCAN_LOG_LEVEL", "WARNING")


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create config singleton.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config
