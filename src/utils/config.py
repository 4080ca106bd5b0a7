"""
Runtime configuration for the menu catalog importer.

Settings come from the environment:

- MENU_CATALOG_ENV: "production" (default) keeps the SQLite store under
  ~/.menu_catalog; "development" keeps it in the project's data/ directory
- MENU_CATALOG_DATABASE_URL: any SQLAlchemy URL; replaces the SQLite file
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import APP_NAME, APP_VERSION, DATABASE_FILENAME, DATABASE_VERSION

logger = logging.getLogger(__name__)

ENVIRONMENT_VARIABLE = "MENU_CATALOG_ENV"
DATABASE_URL_VARIABLE = "MENU_CATALOG_DATABASE_URL"

DEVELOPMENT = "development"
PRODUCTION = "production"


class Config:
    """Where the catalog store lives, plus application metadata."""

    app_name = APP_NAME
    app_version = APP_VERSION
    database_version = DATABASE_VERSION

    def __init__(self, environment: str = PRODUCTION):
        self.environment = environment
        self._url_override = os.environ.get(DATABASE_URL_VARIABLE) or None

        data_dir = (
            self._get_project_data_dir()
            if environment == DEVELOPMENT
            else self._get_user_data_dir()
        )
        self._database_path = data_dir / DATABASE_FILENAME

        if self._url_override is None:
            data_dir.mkdir(parents=True, exist_ok=True)

    def _get_project_data_dir(self) -> Path:
        return Path(__file__).resolve().parents[2] / "data"

    def _get_user_data_dir(self) -> Path:
        return Path.home() / ".menu_catalog"

    @property
    def database_path(self) -> Path:
        """SQLite file used when no URL override is set."""
        return self._database_path

    @property
    def database_url(self) -> str:
        if self._url_override:
            return self._url_override
        return f"sqlite:///{self._database_path.as_posix()}"

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def database_exists(self) -> bool:
        """
        Whether the store is already there.

        An external URL is assumed to point at a provisioned server.
        """
        return bool(self._url_override) or self._database_path.exists()

    def __repr__(self) -> str:
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Process-wide Config, created on first use.

    `environment` only matters for that first call; it falls back to
    MENU_CATALOG_ENV. Asking for a different environment later logs a
    warning and returns the existing instance unchanged.
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = Config(environment or os.environ.get(ENVIRONMENT_VARIABLE, PRODUCTION))
    elif environment and environment != _config_instance.environment:
        logger.warning(
            f"Config already created for '{_config_instance.environment}', "
            f"ignoring request for '{environment}'. Returning existing singleton."
        )
    return _config_instance


def reset_config() -> None:
    """Forget the cached Config (tests switch environments with this)."""
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    return get_config().database_url
