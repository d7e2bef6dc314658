"""
Configuration management for the Recipe Ledger application.

This module handles:
- Database location (SQLite file per environment, or an explicit URL)
- Environment selection (development vs. production)
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
)

ENV_VAR_ENVIRONMENT = "RECIPE_LEDGER_ENV"
ENV_VAR_DATABASE_URL = "RECIPE_LEDGER_DATABASE_URL"


class Config:
    """
    Application configuration manager.

    Resolves where the database lives. A development configuration keeps
    the SQLite file in the project's data/ directory, production keeps it
    under ~/.recipe_ledger/. Setting RECIPE_LEDGER_DATABASE_URL replaces the
    SQLite file entirely (e.g. with a PostgreSQL URL).
    """

    def __init__(self, environment: str = "production", database_url: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
            database_url: Explicit SQLAlchemy URL. If None, reads
                RECIPE_LEDGER_DATABASE_URL, falling back to the SQLite file.
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION
        self._database_url_override = database_url or os.environ.get(ENV_VAR_DATABASE_URL)

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        if self._database_url_override and self._database_url_override.startswith("sqlite:///"):
            self._database_path = Path(self._database_url_override[len("sqlite:///"):])

        if self._database_url_override is None:
            self._ensure_directories()

    def _get_project_data_dir(self) -> Path:
        """Path to the project's data/ directory (four levels up from this file)."""
        project_root = Path(__file__).parent.parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Path to the per-user application directory."""
        return Path.home() / ".recipe_ledger"

    def _ensure_directories(self):
        """Create the database directory if it doesn't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            The explicit URL if one was configured, otherwise the SQLite file URL
        """
        if self._database_url_override:
            return self._database_url_override

        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def is_sqlite(self) -> bool:
        """True if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if the database exists.

        Non-SQLite databases are assumed to exist; the server owns them.
        """
        if not self.is_sqlite:
            return True
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument, so the database can't be switched
    mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    RECIPE_LEDGER_ENV or defaults to production. Ignored if
                    the singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_VAR_ENVIRONMENT, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger = logging.getLogger(__name__)
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """Get the configured database URL."""
    return get_config().database_url
