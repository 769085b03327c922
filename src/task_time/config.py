"""
Configuration module for the task-time system.

Single source of truth for:
- Database location
- Token signing settings
- CORS / server settings
- Azure connection settings (CSV export to Blob Storage)

All values can be overridden via environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import List, Optional


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Config:
    """
    Runtime configuration for the task-time system.

    All fields default from environment variables but can be overridden
    programmatically by constructing Config(...) manually if needed.
    """

    database_path: str = "data/tasks.sqlite3"

    # Bearer tokens (HS256 JWT)
    jwt_secret: Optional[str] = None
    jwt_expires_days: int = 30

    # HTTP server
    frontend_url: Optional[str] = None
    port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    # Azure Blob Storage (CSV exports)
    azure_blob_connection_string: Optional[str] = None
    azure_blob_container_name: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Config":
        """
        Construct a Config object by reading environment variables.

        Environment variables (all optional except JWT_SECRET for the API):
        - TT_DATABASE_PATH
        - JWT_SECRET
        - TT_JWT_EXPIRES_DAYS  (int)
        - FRONTEND_URL
        - PORT                 (int)
        - TT_LOG_LEVEL
        - TT_LOG_DIR
        - TT_AZURE_BLOB_CONNECTION_STRING
        - TT_AZURE_BLOB_CONTAINER_NAME
        """
        return cls(
            database_path=os.getenv("TT_DATABASE_PATH", "data/tasks.sqlite3"),
            jwt_secret=os.getenv("JWT_SECRET"),
            jwt_expires_days=_get_env_int("TT_JWT_EXPIRES_DAYS", default=30),
            frontend_url=os.getenv("FRONTEND_URL"),
            port=_get_env_int("PORT", default=8000),
            log_level=os.getenv("TT_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("TT_LOG_DIR"),
            azure_blob_connection_string=os.getenv(
                "TT_AZURE_BLOB_CONNECTION_STRING"
            ),
            azure_blob_container_name=os.getenv(
                "TT_AZURE_BLOB_CONTAINER_NAME"
            ),
        )

    @property
    def allowed_origins(self) -> List[str]:
        origins = ["http://localhost:3000"]
        if self.frontend_url:
            origins.append(self.frontend_url)
        return origins

    def require(self, *names: str) -> None:
        """
        Raise RuntimeError if any of the named settings is empty.
        """
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise RuntimeError(
                "Missing required configuration: " + ", ".join(missing)
            )


# Convenience singleton-style accessor if you want a shared config
_DEFAULT_CONFIG: Optional[Config] = None


def get_config(force_reload: bool = False) -> Config:
    """
    Return a process-wide Config instance.

    Use `force_reload=True` if environment variables changed at runtime
    and you want to refresh.
    """
    global _DEFAULT_CONFIG
    if _DEFAULT_CONFIG is None or force_reload:
        _DEFAULT_CONFIG = Config.from_env()
    return _DEFAULT_CONFIG
