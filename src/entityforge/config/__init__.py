"""Configuration module using Pydantic Settings.

Provides typed configuration for the storage manager with environment
variable support.

Usage:
    from entityforge.config import StorageSettings

    settings = StorageSettings(db_name="library", create_log=False)
"""

from entityforge.config.settings import StorageSettings

__all__ = [
    "StorageSettings",
]
