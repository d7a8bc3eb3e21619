"""Configuration settings using Pydantic Settings.

Provides typed configuration with environment variable support for the
storage manager and its adapters.

Usage:
    from entityforge.config import StorageSettings

    # Load from environment variables (ENTITYFORGE_*)
    settings = StorageSettings()

    # Or override with explicit values
    settings = StorageSettings(adapter="sql", database_url="sqlite:///books.db")
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from entityforge.core.identity import AUTO_ID_START


class StorageSettings(BaseSettings):  # type: ignore[misc]
    """Configuration for the storage manager.

    Attributes:
        adapter: Name of the storage adapter ("memory" or "sql").
        db_name: Name of the database the manager works on.
        database_url: SQLAlchemy database URL (sql adapter only).
        validate_before_save: Validate records before adding them; invalid
            records are logged and dropped.
        check_referential_integrity: Report references to unknown identities
            as violations.
        create_log: Emit informational diagnostics. Warnings and errors are
            always logged.
        auto_id_start: Seed value of auto-id counters.

    Environment Variables:
        ENTITYFORGE_ADAPTER
        ENTITYFORGE_DB_NAME
        ENTITYFORGE_DATABASE_URL
        ENTITYFORGE_VALIDATE_BEFORE_SAVE
        ENTITYFORGE_CHECK_REFERENTIAL_INTEGRITY
        ENTITYFORGE_CREATE_LOG
        ENTITYFORGE_AUTO_ID_START
    """

    model_config = SettingsConfigDict(
        env_prefix="ENTITYFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    adapter: Literal["memory", "sql"] = "memory"
    db_name: str = "entityforge"
    database_url: str = "sqlite://"
    validate_before_save: bool = True
    check_referential_integrity: bool = True
    create_log: bool = True
    auto_id_start: int = Field(default=AUTO_ID_START, gt=0)
