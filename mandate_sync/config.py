"""
Configuration for mandate reconciliation runs.

Configuration is resolved once at the edge (CLI, YAML file, environment, dotenv)
and passed explicitly into the engine and the store. Nothing below the CLI
reads process-global state.
"""

import getpass
import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class ExitPolicy(str, Enum):
    """
    How a finished run with errors maps to a process exit status.

    SOFT: fail only when there were errors and no record succeeded
    STRICT: fail on any errored record or parse error
    """

    SOFT = "soft"
    STRICT = "strict"


def default_actor() -> str:
    """Current OS user, or "system" when it cannot be determined."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "system"


class ReconciliationConfig(BaseModel):
    """
    Settings consumed by the reconciliation engine.

    Attributes:
        batch_size: Records per batch (one batch resident at a time)
        delimiter: Single-character field separator
        actor: Identity recorded as processed_by on audit records
        progress_log_interval: Log progress every N processed records
        max_error_samples: ParseErrors kept for the run report
        exit_policy: How errors map to the process exit status
    """

    batch_size: int = Field(200, ge=1, le=100_000)
    delimiter: str = Field("|", min_length=1, max_length=1)
    actor: str = Field(default_factory=default_actor, min_length=1)
    progress_log_interval: int = Field(10_000, ge=1)
    max_error_samples: int = Field(20, ge=0)
    exit_policy: ExitPolicy = ExitPolicy.SOFT

    @field_validator("delimiter")
    @classmethod
    def check_delimiter(cls, v):
        """Reject whitespace delimiters; fields are trimmed after splitting."""
        if v.isspace():
            raise ValueError("delimiter must not be whitespace")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "batch_size": 200,
                "delimiter": "|",
                "actor": "batch-runner",
                "progress_log_interval": 10000,
                "exit_policy": "soft"
            }
        }


class DatabaseSettings(BaseModel):
    """PostgreSQL connection settings for the mandate store."""

    host: str = "localhost"
    port: int = Field(5432, ge=1, le=65535)
    database: str = "mandate_db"
    user: str = "mandate_sync"
    password: str | None = None
    min_pool_size: int = Field(1, ge=1)
    max_pool_size: int = Field(4, ge=1)
    timeout: float = Field(30.0, gt=0)

    @classmethod
    def from_env(cls, **overrides) -> "DatabaseSettings":
        """
        Build settings from DB_* environment variables.

        Args:
            **overrides: Explicit values (e.g. from CLI flags); None values are ignored

        Returns:
            DatabaseSettings instance
        """
        values = {
            "host": os.getenv("DB_HOST"),
            "port": os.getenv("DB_PORT"),
            "database": os.getenv("DB_NAME"),
            "user": os.getenv("DB_USER"),
            "password": os.getenv("DB_PASSWORD"),
        }
        values.update(overrides)
        return cls(**{k: v for k, v in values.items() if v is not None})


SETTINGS_SECTIONS = ("reconciliation", "database")


def load_settings_file(config_path: str | Path) -> dict[str, dict[str, Any]]:
    """
    Load run settings from a YAML file.

    Expected YAML format:
    ```yaml
    reconciliation:
      batch_size: 500
      exit_policy: strict
    database:
      host: db.internal
      database: mandates
    ```

    Args:
        config_path: Path to the YAML file

    Returns:
        Dictionary with a (possibly empty) dict per section

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the YAML is not a mapping or has unknown sections
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a mapping")

    unknown = set(data) - set(SETTINGS_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    sections = {}
    for name in SETTINGS_SECTIONS:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Section '{name}' must be a mapping")
        sections[name] = section
    return sections
