"""Settings models and the environment-backed loader."""

from __future__ import annotations

import os
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class SmtpSettings(BaseModel):
    """Single-account SMTP settings used when no account store entry exists."""

    host: str | None = Field(default=None, description="SMTP hostname")
    port: int = Field(
        default=465, ge=1, le=65535, description="SMTP port, typically 465 or 587"
    )
    username: str | None = Field(default=None, description="Login and sender address")
    password: str | None = Field(default=None, description="SMTP password or app code")
    sender_name: str = Field(default="", description="Display name for From header")
    subject_prefix: str = Field(default="", description="Prepended to every subject")
    use_ssl: bool = Field(
        default=True, description="Implicit SSL when true, STARTTLS otherwise"
    )
    timeout_seconds: int = Field(
        default=30, ge=1, description="Socket timeout for SMTP operations"
    )


class StorageSettings(BaseModel):
    """Settings for local JSON persistence."""

    data_dir: Path = Field(
        default=Path("./data"), description="Directory holding the JSON documents"
    )
    tasks_file: str = Field(
        default="scheduled_emails.json", description="Scheduled task collection"
    )
    history_file: str = Field(
        default="email_history.json", description="Send history collection"
    )
    accounts_file: str = Field(
        default="accounts.json", description="Mail account collection"
    )

    @property
    def tasks_path(self) -> Path:
        """Full path of the scheduled task document."""
        return Path(self.data_dir) / self.tasks_file

    @property
    def history_path(self) -> Path:
        """Full path of the history document."""
        return Path(self.data_dir) / self.history_file

    @property
    def accounts_path(self) -> Path:
        """Full path of the account document."""
        return Path(self.data_dir) / self.accounts_file


class HistorySettings(BaseModel):
    """Retention settings for the send history."""

    max_records: int = Field(
        default=1000, ge=1, description="Records retained before the oldest drop"
    )


class SchedulerSettings(BaseModel):
    """Settings controlling the scheduled email checker."""

    enabled: bool = Field(default=True, description="Start the checker on startup")
    interval_seconds: float = Field(
        default=60.0, gt=0, description="Seconds between due-task scans"
    )
    max_workers: int = Field(
        default=4, ge=1, description="Concurrent task executions per process"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class CommandSettings(BaseModel):
    """Chat command front-end settings."""

    prefix: str = Field(default="#email", description="Chat command prefix")


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    commands: CommandSettings = Field(default_factory=CommandSettings)


ENV_PREFIX = "MAIL_SCHEDULER_"
NESTING_SEPARATOR = "__"


def _coerce(value: str | None) -> Any:
    """Map blank strings to ``None`` and true/false to booleans."""
    if value is None or value == "":
        return None
    return {"true": True, "false": False}.get(value.lower(), value)


def _prefixed(items: Iterable[tuple[str | None, str | None]]) -> dict[str, str | None]:
    return {key: value for key, value in items if key and key.startswith(ENV_PREFIX)}


def read_env_settings(
    env_file: Path | str | None = None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Gather ``MAIL_SCHEDULER_*`` values into a nested settings tree.

    ``MAIL_SCHEDULER_SMTP__HOST`` lands at ``tree["smtp"]["host"]``. Process
    environment values win over the env file.
    """
    raw: dict[str, str | None] = {}
    if env_file and Path(env_file).is_file():
        raw.update(_prefixed(dotenv_values(env_file).items()))
    if include_environment:
        raw.update(_prefixed(os.environ.items()))

    tree: dict[str, Any] = {}
    for key, value in raw.items():
        *parents, leaf = key[len(ENV_PREFIX) :].lower().split(NESTING_SEPARATOR)
        if not leaf or not all(parents):
            continue
        node = tree
        for name in parents:
            node = node.setdefault(name, {})
        node[leaf] = _coerce(value)
    return tree


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Build settings from the env file, the process environment and overrides.

    Overrides replace whole top-level sections. Results are cached, so
    callers pass hashable arguments only.
    """
    tree = read_env_settings(env_file, include_environment=include_environment)
    tree.update(overrides)
    return AppSettings.model_validate(tree)


__all__ = [
    "AppSettings",
    "CommandSettings",
    "HistorySettings",
    "LoggingSettings",
    "SchedulerSettings",
    "SmtpSettings",
    "StorageSettings",
    "load_app_settings",
    "read_env_settings",
]
