from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace

from ..core.config import env_bool, env_int, env_str


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    """Where log lines go, for the orchestrator and for its workers.

    Rotating files are only written by the orchestrator process. Worker
    processes log to the console at ``worker_level``.
    """

    level: int = logging.INFO
    worker_level: int = logging.WARNING
    console_enabled: bool = True
    error_dir: str | None = None
    general_dir: str | None = None
    rotate_when: str = "midnight"
    backup_count: int = 14

    @property
    def general_enabled(self) -> bool:
        return self.general_dir is not None

    @classmethod
    def from_env(cls) -> "LoggingSettings":
        general_dir = _get_env_path("LOG_GENERAL_DIR", "logs/general")
        if not env_bool("LOG_GENERAL_ENABLED", False):
            general_dir = None
        return cls(
            level=_parse_level("LOG_LEVEL", "INFO"),
            worker_level=_parse_level("LOG_WORKER_LEVEL", "WARNING"),
            console_enabled=env_bool("LOG_CONSOLE_ENABLED", True),
            error_dir=_get_env_path("LOG_ERROR_DIR", None),
            general_dir=general_dir,
            rotate_when=env_str("LOG_ROTATE_WHEN", "midnight"),
            backup_count=env_int("LOG_BACKUP_COUNT", 14),
        )

    def for_worker(self) -> "LoggingSettings":
        """Console-only copy used inside worker processes."""
        return replace(self, level=self.worker_level, error_dir=None,
                       general_dir=None)


def load_logging_settings() -> LoggingSettings:
    return LoggingSettings.from_env()


def _parse_level(name: str, default: str) -> int:
    level_name = env_str(name, default).upper()
    level = logging.getLevelName(level_name)
    if isinstance(level, int):
        return level
    raise ValueError(f"Invalid {name}: {level_name!r}")


def _get_env_path(name: str, default: str | None) -> str | None:
    # set-but-empty disables the sink
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    if not value:
        return None
    return value
