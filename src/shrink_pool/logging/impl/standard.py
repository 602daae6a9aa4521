from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler

from ..protocol import LoggingConfiguratorProtocol
from ..settings import LoggingSettings

_CONFIGURED_MARKER = "_shrink_pool_logging_configured"

_BUILTIN_LOG_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "process": record.process,
            "process_name": record.processName,
            "thread": record.threadName,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _BUILTIN_LOG_RECORD_ATTRS
        )
        return json.dumps(payload, ensure_ascii=True, default=str)


class SlotFilter(logging.Filter):
    """Tag records with the worker slot they were emitted from."""

    def __init__(self, slot_index: int) -> None:
        super().__init__()
        self._slot_index = slot_index

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "slot_index"):
            record.slot_index = self._slot_index
        return True


class StandardLoggingConfigurator(LoggingConfiguratorProtocol):
    def __init__(self, settings: LoggingSettings) -> None:
        self._settings = settings

    def configure(self) -> None:
        self._install(self._settings, self._build_handlers(self._settings))

    def configure_worker(self, slot_index: int) -> None:
        settings = self._settings.for_worker()
        handlers = self._build_handlers(settings)
        for handler in handlers:
            handler.addFilter(SlotFilter(slot_index))
        self._install(settings, handlers)

    @staticmethod
    def _install(settings: LoggingSettings,
                 handlers: list[logging.Handler]) -> None:
        root = logging.getLogger()
        if getattr(root, _CONFIGURED_MARKER, False):
            return
        root.setLevel(settings.level)
        for handler in handlers:
            root.addHandler(handler)
        setattr(root, _CONFIGURED_MARKER, True)

    def _build_handlers(
        self, settings: LoggingSettings
    ) -> list[logging.Handler]:
        formatter = JsonFormatter()
        handlers: list[logging.Handler] = []
        if settings.console_enabled:
            console = logging.StreamHandler()
            console.setLevel(settings.level)
            console.setFormatter(formatter)
            handlers.append(console)

        if settings.error_dir:
            handlers.append(
                self._build_file_handler(
                    settings.error_dir,
                    "error.log",
                    level=logging.ERROR,
                    formatter=formatter,
                )
            )

        if settings.general_dir:
            handlers.append(
                self._build_file_handler(
                    settings.general_dir,
                    "shrink-pool.log",
                    level=settings.level,
                    formatter=formatter,
                )
            )

        if not handlers:
            handlers.append(logging.NullHandler())
        return handlers

    def _build_file_handler(
        self,
        directory: str,
        filename: str,
        *,
        level: int,
        formatter: logging.Formatter,
    ) -> logging.Handler:
        os.makedirs(directory, exist_ok=True)
        handler = TimedRotatingFileHandler(
            os.path.join(directory, filename),
            when=self._settings.rotate_when,
            backupCount=self._settings.backup_count,
            encoding="utf-8",
            delay=True,
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler
