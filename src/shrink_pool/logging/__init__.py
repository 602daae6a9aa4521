"""Logging setup for shrink-pool entry points and worker processes."""

from .factory import (
    build_logging_configurator,
    configure_logging,
    configure_worker_logging,
)
from .protocol import LoggingConfiguratorProtocol
from .settings import LoggingSettings, load_logging_settings

__all__ = [
    "LoggingConfiguratorProtocol",
    "LoggingSettings",
    "build_logging_configurator",
    "configure_logging",
    "configure_worker_logging",
    "load_logging_settings",
]
