from __future__ import annotations

from .impl.standard import StandardLoggingConfigurator
from .protocol import LoggingConfiguratorProtocol
from .settings import LoggingSettings, load_logging_settings


def build_logging_configurator(
    settings: LoggingSettings | None = None,
) -> LoggingConfiguratorProtocol:
    return StandardLoggingConfigurator(settings or load_logging_settings())


def configure_logging(
    settings: LoggingSettings | None = None,
) -> LoggingConfiguratorProtocol:
    """Configure the orchestrator's root logger once per process."""
    configurator = build_logging_configurator(settings)
    configurator.configure()
    return configurator


def configure_worker_logging(settings: LoggingSettings,
                             slot_index: int) -> None:
    build_logging_configurator(settings).configure_worker(slot_index)
