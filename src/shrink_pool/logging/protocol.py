from __future__ import annotations

from typing import Protocol


class LoggingConfiguratorProtocol(Protocol):
    """Installs log handlers on the root logger of the current process."""

    def configure(self) -> None:
        """Set up logging for the orchestrator process."""

    def configure_worker(self, slot_index: int) -> None:
        """Set up logging inside a worker process.

        Every record emitted by the worker is tagged with ``slot_index``.
        """
