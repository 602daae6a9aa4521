from __future__ import annotations


class ShrinkPoolError(Exception):
    """Base exception for shrink-pool errors."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class TaskError(ShrinkPoolError):
    """Raised when the compression engine fails on one task's input."""

    def __init__(self,
                 message: str,
                 *,
                 task_id: str | None = None,
                 code: int | None = None) -> None:
        super().__init__(message, code=code)
        self.task_id = task_id


class TaskTimeoutError(TaskError):
    """Raised when a dispatched task exceeds its deadline."""


class TransportError(ShrinkPoolError):
    """Raised when a worker becomes unreachable outside the message
    protocol.
    """


class WorkerCrashedError(TransportError):
    """Raised for the in-flight task of a worker process that died."""

    def __init__(self,
                 message: str,
                 *,
                 slot_index: int,
                 exitcode: int | None = None) -> None:
        super().__init__(message)
        self.slot_index = slot_index
        self.exitcode = exitcode


class PoolInitializationError(ShrinkPoolError):
    """Raised when a worker fails to initialize its compression engine."""

    def __init__(self, message: str, *, slot_index: int | None = None) -> None:
        super().__init__(message)
        self.slot_index = slot_index


class PoolClosedError(ShrinkPoolError):
    """Raised when submitting to, or waiting on, a pool that was torn down."""


class PoolRejectedError(ShrinkPoolError):
    """Raised when admission control refuses a submission."""


class BufferMovedError(ShrinkPoolError):
    """Raised when a payload buffer is used after its ownership moved."""


class NoEligibleFilesError(ShrinkPoolError):
    """Raised when a batch contains no file passing the boundary check."""
