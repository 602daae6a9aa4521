"""Public API entry point for shrink_pool.

Use this module for supported imports. Subpackages are internal.
"""

from .batch import (
    BatchReport,
    FileOutcome,
    FileStatus,
    compress_files,
    is_pdf_bytes,
)
from .core import (
    BaseEngine,
    BufferMovedError,
    CompressionEngineProtocol,
    CompressResult,
    NoEligibleFilesError,
    PoolClosedError,
    PoolConfig,
    PoolInitializationError,
    PoolRejectedError,
    PoolSnapshot,
    PoolState,
    ShrinkPoolError,
    TaskError,
    TaskTimeoutError,
    TransportError,
    WorkerCrashedError,
    WorkerPool,
    load_config,
)
from .engines import IdentityEngine, ZlibEngine
from .logging import LoggingSettings, configure_logging

__version__ = "0.1.0"

__all__ = [
    "BatchReport",
    "FileOutcome",
    "FileStatus",
    "compress_files",
    "is_pdf_bytes",
    "BaseEngine",
    "BufferMovedError",
    "CompressionEngineProtocol",
    "CompressResult",
    "NoEligibleFilesError",
    "PoolClosedError",
    "PoolConfig",
    "PoolInitializationError",
    "PoolRejectedError",
    "PoolSnapshot",
    "PoolState",
    "ShrinkPoolError",
    "TaskError",
    "TaskTimeoutError",
    "TransportError",
    "WorkerCrashedError",
    "WorkerPool",
    "load_config",
    "IdentityEngine",
    "ZlibEngine",
    "LoggingSettings",
    "configure_logging",
]
