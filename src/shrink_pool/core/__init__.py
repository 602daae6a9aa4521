from .buffers import (
    BufferRef,
    PayloadBuffer,
    claim_buffer,
    release_buffer,
)
from .config import PoolConfig, default_pool_size, load_config
from .dispatcher import (
    Channel,
    CompressResult,
    Dispatcher,
    PendingTaskTable,
    PoolSnapshot,
    PoolState,
    SlotSnapshot,
    Task,
    WorkerSlot,
)
from .engine import (
    BaseEngine,
    CompressionEngineProtocol,
    EngineFactory,
    EngineRef,
    create_engine,
    resolve_engine_factory,
)
from .errors import (
    BufferMovedError,
    NoEligibleFilesError,
    PoolClosedError,
    PoolInitializationError,
    PoolRejectedError,
    ShrinkPoolError,
    TaskError,
    TaskTimeoutError,
    TransportError,
    WorkerCrashedError,
)
from .pool import WorkerChannel, WorkerPool
from .runtime import RuntimeState, WorkerRuntime, worker_main
from .wire_model import WireModel

__all__ = [
    "WireModel",
    "BufferRef",
    "PayloadBuffer",
    "claim_buffer",
    "release_buffer",
    "PoolConfig",
    "default_pool_size",
    "load_config",
    "Channel",
    "CompressResult",
    "Dispatcher",
    "PendingTaskTable",
    "PoolSnapshot",
    "PoolState",
    "SlotSnapshot",
    "Task",
    "WorkerSlot",
    "BaseEngine",
    "CompressionEngineProtocol",
    "EngineFactory",
    "EngineRef",
    "create_engine",
    "resolve_engine_factory",
    "BufferMovedError",
    "NoEligibleFilesError",
    "PoolClosedError",
    "PoolInitializationError",
    "PoolRejectedError",
    "ShrinkPoolError",
    "TaskError",
    "TaskTimeoutError",
    "TransportError",
    "WorkerCrashedError",
    "WorkerChannel",
    "WorkerPool",
    "RuntimeState",
    "WorkerRuntime",
    "worker_main",
]
