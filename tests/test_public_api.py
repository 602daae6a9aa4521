import shrink_pool
from shrink_pool import (
    BaseEngine,
    BatchReport,
    CompressionEngineProtocol,
    CompressResult,
    FileStatus,
    IdentityEngine,
    LoggingSettings,
    PoolConfig,
    PoolState,
    ShrinkPoolError,
    TaskError,
    TaskTimeoutError,
    TransportError,
    WorkerCrashedError,
    WorkerPool,
    ZlibEngine,
    compress_files,
    configure_logging,
    load_config,
)


def test_public_api_imports() -> None:
    for name in shrink_pool.__all__:
        assert getattr(shrink_pool, name) is not None
    assert shrink_pool.__version__ == "0.1.0"
    assert WorkerPool is not None
    assert BatchReport is not None
    assert CompressResult is not None
    assert FileStatus.COMPLETED.value == "completed"
    assert PoolState.READY.value == "ready"
    assert callable(compress_files)
    assert callable(configure_logging)
    assert callable(load_config)
    assert LoggingSettings is not None
    assert PoolConfig is not None


def test_error_hierarchy() -> None:
    assert issubclass(TaskTimeoutError, TaskError)
    assert issubclass(TaskError, ShrinkPoolError)
    assert issubclass(WorkerCrashedError, TransportError)
    assert issubclass(TransportError, ShrinkPoolError)


def test_bundled_engines_satisfy_protocol() -> None:
    for engine in (ZlibEngine(), IdentityEngine()):
        assert isinstance(engine, BaseEngine)
        assert isinstance(engine, CompressionEngineProtocol)
