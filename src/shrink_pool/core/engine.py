from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from typing import Callable, Protocol, runtime_checkable

from typing_extensions import override


@runtime_checkable
class CompressionEngineProtocol(Protocol):
    """Lifecycle contract for compression engines."""

    def initialize(self) -> None:
        """
        Perform one-time setup before the first call to :meth:`transform`.

        Runs once per worker process. Implementations can load native
        libraries, lookup tables or other state that is expensive to build.
        """
        ...

    def transform(self, data: bytes) -> bytes:
        """
        Compress one document.

        :param data: The complete input document.
        :return: The complete output document.

        Implementations must be pure with respect to the input and may raise
        any exception for malformed input; the message is reported back to
        the submitter of that one task.
        """
        ...

    def shutdown(self) -> None:
        """
        Release resources acquired in :meth:`initialize`.

        Called when the worker process exits. Must be safe to call more than
        once.
        """
        ...


class BaseEngine(ABC, CompressionEngineProtocol):
    """
    Convenience base with no-op lifecycle hooks; subclasses must implement
    transform.
    """

    @override
    def initialize(self) -> None:
        return None

    @abstractmethod
    @override
    def transform(self, data: bytes) -> bytes:
        raise NotImplementedError

    @override
    def shutdown(self) -> None:
        return None


EngineFactory = Callable[[], CompressionEngineProtocol]
EngineRef = EngineFactory | str


def resolve_engine_factory(ref: EngineRef) -> EngineFactory:
    """Turn ``"package.module:attr"`` or a callable into an engine factory."""
    if callable(ref):
        return ref
    module_path, sep, attr = ref.partition(":")
    if not sep or not module_path or not attr:
        raise ValueError(
            f"engine reference must look like 'module:attr', got {ref!r}")
    module = importlib.import_module(module_path)
    target = module
    for part in attr.split("."):
        target = getattr(target, part)
    if not callable(target):
        raise TypeError(f"engine reference {ref!r} is not callable")
    return target  # type: ignore[return-value]


def create_engine(ref: EngineRef) -> CompressionEngineProtocol:
    factory = resolve_engine_factory(ref)
    engine = factory()
    if not isinstance(engine, CompressionEngineProtocol):
        raise TypeError(
            f"engine {ref!r} must implement initialize/transform/shutdown")
    return engine
