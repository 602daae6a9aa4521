from __future__ import annotations

import logging
import os
import time
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from ..logging import LoggingSettings, configure_worker_logging
from ..protocol.models import (
    CompressFailure,
    CompressRequest,
    CompressSuccess,
    InitFailure,
    InitRequest,
    InitSuccess,
    Progress,
    WorkerResponse,
    parse_request,
)
from .buffers import PayloadBuffer, claim_buffer, release_buffer
from .engine import CompressionEngineProtocol, EngineRef, create_engine

_LOGGER = logging.getLogger(__name__)

Emit = Callable[[WorkerResponse], None]


class RuntimeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def describe_exception(exc: BaseException) -> str:
    message = str(exc)
    if message:
        return message
    return type(exc).__name__


class WorkerRuntime:
    """
    Code running inside one execution unit.

    Initializes the engine once, then handles one request at a time and
    reports through ``emit``. ``handle`` is synchronous, so a second ``init``
    never observes the ``INITIALIZING`` state of the first.
    """

    def __init__(self, engine: EngineRef, emit: Emit) -> None:
        self._engine_ref = engine
        self._emit = emit
        self._engine: CompressionEngineProtocol | None = None
        self._state = RuntimeState.UNINITIALIZED
        self._init_error: str | None = None

    @property
    def state(self) -> RuntimeState:
        return self._state

    def handle(self, raw: Any) -> None:
        try:
            request = parse_request(raw)
        except ValidationError as exc:
            request_id = raw.get("id") if isinstance(raw, dict) else None
            if not isinstance(request_id, str) or not request_id:
                _LOGGER.warning("dropping unrecognized request: %r", raw)
                return
            self._emit(CompressFailure(
                id=request_id,
                error=f"unrecognized request: {exc.error_count()} error(s)",
                worker_pid=os.getpid(),
            ))
            return

        if isinstance(request, InitRequest):
            self._handle_init(request)
        else:
            self._handle_compress(request)

    def shutdown(self) -> None:
        engine = self._engine
        self._engine = None
        if engine is None:
            return
        try:
            engine.shutdown()
        except Exception:
            _LOGGER.exception("engine shutdown failed")

    def _handle_init(self, request: InitRequest) -> None:
        if self._state is RuntimeState.READY:
            self._emit(InitSuccess(id=request.id))
            return
        if self._state is RuntimeState.FAILED:
            self._emit(InitFailure(id=request.id,
                                   error=self._init_error or "unknown"))
            return

        self._state = RuntimeState.INITIALIZING
        try:
            engine = create_engine(self._engine_ref)
            engine.initialize()
        except Exception as exc:
            self._state = RuntimeState.FAILED
            self._init_error = describe_exception(exc)
            _LOGGER.error("engine initialization failed: %s",
                          self._init_error)
            self._emit(InitFailure(id=request.id, error=self._init_error))
            return
        self._engine = engine
        self._state = RuntimeState.READY
        self._emit(InitSuccess(id=request.id))

    def _handle_compress(self, request: CompressRequest) -> None:
        started_at = time.monotonic()
        engine = self._engine
        if self._state is not RuntimeState.READY or engine is None:
            if request.data is not None:
                release_buffer(request.data)
            self._fail(request.id, "compression engine not initialized",
                       started_at)
            return
        if request.data is None:
            self._fail(request.id, "no data provided", started_at)
            return

        self._emit(Progress(id=request.id))
        try:
            input_bytes = claim_buffer(request.data)
        except FileNotFoundError:
            self._fail(request.id, "input buffer is gone", started_at)
            return

        try:
            output = engine.transform(input_bytes)
            if not isinstance(output, (bytes, bytearray, memoryview)):
                raise TypeError(
                    f"engine returned {type(output).__name__}, "
                    "expected bytes")
            result = PayloadBuffer.from_bytes(output)
        except Exception as exc:
            self._fail(request.id, describe_exception(exc), started_at)
            return

        self._emit(CompressSuccess(
            id=request.id,
            data=result.transfer(),
            original_size=len(input_bytes),
            compressed_size=result.size,
            worker_pid=os.getpid(),
            duration_ms=(time.monotonic() - started_at) * 1000,
        ))

    def _fail(self, request_id: str, message: str, started_at: float) -> None:
        self._emit(CompressFailure(
            id=request_id,
            error=message,
            worker_pid=os.getpid(),
            duration_ms=(time.monotonic() - started_at) * 1000,
        ))


def worker_main(
    index: int,
    generation: int,
    engine: EngineRef,
    inbox: "Any",
    outbox: "Any",
    log_settings: LoggingSettings | None = None,
) -> None:
    """Process entrypoint: serve requests from ``inbox`` until ``None``."""
    if log_settings is not None:
        configure_worker_logging(log_settings, index)

    def _emit(response: WorkerResponse) -> None:
        outbox.put((index, generation, response))

    runtime = WorkerRuntime(engine, _emit)
    try:
        while True:
            item = inbox.get()
            if item is None:
                return
            runtime.handle(item)
    finally:
        runtime.shutdown()
