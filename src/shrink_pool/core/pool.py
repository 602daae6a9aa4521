from __future__ import annotations

import itertools
import logging
import multiprocessing as mp
import queue
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, replace
from threading import Event, Lock, Thread
from typing import Any

from ..logging import LoggingSettings, load_logging_settings
from .buffers import PayloadBuffer
from .config import PoolConfig, load_config
from .dispatcher import (
    CompressResult,
    Dispatcher,
    PoolSnapshot,
    PoolState,
    Task,
)
from .engine import EngineRef, resolve_engine_factory
from .errors import (
    PoolClosedError,
    PoolInitializationError,
    TransportError,
    WorkerCrashedError,
)
from .runtime import worker_main

_LOGGER = logging.getLogger(__name__)

_EXIT_SETTLE_S = 0.1


class WorkerChannel:
    """Request queue and process handle of one worker incarnation."""

    def __init__(self, index: int, generation: int, inbox: Any,
                 process: Any) -> None:
        self.index = index
        self.generation = generation
        self._inbox = inbox
        self._process = process
        self.exited_at: float | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def exitcode(self) -> int | None:
        return self._process.exitcode

    def is_alive(self) -> bool:
        return self._process.is_alive()

    def send(self, request: Any) -> None:
        self._inbox.put(request)

    def stop(self) -> None:
        try:
            self._inbox.put(None)
        except (OSError, ValueError):
            pass

    def join(self, timeout: float) -> None:
        self._process.join(timeout=timeout)

    def terminate(self, grace_s: float) -> None:
        process = self._process
        if process.is_alive():
            try:
                process.terminate()
                process.join(timeout=grace_s)
            except OSError:
                pass
            if process.is_alive():
                try:
                    process.kill()
                    process.join(timeout=grace_s)
                except OSError:
                    pass
        self._inbox.cancel_join_thread()
        self._inbox.close()


@dataclass(slots=True)
class _SubmitEvent:
    task: Task


@dataclass(slots=True)
class _ResponseEvent:
    slot_index: int
    generation: int
    response: Any


@dataclass(slots=True)
class _SnapshotEvent:
    future: "Future[PoolSnapshot]"


@dataclass(slots=True)
class _CloseEvent:
    pass


class WorkerPool:
    """
    Fixed-size pool of worker processes compressing documents.

    ``submit`` returns a :class:`concurrent.futures.Future` immediately. A
    single scheduler thread owns the dispatcher state; callers and the
    response pump only post events to it. Workers are restarted when they
    crash or exceed a task deadline.
    """

    def __init__(self,
                 engine: EngineRef | None = None,
                 *,
                 size: int | None = None,
                 config: PoolConfig | None = None,
                 log_settings: LoggingSettings | None = None,
                 autostart: bool = True) -> None:
        resolved = config or load_config()
        if size is not None:
            resolved = replace(resolved, size=size)
        self._config = resolved
        self._engine: EngineRef = engine if engine is not None else (
            resolved.engine)
        # fail fast on a bad reference before spawning anything
        resolve_engine_factory(self._engine)
        self._log_settings = log_settings or load_logging_settings()

        self._ctx = mp.get_context(resolved.start_method)
        self._lock = Lock()
        self._started = False
        self._closed = False
        self._events: "queue.Queue[object]" = queue.Queue()
        self._outbox: Any = None
        self._channels: list[WorkerChannel] = []
        self._dispatcher: Dispatcher | None = None
        self._scheduler: Thread | None = None
        self._pump: Thread | None = None
        self._stop_event = Event()
        self._ready_event = Event()
        self._ready = False
        self._state = PoolState.STARTING
        self._failure: PoolInitializationError | None = None
        self._task_counter = itertools.count(1)
        if autostart:
            self.start()

    @property
    def pool_size(self) -> int:
        return self._config.size

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def config(self) -> PoolConfig:
        return self._config

    def start(self) -> None:
        with self._lock:
            if self._closed:
                raise PoolClosedError("worker pool was shut down")
            if self._started:
                return
            self._outbox = self._ctx.Queue()
            self._channels = [
                self._spawn_channel(index, 0)
                for index in range(self._config.size)
            ]
            self._dispatcher = Dispatcher(
                self._channels,
                max_pending=self._config.max_pending,
            )
            self._dispatcher.start()

            self._pump = Thread(
                target=self._pump_responses,
                name="shrink-pool-response-pump",
                daemon=True,
            )
            self._scheduler = Thread(
                target=self._run_scheduler,
                name="shrink-pool-scheduler",
                daemon=True,
            )
            self._pump.start()
            self._scheduler.start()
            self._started = True
            _LOGGER.info("worker pool starting",
                         extra={"pool_size": self._config.size})

    def submit(self,
               data: bytes | bytearray | memoryview,
               filename: str = "document",
               *,
               timeout_s: float | None = None) -> "Future[CompressResult]":
        """Queue one document; the returned future yields a
        :class:`CompressResult` or raises the task's error.
        """
        if timeout_s is not None and timeout_s <= 0:
            raise ValueError("timeout_s must be positive when provided")
        if not self._started:
            self.start()
        payload = PayloadBuffer.from_bytes(data)
        with self._lock:
            if self._closed:
                payload.discard()
                raise PoolClosedError("worker pool was shut down")
            task = Task(
                id=f"task-{next(self._task_counter)}-{uuid.uuid4().hex[:8]}",
                payload=payload,
                filename=filename,
                timeout_s=(timeout_s if timeout_s is not None else
                           self._config.task_timeout_s),
            )
            self._events.put(_SubmitEvent(task))
        return task.future

    def compress(self,
                 data: bytes | bytearray | memoryview,
                 filename: str = "document",
                 *,
                 timeout_s: float | None = None,
                 wait_s: float | None = None) -> CompressResult:
        """Blocking convenience around :meth:`submit`."""
        return self.submit(data, filename, timeout_s=timeout_s).result(wait_s)

    def wait_ready(self, timeout: float | None = None) -> bool:
        """Block until every worker initialized; raises if one failed."""
        self._ready_event.wait(timeout)
        if self._failure is not None:
            raise self._failure
        return self._ready

    def snapshot(self, timeout: float | None = 5.0) -> PoolSnapshot:
        future: "Future[PoolSnapshot]" = Future()
        with self._lock:
            if not self._started or self._closed:
                raise PoolClosedError("worker pool is not running")
            self._events.put(_SnapshotEvent(future))
        return future.result(timeout)

    def close(self, *, wait: bool = True) -> None:
        """Reject outstanding tasks and terminate every worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if not self._started:
                return
            self._events.put(_CloseEvent())

        if self._scheduler is not None:
            self._scheduler.join()
        for channel in self._channels:
            channel.stop()
        grace = self._config.kill_grace_s
        for channel in self._channels:
            if wait:
                channel.join(timeout=max(grace, 1.0))
            channel.terminate(grace)

        self._stop_event.set()
        try:
            self._outbox.put(None)
        except (OSError, ValueError):
            pass
        if self._pump is not None:
            self._pump.join(timeout=1.0)
        self._drain_events()
        self._outbox.cancel_join_thread()
        self._outbox.close()
        _LOGGER.info("worker pool closed",
                     extra={"pool_size": self._config.size})

    shutdown = close

    def __enter__(self) -> "WorkerPool":
        if not self._started:
            self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _spawn_channel(self, index: int, generation: int) -> WorkerChannel:
        inbox = self._ctx.Queue()
        process = self._ctx.Process(
            target=worker_main,
            args=(index, generation, self._engine, inbox, self._outbox,
                  self._log_settings),
            name=f"shrink-pool-worker-{index}",
            daemon=True,
        )
        process.start()
        return WorkerChannel(index, generation, inbox, process)

    def _pump_responses(self) -> None:
        outbox = self._outbox
        while not self._stop_event.is_set():
            try:
                item = outbox.get(timeout=0.2)
            except queue.Empty:
                continue
            except (EOFError, OSError):
                return
            if item is None:
                return
            slot_index, generation, response = item
            self._events.put(_ResponseEvent(slot_index, generation, response))

    def _run_scheduler(self) -> None:
        dispatcher = self._dispatcher
        if dispatcher is None:
            return
        try:
            while True:
                try:
                    event = self._events.get(
                        timeout=self._config.poll_interval_s)
                except queue.Empty:
                    event = None
                if isinstance(event, _CloseEvent):
                    dispatcher.close()
                    return
                if event is not None:
                    self._handle_event(dispatcher, event)
                try:
                    self._supervise(dispatcher)
                except Exception:
                    _LOGGER.exception("worker supervision failed")
                self._publish_state(dispatcher)
        finally:
            self._publish_state(dispatcher)

    def _handle_event(self, dispatcher: Dispatcher, event: object) -> None:
        try:
            if isinstance(event, _SubmitEvent):
                dispatcher.submit(event.task)
            elif isinstance(event, _ResponseEvent):
                dispatcher.handle_response(
                    event.slot_index,
                    event.response,
                    generation=event.generation,
                )
            elif isinstance(event, _SnapshotEvent):
                event.future.set_result(dispatcher.snapshot())
        except Exception:
            _LOGGER.exception("scheduler failed to handle %s",
                              type(event).__name__)

    def _supervise(self, dispatcher: Dispatcher) -> None:
        for index in dispatcher.expired_slots():
            _LOGGER.warning("killing worker after task timeout",
                            extra={"slot_index": index,
                                   "worker_pid": self._channels[index].pid})
            self._recover_slot(dispatcher, index)

        now = time.monotonic()
        for slot in dispatcher.slots:
            if slot.faulted:
                continue
            channel = self._channels[slot.index]
            if channel.is_alive():
                continue
            # responses flushed right before exit still have to come
            # through the pump before the slot is faulted
            if channel.exited_at is None:
                channel.exited_at = now
            if now - channel.exited_at < _EXIT_SETTLE_S:
                continue
            error = WorkerCrashedError(
                f"worker process {channel.pid} exited with code "
                f"{channel.exitcode}",
                slot_index=slot.index,
                exitcode=channel.exitcode,
            )
            _LOGGER.error("worker process crashed",
                          extra={"slot_index": slot.index,
                                 "worker_pid": channel.pid,
                                 "exitcode": channel.exitcode,
                                 "initialized": slot.initialized})
            if not slot.initialized:
                # a restart would run the same failing initialize again
                dispatcher.fail_initialization(slot.index, error)
                channel.terminate(self._config.kill_grace_s)
                continue
            dispatcher.fault_slot(slot.index, error)
            self._recover_slot(dispatcher, slot.index)

    def _recover_slot(self, dispatcher: Dispatcher, index: int) -> None:
        old = self._channels[index]
        old.terminate(self._config.kill_grace_s)
        if not self._config.restart_workers:
            if all(slot.faulted for slot in dispatcher.slots):
                dispatcher.fail_queued(
                    TransportError("no healthy workers left in the pool"))
            return
        generation = dispatcher.slots[index].generation + 1
        channel = self._spawn_channel(index, generation)
        self._channels[index] = channel
        dispatcher.replace_channel(index, channel)
        _LOGGER.info("worker restarted",
                     extra={"slot_index": index, "worker_pid": channel.pid,
                            "generation": generation})

    def _publish_state(self, dispatcher: Dispatcher) -> None:
        self._state = dispatcher.state
        self._failure = dispatcher.failure
        if dispatcher.ready:
            self._ready = True
        if self._ready or self._state in (PoolState.FAILED, PoolState.CLOSED):
            self._ready_event.set()

    def _drain_events(self) -> None:
        error = PoolClosedError("worker pool was shut down")
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            if isinstance(event, _SubmitEvent):
                event.task.payload.discard()
                if event.task.future.set_running_or_notify_cancel():
                    event.task.future.set_exception(error)
            elif isinstance(event, _ResponseEvent):
                if self._dispatcher is not None:
                    self._dispatcher.handle_response(
                        event.slot_index, event.response,
                        generation=event.generation)
            elif isinstance(event, _SnapshotEvent):
                event.future.set_exception(error)
