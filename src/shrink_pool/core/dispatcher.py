from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Protocol, Sequence

from ..protocol.models import (
    CompressFailure,
    CompressRequest,
    CompressSuccess,
    InitFailure,
    InitRequest,
    InitSuccess,
    Progress,
    WorkerRequest,
)
from .buffers import BufferRef, PayloadBuffer, claim_buffer, release_buffer
from .errors import (
    PoolClosedError,
    PoolInitializationError,
    PoolRejectedError,
    ShrinkPoolError,
    TaskError,
    TaskTimeoutError,
    TransportError,
)

_LOGGER = logging.getLogger(__name__)


class Channel(Protocol):
    """Orchestrator-side handle to one execution unit."""

    def send(self, request: WorkerRequest) -> None:
        ...


class PoolState(str, Enum):
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(slots=True)
class CompressResult:
    """Outcome of one successfully compressed document."""

    original_size: int
    compressed_size: int
    data: bytes
    task_id: str
    filename: str
    slot_index: int
    worker_pid: int | None = None
    queue_wait_ms: float | None = None
    duration_ms: float | None = None

    @property
    def compression_ratio(self) -> float:
        """Saved share of the input, in percent."""
        if self.original_size == 0:
            return 0.0
        return (1 - self.compressed_size / self.original_size) * 100


@dataclass(slots=True)
class Task:
    id: str
    payload: PayloadBuffer
    filename: str
    future: "Future[CompressResult]" = field(default_factory=Future)
    submitted_at: float = field(default_factory=time.monotonic)
    timeout_s: float | None = None
    dispatched_at: float | None = None
    transferred: BufferRef | None = None


@dataclass(slots=True)
class WorkerSlot:
    index: int
    channel: Channel
    generation: int = 0
    current_task_id: str | None = None
    initialized: bool = False
    faulted: bool = False
    deadline: float | None = None

    @property
    def busy(self) -> bool:
        return self.current_task_id is not None

    @property
    def idle(self) -> bool:
        return not self.busy and not self.faulted

    def assign(self, task_id: str, deadline: float | None) -> None:
        self.current_task_id = task_id
        self.deadline = deadline

    def release(self) -> None:
        self.current_task_id = None
        self.deadline = None


class PendingTaskTable:
    """Correlation id -> task, for every task not yet settled."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def add(self, task: Task) -> None:
        if task.id in self._tasks:
            raise ValueError(f"duplicate task id {task.id!r}")
        self._tasks[task.id] = task

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def pop(self, task_id: str) -> Task | None:
        return self._tasks.pop(task_id, None)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))


@dataclass(frozen=True, slots=True)
class SlotSnapshot:
    index: int
    busy: bool
    current_task_id: str | None
    initialized: bool
    faulted: bool
    generation: int


@dataclass(frozen=True, slots=True)
class PoolSnapshot:
    state: PoolState
    ready: bool
    ready_count: int
    pool_size: int
    slots: tuple[SlotSnapshot, ...]
    queued: int
    pending: int

    @property
    def busy(self) -> int:
        return sum(1 for slot in self.slots if slot.busy)


class Dispatcher:
    """
    Owns the slots, the task queue and the pending-task table.

    Not thread-safe: every method must be called from the one thread that
    owns the pool. Outbound requests go through each slot's channel.
    """

    def __init__(self,
                 channels: Sequence[Channel],
                 *,
                 max_pending: int | None = None,
                 clock: Callable[[], float] = time.monotonic) -> None:
        if not channels:
            raise ValueError("at least one channel is required")
        self._slots = [
            WorkerSlot(index=index, channel=channel)
            for index, channel in enumerate(channels)
        ]
        self._queue: deque[Task] = deque()
        self._pending = PendingTaskTable()
        self._max_pending = max_pending
        self._clock = clock
        self._ready_count = 0
        self._ready = False
        self._state = PoolState.STARTING
        self._failure: PoolInitializationError | None = None

    @property
    def pool_size(self) -> int:
        return len(self._slots)

    @property
    def slots(self) -> Sequence[WorkerSlot]:
        return tuple(self._slots)

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def ready_count(self) -> int:
        return self._ready_count

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def failure(self) -> PoolInitializationError | None:
        return self._failure

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        for slot in self._slots:
            self._send_init(slot)

    def submit(self, task: Task) -> None:
        error = self._admission_error()
        if error is not None:
            task.payload.discard()
            if task.future.set_running_or_notify_cancel():
                task.future.set_exception(error)
            return
        self._pending.add(task)
        self._queue.append(task)
        self.dispatch()

    def dispatch(self) -> None:
        while self._queue:
            slot = self._first_idle_slot()
            if slot is None:
                return
            task = self._queue.popleft()
            if not task.future.set_running_or_notify_cancel():
                self._pending.pop(task.id)
                task.payload.discard()
                _LOGGER.debug("dropping cancelled task %s", task.id)
                continue
            now = self._clock()
            deadline = (now + task.timeout_s
                        if task.timeout_s is not None else None)
            task.dispatched_at = now
            slot.assign(task.id, deadline)
            task.transferred = task.payload.transfer()
            slot.channel.send(CompressRequest(
                id=task.id,
                data=task.transferred,
                filename=task.filename,
            ))
            _LOGGER.debug("dispatched task %s to slot %d", task.id,
                          slot.index)

    def handle_response(self,
                        slot_index: int,
                        response: Any,
                        *,
                        generation: int | None = None) -> None:
        slot = self._slots[slot_index]
        if generation is not None and generation != slot.generation:
            _LOGGER.debug("ignoring stale response from slot %d gen %d",
                          slot_index, generation)
            _release_orphan_output(response)
            return

        if isinstance(response, InitSuccess):
            self._on_init_success(slot)
        elif isinstance(response, InitFailure):
            self._on_init_failure(slot, response.error)
        elif isinstance(response, Progress):
            _LOGGER.debug("task %s running on slot %d", response.id,
                          slot_index)
        elif isinstance(response, CompressSuccess):
            self._on_success(slot, response)
        elif isinstance(response, CompressFailure):
            self._on_error(slot, response)
        else:
            _LOGGER.warning("ignoring unrecognized response from slot %d: %r",
                            slot_index, response)

    def fault_slot(self, slot_index: int, error: ShrinkPoolError) -> None:
        """Take a slot out of service, rejecting its in-flight task."""
        slot = self._slots[slot_index]
        task_id = slot.current_task_id
        slot.release()
        if slot.initialized:
            slot.initialized = False
            self._ready_count -= 1
        slot.faulted = True
        if task_id is None:
            return
        task = self._pending.pop(task_id)
        if task is None:
            return
        if task.transferred is not None:
            release_buffer(task.transferred)
        self._reject(task, error, slot)

    def fail_initialization(self, slot_index: int,
                            error: ShrinkPoolError) -> None:
        """Fault a slot whose unit died before confirming ``init`` and fail
        the pool the same way an ``init-error`` would.
        """
        self.fault_slot(slot_index, error)
        self._on_init_failure(self._slots[slot_index], str(error))

    def replace_channel(self, slot_index: int, channel: Channel) -> None:
        """Put a faulted slot back into service behind a new channel."""
        slot = self._slots[slot_index]
        if slot.busy:
            raise RuntimeError(f"slot {slot_index} is busy")
        slot.channel = channel
        slot.generation += 1
        slot.faulted = False
        slot.initialized = False
        if self._state is PoolState.CLOSED:
            return
        self._send_init(slot)
        self.dispatch()

    def expired_slots(self) -> list[int]:
        """Reject tasks past their deadline; returns the slots that ran
        them, which are left faulted.
        """
        now = self._clock()
        expired: list[int] = []
        for slot in self._slots:
            if slot.deadline is None or slot.deadline > now:
                continue
            task = self._pending.get(slot.current_task_id or "")
            timeout = task.timeout_s if task is not None else None
            self.fault_slot(slot.index, TaskTimeoutError(
                f"task exceeded its {timeout}s timeout",
                task_id=slot.current_task_id,
            ))
            expired.append(slot.index)
        return expired

    def fail_queued(self, error: ShrinkPoolError) -> int:
        """Reject every task still waiting in the queue."""
        count = 0
        while self._queue:
            task = self._queue.popleft()
            self._pending.pop(task.id)
            task.payload.discard()
            if task.future.set_running_or_notify_cancel():
                task.future.set_exception(error)
                count += 1
        return count

    def close(self) -> None:
        """Reject everything still outstanding; no further submissions."""
        if self._state is PoolState.CLOSED:
            return
        self._state = PoolState.CLOSED
        error = PoolClosedError("worker pool was shut down")
        self.fail_queued(error)
        for task in self._pending:
            self._pending.pop(task.id)
            if task.transferred is not None:
                release_buffer(task.transferred)
            if not task.future.done():
                task.future.set_exception(error)
        for slot in self._slots:
            slot.release()

    def snapshot(self) -> PoolSnapshot:
        return PoolSnapshot(
            state=self._state,
            ready=self._ready,
            ready_count=self._ready_count,
            pool_size=len(self._slots),
            slots=tuple(
                SlotSnapshot(
                    index=slot.index,
                    busy=slot.busy,
                    current_task_id=slot.current_task_id,
                    initialized=slot.initialized,
                    faulted=slot.faulted,
                    generation=slot.generation,
                )
                for slot in self._slots
            ),
            queued=len(self._queue),
            pending=len(self._pending),
        )

    def _send_init(self, slot: WorkerSlot) -> None:
        request_id = f"init-{slot.index}"
        if slot.generation:
            request_id = f"{request_id}.{slot.generation}"
        slot.channel.send(InitRequest(id=request_id))

    def _first_idle_slot(self) -> WorkerSlot | None:
        for slot in self._slots:
            if slot.idle:
                return slot
        return None

    def _admission_error(self) -> ShrinkPoolError | None:
        if self._state is PoolState.CLOSED:
            return PoolClosedError("worker pool was shut down")
        if self._state is PoolState.FAILED and self._failure is not None:
            return self._failure
        if all(slot.faulted for slot in self._slots):
            return TransportError("no healthy workers left in the pool")
        if (self._max_pending is not None
                and len(self._pending) >= self._max_pending):
            return PoolRejectedError(
                f"worker pool has {len(self._pending)} pending tasks "
                f"(limit {self._max_pending})")
        return None

    def _on_init_success(self, slot: WorkerSlot) -> None:
        if slot.initialized:
            return
        slot.initialized = True
        self._ready_count += 1
        if not self._ready and self._ready_count == len(self._slots):
            self._ready = True
            if self._state is PoolState.STARTING:
                self._state = PoolState.READY
            _LOGGER.info("worker pool ready",
                         extra={"pool_size": len(self._slots)})

    def _on_init_failure(self, slot: WorkerSlot, error: str) -> None:
        _LOGGER.error(
            "worker failed to initialize",
            extra={"slot_index": slot.index, "error_message": error},
        )
        if self._state in (PoolState.FAILED, PoolState.CLOSED):
            return
        self._state = PoolState.FAILED
        self._failure = PoolInitializationError(
            f"worker {slot.index} failed to initialize: {error}",
            slot_index=slot.index,
        )
        self.fail_queued(self._failure)

    def _on_success(self, slot: WorkerSlot,
                    response: CompressSuccess) -> None:
        task = self._pending.pop(response.id)
        if task is None:
            _LOGGER.debug("ignoring response for unknown task %s",
                          response.id)
            release_buffer(response.data)
            return
        self._release_slot(slot, response.id)
        try:
            data = claim_buffer(response.data)
        except FileNotFoundError:
            self._reject(task, TaskError("output buffer is gone",
                                         task_id=task.id), slot)
        else:
            result = CompressResult(
                original_size=response.original_size,
                compressed_size=response.compressed_size,
                data=data,
                task_id=task.id,
                filename=task.filename,
                slot_index=slot.index,
                worker_pid=response.worker_pid,
                queue_wait_ms=_queue_wait_ms(task),
                duration_ms=response.duration_ms,
            )
            task.future.set_result(result)
            _LOGGER.info("compression completed",
                         extra=_result_log_extra(task, result))
        self.dispatch()

    def _on_error(self, slot: WorkerSlot, response: CompressFailure) -> None:
        task = self._pending.pop(response.id)
        if task is None:
            _LOGGER.debug("ignoring response for unknown task %s",
                          response.id)
            return
        self._release_slot(slot, response.id)
        self._reject(task, TaskError(response.error, task_id=task.id), slot)
        self.dispatch()

    def _release_slot(self, slot: WorkerSlot, task_id: str) -> None:
        if slot.current_task_id == task_id:
            slot.release()
            return
        for other in self._slots:
            if other.current_task_id == task_id:
                other.release()
                return

    def _reject(self, task: Task, error: ShrinkPoolError,
                slot: WorkerSlot | None) -> None:
        task.future.set_exception(error)
        extra = {
            "task_id": task.id,
            "document": task.filename,
            "slot_index": slot.index if slot is not None else None,
            "queue_wait_ms": _queue_wait_ms(task),
            "status": "error",
            "error_kind": type(error).__name__,
            "error_message": str(error),
        }
        if isinstance(error, TaskError) and not isinstance(
                error, TaskTimeoutError):
            _LOGGER.warning("compression failed", extra=extra)
            return
        _LOGGER.error("compression failed", extra=extra)


def _queue_wait_ms(task: Task) -> float | None:
    if task.dispatched_at is None:
        return None
    return max(0.0, (task.dispatched_at - task.submitted_at) * 1000)


def _result_log_extra(task: Task, result: CompressResult) -> dict[str, Any]:
    return {
        "task_id": task.id,
        "document": task.filename,
        "slot_index": result.slot_index,
        "worker_pid": result.worker_pid,
        "original_size": result.original_size,
        "compressed_size": result.compressed_size,
        "queue_wait_ms": result.queue_wait_ms,
        "duration_ms": result.duration_ms,
        "status": "success",
    }


def _release_orphan_output(response: Any) -> None:
    if isinstance(response, CompressSuccess):
        release_buffer(response.data)
