"""Shared-memory payloads with one-way ownership transfer.

A payload is copied once into a shared-memory segment when it is submitted.
From then on only the segment *name* travels between processes: the
orchestrator hands it to a worker with :meth:`PayloadBuffer.transfer`, the
worker reads it with :func:`claim_buffer`, which also unlinks it, and writes
its output into a fresh segment that the orchestrator claims in turn.
"""

from __future__ import annotations

import logging
from multiprocessing.shared_memory import SharedMemory

from pydantic import Field

from .errors import BufferMovedError
from .wire_model import WireModel

_LOGGER = logging.getLogger(__name__)


class BufferRef(WireModel):
    """Describes a payload stored in a shared memory segment."""

    name: str = Field(min_length=1)
    size: int = Field(ge=0)


def _close(segment: SharedMemory) -> None:
    try:
        segment.close()
    except BufferError:
        _LOGGER.debug("segment %s still exported", segment.name)


class PayloadBuffer:
    """Exclusive owner of one shared memory segment."""

    __slots__ = ("_segment", "_size", "_name", "_moved")

    def __init__(self, segment: SharedMemory, size: int) -> None:
        self._segment: SharedMemory | None = segment
        self._size = size
        self._name = segment.name
        self._moved = False

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> "PayloadBuffer":
        view = memoryview(data).cast("B")
        size = view.nbytes
        # zero-length segments are not allowed
        segment = SharedMemory(create=True, size=max(1, size))
        segment.buf[:size] = view
        return cls(segment, size)

    @property
    def size(self) -> int:
        return self._size

    @property
    def name(self) -> str:
        return self._name

    @property
    def moved(self) -> bool:
        return self._moved

    def view(self) -> memoryview:
        """Read access for the current owner."""
        segment = self._require()
        return segment.buf[:self._size]

    def transfer(self) -> BufferRef:
        """Move ownership to the receiver of the returned reference.

        The local mapping is closed; the segment stays alive until the
        receiver claims it.
        """
        segment = self._require()
        ref = BufferRef(name=segment.name, size=self._size)
        _close(segment)
        self._segment = None
        self._moved = True
        return ref

    def discard(self) -> None:
        """Free the segment without handing it to anybody."""
        segment = self._segment
        if segment is None:
            return
        self._segment = None
        self._moved = True
        _close(segment)
        try:
            segment.unlink()
        except FileNotFoundError:
            pass

    def _require(self) -> SharedMemory:
        if self._segment is None:
            raise BufferMovedError(
                f"payload buffer {self._name} was already transferred")
        return self._segment

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        state = "moved" if self._moved else "owned"
        return f"PayloadBuffer(name={self._name!r}, size={self._size}, {state})"


def claim_buffer(ref: BufferRef) -> bytes:
    """Take ownership of a transferred segment, returning its bytes.

    The segment is unlinked once read, so a reference can be claimed once.
    """
    segment = SharedMemory(name=ref.name)
    try:
        data = bytes(segment.buf[:ref.size])
    finally:
        _close(segment)
    try:
        segment.unlink()
    except FileNotFoundError:
        pass
    return data


def release_buffer(ref: BufferRef) -> None:
    """Free a transferred segment nobody will claim."""
    try:
        segment = SharedMemory(name=ref.name)
    except FileNotFoundError:
        return
    _close(segment)
    try:
        segment.unlink()
    except FileNotFoundError:
        pass
