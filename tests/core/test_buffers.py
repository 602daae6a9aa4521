from multiprocessing.shared_memory import SharedMemory

import pytest

from shrink_pool.core import (
    BufferMovedError,
    BufferRef,
    PayloadBuffer,
    claim_buffer,
    release_buffer,
)


def test_transfer_moves_ownership() -> None:
    buffer = PayloadBuffer.from_bytes(b"%PDF-payload")
    assert bytes(buffer.view()) == b"%PDF-payload"
    assert buffer.moved is False

    ref = buffer.transfer()
    assert buffer.moved is True
    assert ref == BufferRef(name=buffer.name, size=12)
    with pytest.raises(BufferMovedError):
        buffer.view()
    with pytest.raises(BufferMovedError):
        buffer.transfer()

    assert claim_buffer(ref) == b"%PDF-payload"


def test_claim_unlinks_segment() -> None:
    ref = PayloadBuffer.from_bytes(b"once").transfer()
    assert claim_buffer(ref) == b"once"
    with pytest.raises(FileNotFoundError):
        claim_buffer(ref)


def test_empty_payload_round_trips() -> None:
    ref = PayloadBuffer.from_bytes(b"").transfer()
    assert ref.size == 0
    assert claim_buffer(ref) == b""


def test_discard_frees_segment() -> None:
    buffer = PayloadBuffer.from_bytes(bytearray(b"scratch"))
    name = buffer.name
    buffer.discard()
    buffer.discard()
    assert buffer.moved is True
    with pytest.raises(FileNotFoundError):
        SharedMemory(name=name)


def test_release_is_safe_after_claim() -> None:
    ref = PayloadBuffer.from_bytes(memoryview(b"orphan")).transfer()
    release_buffer(ref)
    release_buffer(ref)
    with pytest.raises(FileNotFoundError):
        SharedMemory(name=ref.name)


def test_buffer_ref_uses_wire_aliases() -> None:
    ref = BufferRef.model_validate({"name": "psm_x", "size": 3})
    assert ref.model_dump(by_alias=True) == {"name": "psm_x", "size": 3}
    with pytest.raises(ValueError):
        BufferRef(name="", size=1)
