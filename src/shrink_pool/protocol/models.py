"""Messages exchanged between the orchestrator and its workers.

Both directions are tagged unions discriminated by ``type``. Every response
carries the ``id`` of the request it answers.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter

from ..core.wire_model import WireModel
from ..core.buffers import BufferRef

RequestKind = Literal["init", "compress"]
ResponseKind = Literal["init-success", "init-error", "progress", "success",
                       "error"]


class InitRequest(WireModel):
    type: Literal["init"] = "init"
    id: str = Field(min_length=1)


class CompressRequest(WireModel):
    type: Literal["compress"] = "compress"
    id: str = Field(min_length=1)
    data: BufferRef | None = None
    filename: str | None = None


class InitSuccess(WireModel):
    type: Literal["init-success"] = "init-success"
    id: str


class InitFailure(WireModel):
    type: Literal["init-error"] = "init-error"
    id: str
    error: str


class Progress(WireModel):
    type: Literal["progress"] = "progress"
    id: str


class CompressSuccess(WireModel):
    type: Literal["success"] = "success"
    id: str
    data: BufferRef
    original_size: int = Field(ge=0)
    compressed_size: int = Field(ge=0)
    worker_pid: int | None = None
    duration_ms: float | None = None


class CompressFailure(WireModel):
    type: Literal["error"] = "error"
    id: str
    error: str
    worker_pid: int | None = None
    duration_ms: float | None = None


WorkerRequest = Annotated[
    Union[InitRequest, CompressRequest],
    Field(discriminator="type"),
]
WorkerResponse = Annotated[
    Union[InitSuccess, InitFailure, Progress, CompressSuccess,
          CompressFailure],
    Field(discriminator="type"),
]

_REQUEST_ADAPTER: TypeAdapter[Any] = TypeAdapter(WorkerRequest)
_RESPONSE_ADAPTER: TypeAdapter[Any] = TypeAdapter(WorkerResponse)

REQUEST_TYPES = (InitRequest, CompressRequest)
RESPONSE_TYPES = (InitSuccess, InitFailure, Progress, CompressSuccess,
                  CompressFailure)


def parse_request(raw: Any) -> InitRequest | CompressRequest:
    """Validate a request; raises ``pydantic.ValidationError`` for unknown
    tags or malformed fields.
    """
    if isinstance(raw, REQUEST_TYPES):
        return raw
    return _REQUEST_ADAPTER.validate_python(raw)


def parse_response(
    raw: Any,
) -> InitSuccess | InitFailure | Progress | CompressSuccess | CompressFailure:
    """Validate a response; raises ``pydantic.ValidationError`` for unknown
    tags or malformed fields.
    """
    if isinstance(raw, RESPONSE_TYPES):
        return raw
    return _RESPONSE_ADAPTER.validate_python(raw)


def dump_message(message: WireModel) -> dict[str, Any]:
    """Wire form of a message, camelCase keys, absent optionals dropped."""
    return message.to_wire()
