from .models import (
    CompressFailure,
    CompressRequest,
    CompressSuccess,
    InitFailure,
    InitRequest,
    InitSuccess,
    Progress,
    RequestKind,
    ResponseKind,
    WorkerRequest,
    WorkerResponse,
    dump_message,
    parse_request,
    parse_response,
)

__all__ = [
    "CompressFailure",
    "CompressRequest",
    "CompressSuccess",
    "InitFailure",
    "InitRequest",
    "InitSuccess",
    "Progress",
    "RequestKind",
    "ResponseKind",
    "WorkerRequest",
    "WorkerResponse",
    "dump_message",
    "parse_request",
    "parse_response",
]
