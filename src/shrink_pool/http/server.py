from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Callable
from urllib.parse import quote

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from ..batch import OUTPUT_PREFIX, is_pdf_bytes
from ..core.errors import (
    PoolClosedError,
    PoolInitializationError,
    PoolRejectedError,
    ShrinkPoolError,
    TaskError,
    TaskTimeoutError,
    TransportError,
)
from ..core.dispatcher import PoolState
from ..core.pool import WorkerPool
from ..logging import configure_logging

_LOGGER = logging.getLogger(__name__)

PoolFactory = Callable[[], WorkerPool]


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "message": str(exc)},
    )


def _status_for(exc: ShrinkPoolError) -> int:
    if isinstance(exc, TaskTimeoutError):
        return 504
    if isinstance(exc, TaskError):
        return 422
    if isinstance(exc, PoolRejectedError):
        return 429
    if isinstance(exc, (PoolClosedError, PoolInitializationError,
                        TransportError)):
        return 503
    return 500


def create_app(
    pool: WorkerPool | None = None,
    *,
    pool_factory: PoolFactory | None = None,
) -> FastAPI:
    """Create the HTTP app.

    A pool passed in stays owned by the caller. Otherwise one is built with
    ``pool_factory`` (default: from environment) at startup and closed at
    shutdown.
    """
    factory = pool_factory or WorkerPool

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = pool is None
        app.state.pool = pool if pool is not None else factory()
        try:
            yield
        finally:
            if owned:
                app.state.pool.close()

    app = FastAPI(title="Shrink Pool", lifespan=lifespan)

    @app.get("/healthz")
    async def healthz():
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(request: Request):
        """Readiness probe: every worker has initialized its engine."""
        worker_pool: WorkerPool = request.app.state.pool
        if not worker_pool.ready or worker_pool.state in (
                PoolState.FAILED, PoolState.CLOSED):
            return JSONResponse(
                status_code=503,
                content={
                    "status": "not_ready",
                    "state": worker_pool.state.value,
                },
            )
        return {"status": "ready", "poolSize": worker_pool.pool_size}

    @app.get("/pool")
    async def pool_snapshot(request: Request):
        worker_pool: WorkerPool = request.app.state.pool
        try:
            snapshot = await asyncio.to_thread(worker_pool.snapshot)
        except PoolClosedError as exc:
            return _error_response(503, exc)
        payload = asdict(snapshot)
        payload["state"] = snapshot.state.value
        payload["busy"] = snapshot.busy
        return payload

    @app.post("/compress")
    async def compress(
        request: Request,
        filename: str = Query(default="document.pdf", min_length=1),
        timeout_s: float | None = Query(default=None, gt=0),
    ):
        """Compress the raw request body."""
        worker_pool: WorkerPool = request.app.state.pool
        body = await request.body()
        if not is_pdf_bytes(body):
            return JSONResponse(
                status_code=415,
                content={
                    "error": "UnsupportedMediaType",
                    "message": "Please upload PDF files only",
                },
            )
        try:
            future = worker_pool.submit(body, filename, timeout_s=timeout_s)
            result = await asyncio.wrap_future(future)
        except ShrinkPoolError as exc:
            return _error_response(_status_for(exc), exc)

        return Response(
            content=result.data,
            media_type="application/pdf",
            headers={
                "Content-Disposition":
                "attachment; filename*=UTF-8''"
                f"{quote(OUTPUT_PREFIX + filename)}",
                "X-Original-Size": str(result.original_size),
                "X-Compressed-Size": str(result.compressed_size),
                "X-Task-Id": result.task_id,
            },
        )

    return app


def run() -> None:
    """Start uvicorn server with configuration from environment."""
    load_dotenv()
    configure_logging()

    host = os.getenv("SHRINK_HOST", "127.0.0.1")
    port = int(os.getenv("SHRINK_PORT", "8000"))

    app = create_app()
    _LOGGER.info("starting http server", extra={"host": host, "port": port})
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
