"""Compression engines shipped with shrink-pool."""

from __future__ import annotations

import os
import zlib
from typing_extensions import override

from .core.engine import BaseEngine


class ZlibEngine(BaseEngine):
    """DEFLATE the whole document. Level comes from ``SHRINK_ZLIB_LEVEL``."""

    def __init__(self, level: int | None = None) -> None:
        if level is None:
            raw = os.getenv("SHRINK_ZLIB_LEVEL")
            level = int(raw) if raw and raw.strip() else 9
        if not -1 <= level <= 9:
            raise ValueError(f"zlib level must be in [-1, 9], got {level}")
        self._level = level
        self._compressor_ready = False

    @override
    def initialize(self) -> None:
        # fail fast if zlib is unusable in this interpreter
        zlib.compress(b"", self._level)
        self._compressor_ready = True

    @override
    def transform(self, data: bytes) -> bytes:
        if not self._compressor_ready:
            raise RuntimeError("zlib engine not initialized")
        return zlib.compress(data, self._level)


class IdentityEngine(BaseEngine):
    """Return the input unchanged."""

    @override
    def transform(self, data: bytes) -> bytes:
        return bytes(data)
