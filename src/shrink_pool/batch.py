"""Compress many documents at once and report per-file outcomes."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence

from .core.dispatcher import CompressResult
from .core.errors import NoEligibleFilesError
from .core.pool import WorkerPool

_LOGGER = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
DEFAULT_SUFFIXES: tuple[str, ...] = (".pdf",)
OUTPUT_PREFIX = "compressed_"


class FileStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


def is_pdf_bytes(data: bytes) -> bool:
    """Boundary check on the document header only."""
    return data[:1024].lstrip(b"\x00\t\n\r\f ").startswith(PDF_MAGIC)


def is_accepted_path(path: Path,
                     suffixes: Sequence[str] = DEFAULT_SUFFIXES) -> bool:
    return path.suffix.lower() in {suffix.lower() for suffix in suffixes}


@dataclass(slots=True)
class FileOutcome:
    name: str
    status: FileStatus = FileStatus.PENDING
    original_size: int | None = None
    compressed_size: int | None = None
    output_path: Path | None = None
    error: str | None = None

    @property
    def compression_ratio(self) -> str | None:
        """Saved share as a percentage string with two decimals."""
        if self.original_size is None or self.compressed_size is None:
            return None
        if self.original_size == 0:
            return "0.00"
        saved = (1 - self.compressed_size / self.original_size) * 100
        return f"{saved:.2f}"


@dataclass(slots=True)
class BatchReport:
    outcomes: list[FileOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes
                   if outcome.status is FileStatus.COMPLETED)

    @property
    def failure_count(self) -> int:
        return self.total - self.success_count

    @property
    def message(self) -> str:
        return (f"Completed! {self.success_count}/{self.total} "
                "files processed successfully.")


def format_bytes(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def output_path_for(source: Path, output_dir: Path | None) -> Path:
    directory = output_dir if output_dir is not None else source.parent
    return directory / f"{OUTPUT_PREFIX}{source.name}"


def compress_files(
    pool: WorkerPool,
    paths: Iterable[str | Path],
    *,
    output_dir: str | Path | None = None,
    suffixes: Sequence[str] = DEFAULT_SUFFIXES,
    timeout_s: float | None = None,
) -> BatchReport:
    """
    Submit every eligible file at once and wait for all of them.

    Files failing the suffix check are skipped; if none remain,
    :class:`NoEligibleFilesError` is raised. A ``.pdf`` file without the
    ``%PDF-`` header is reported as an error and never submitted. Each
    file succeeds or fails on its own; the report carries the
    partial-success count.
    """
    candidates = [Path(path) for path in paths]
    eligible = [path for path in candidates
                if is_accepted_path(path, suffixes)]
    report = BatchReport(
        skipped=[str(path) for path in candidates if path not in eligible])
    if not eligible:
        raise NoEligibleFilesError("Please upload PDF files only")

    out_dir = Path(output_dir) if output_dir is not None else None
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)

    _LOGGER.info("processing batch",
                 extra={"file_count": len(eligible),
                        "pool_size": pool.pool_size})

    submitted: list[tuple[Path, FileOutcome, Future[CompressResult] | None]]
    submitted = []
    for path in eligible:
        outcome = FileOutcome(name=path.name)
        report.outcomes.append(outcome)
        try:
            data = path.read_bytes()
        except OSError as exc:
            outcome.status = FileStatus.ERROR
            outcome.error = str(exc)
            submitted.append((path, outcome, None))
            continue
        if path.suffix.lower() == ".pdf" and not is_pdf_bytes(data):
            outcome.status = FileStatus.ERROR
            outcome.error = "Please upload PDF files only"
            submitted.append((path, outcome, None))
            continue
        outcome.status = FileStatus.PROCESSING
        submitted.append(
            (path, outcome, pool.submit(data, path.name, timeout_s=timeout_s)))

    for path, outcome, future in submitted:
        if future is None:
            continue
        try:
            result = future.result()
        except Exception as exc:
            outcome.status = FileStatus.ERROR
            outcome.error = str(exc) or type(exc).__name__
            continue
        target = output_path_for(path, out_dir)
        try:
            target.write_bytes(result.data)
        except OSError as exc:
            outcome.status = FileStatus.ERROR
            outcome.error = str(exc)
            continue
        outcome.status = FileStatus.COMPLETED
        outcome.original_size = result.original_size
        outcome.compressed_size = result.compressed_size
        outcome.output_path = target

    _LOGGER.info(report.message,
                 extra={"success_count": report.success_count,
                        "file_count": report.total})
    return report
