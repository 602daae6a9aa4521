"""Command line entry point for shrink-pool."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv

from .batch import FileStatus, compress_files, format_bytes
from .core.config import load_config
from .core.errors import NoEligibleFilesError, PoolInitializationError
from .core.pool import WorkerPool
from .logging import configure_logging

app = typer.Typer(
    name="shrink-pool",
    help="Compress documents in parallel across a pool of worker processes.",
    no_args_is_help=True,
)


@app.callback()
def main() -> None:
    """Load .env and configure logging before any command."""
    load_dotenv()
    configure_logging()


@app.command("compress")
def compress(
    inputs: List[Path] = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True,
        help="Documents to compress",
    ),
    out: Optional[Path] = typer.Option(
        None, "--out", "-o", file_okay=False,
        help="Output directory (default: next to each input)",
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Number of worker processes",
    ),
    engine: Optional[str] = typer.Option(
        None, "--engine", help="Engine reference, 'module:attr'",
    ),
    timeout_s: Optional[float] = typer.Option(
        None, "--timeout", min=0.001, help="Per-document timeout in seconds",
    ),
):
    """Compress every input and write compressed_<name> files."""
    config = load_config(size=workers, engine=engine)
    try:
        pool = WorkerPool(config=config)
    except (ImportError, AttributeError, TypeError, ValueError) as exc:
        typer.echo(f"Invalid engine {config.engine!r}: {exc}", err=True)
        raise typer.Exit(2)
    try:
        typer.echo(
            f"Processing {len(inputs)} file(s) with {pool.pool_size} workers...")
        pool.wait_ready()
        report = compress_files(pool, inputs, output_dir=out,
                                timeout_s=timeout_s)
    except NoEligibleFilesError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(2)
    except PoolInitializationError as exc:
        typer.echo(f"Worker initialization failed: {exc}", err=True)
        raise typer.Exit(1)
    finally:
        pool.close()

    for name in report.skipped:
        typer.echo(f"skipped  {name}")
    for outcome in report.outcomes:
        if outcome.status is FileStatus.COMPLETED:
            typer.echo(
                f"ok       {outcome.name}: "
                f"{format_bytes(outcome.original_size or 0)} -> "
                f"{format_bytes(outcome.compressed_size or 0)} "
                f"(-{outcome.compression_ratio}%) -> {outcome.output_path}")
        else:
            typer.echo(f"error    {outcome.name}: {outcome.error}")
    typer.echo(report.message)
    if report.success_count == 0:
        raise typer.Exit(1)


@app.command("serve")
def serve():
    """Run the HTTP service (SHRINK_HOST / SHRINK_PORT)."""
    from .http.server import run

    run()


if __name__ == "__main__":
    app()
