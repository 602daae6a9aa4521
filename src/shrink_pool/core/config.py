"""Worker pool configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import overload

DEFAULT_ENGINE = "shrink_pool.engines:ZlibEngine"


def default_pool_size() -> int:
    """One worker per CPU, leaving one CPU for the orchestrator."""
    cpus = os.cpu_count() or 1
    return max(1, cpus - 1)


def _raw(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def env_str(name: str, default: str) -> str:
    value = _raw(name)
    return default if value is None else value


@overload
def env_int(name: str, default: int) -> int:
    ...


@overload
def env_int(name: str, default: None = None) -> int | None:
    ...


def env_int(name: str, default: int | None = None) -> int | None:
    value = _raw(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid int env var {name}={value!r}") from None


@overload
def env_float(name: str, default: float) -> float:
    ...


@overload
def env_float(name: str, default: None = None) -> float | None:
    ...


def env_float(name: str, default: float | None = None) -> float | None:
    value = _raw(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid float env var {name}={value!r}") from None


def env_bool(name: str, default: bool) -> bool:
    value = _raw(name)
    if value is None:
        return default
    value = value.lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"Invalid bool env var {name}={value!r}")


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """Configuration for a worker pool."""

    # Number of worker processes
    size: int = field(
        default_factory=lambda: env_int("SHRINK_POOL_SIZE",
                                        default_pool_size())
    )

    # Engine reference, "module:attr"
    engine: str = field(
        default_factory=lambda: env_str("SHRINK_ENGINE", DEFAULT_ENGINE)
    )

    # Admission limit on queued plus running tasks; None is unbounded
    max_pending: int | None = field(
        default_factory=lambda: env_int("SHRINK_MAX_PENDING")
    )

    # Default per-task deadline, measured from dispatch
    task_timeout_s: float | None = field(
        default_factory=lambda: env_float("SHRINK_TASK_TIMEOUT_S")
    )

    kill_grace_s: float = field(
        default_factory=lambda: env_float("SHRINK_KILL_GRACE_S", 0.2)
    )

    poll_interval_s: float = field(
        default_factory=lambda: env_float("SHRINK_POLL_INTERVAL_S", 0.05)
    )

    # Replace crashed or timed-out workers with fresh processes
    restart_workers: bool = field(
        default_factory=lambda: env_bool("SHRINK_RESTART_WORKERS", True)
    )

    start_method: str = field(
        default_factory=lambda: env_str("SHRINK_START_METHOD", "spawn")
    )

    def __post_init__(self) -> None:
        if self.size < 1:
            raise ValueError("size must be at least 1")
        if self.max_pending is not None and self.max_pending < 1:
            raise ValueError("max_pending must be positive when provided")
        if self.task_timeout_s is not None and self.task_timeout_s <= 0:
            raise ValueError("task_timeout_s must be positive when provided")
        if self.kill_grace_s < 0:
            raise ValueError("kill_grace_s must not be negative")
        if self.poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be positive")


def load_config(**overrides: object) -> PoolConfig:
    """Load pool configuration from environment, applying overrides."""
    provided = {key: value for key, value in overrides.items()
                if value is not None}
    return PoolConfig(**provided)  # type: ignore[arg-type]
