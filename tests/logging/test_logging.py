import json
import logging
import sys

import pytest

from shrink_pool.logging import LoggingSettings, load_logging_settings
from shrink_pool.logging.impl.standard import (
    JsonFormatter,
    SlotFilter,
    StandardLoggingConfigurator,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="shrink_pool.core.dispatcher",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="compression %s",
        args=("completed",),
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_includes_extras() -> None:
    line = JsonFormatter().format(_record(task_id="doc-1", slot_index=0,
                                          document="doc.pdf"))
    payload = json.loads(line)
    assert payload["message"] == "compression completed"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "shrink_pool.core.dispatcher"
    assert payload["task_id"] == "doc-1"
    assert payload["slot_index"] == 0
    assert payload["document"] == "doc.pdf"
    assert "pathname" not in payload
    assert "args" not in payload


def test_json_formatter_serializes_exceptions() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()
    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc_info"]


def test_settings_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_GENERAL_ENABLED", "true")
    monkeypatch.setenv("LOG_GENERAL_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_CONSOLE_ENABLED", "no")
    monkeypatch.delenv("LOG_ERROR_DIR", raising=False)

    settings = load_logging_settings()
    assert settings.level == logging.DEBUG
    assert settings.general_dir == str(tmp_path)
    assert settings.console_enabled is False
    assert settings.error_dir is None


def test_general_dir_dropped_when_disabled(monkeypatch) -> None:
    monkeypatch.setenv("LOG_GENERAL_ENABLED", "false")
    monkeypatch.setenv("LOG_GENERAL_DIR", "/tmp/anywhere")
    assert LoggingSettings.from_env().general_dir is None


def test_invalid_level_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    with pytest.raises(ValueError, match="LOG_LEVEL"):
        load_logging_settings()


def test_file_handlers_write_json(tmp_path) -> None:
    settings = LoggingSettings(
        error_dir=str(tmp_path / "errors"),
        general_dir=str(tmp_path / "general"),
        backup_count=1,
        console_enabled=False,
    )
    configurator = StandardLoggingConfigurator(settings)
    handlers = configurator._build_handlers(settings)
    assert len(handlers) == 2

    logger = logging.getLogger("shrink_pool.tests.file_handlers")
    logger.propagate = False
    logger.setLevel(logging.INFO)
    for handler in handlers:
        logger.addHandler(handler)
    try:
        logger.info("worker pool ready", extra={"pool_size": 4})
        logger.error("worker failed to initialize")
    finally:
        for handler in handlers:
            logger.removeHandler(handler)
            handler.close()

    general = (tmp_path / "general" / "shrink-pool.log").read_text(
        encoding="utf-8").splitlines()
    errors = (tmp_path / "errors" / "error.log").read_text(
        encoding="utf-8").splitlines()
    assert [json.loads(line)["message"] for line in general] == [
        "worker pool ready", "worker failed to initialize"]
    assert json.loads(general[0])["pool_size"] == 4
    assert [json.loads(line)["message"] for line in errors] == [
        "worker failed to initialize"]


def test_worker_settings_are_console_only(tmp_path) -> None:
    settings = LoggingSettings(
        level=logging.DEBUG,
        worker_level=logging.ERROR,
        error_dir=str(tmp_path / "errors"),
        general_dir=str(tmp_path / "general"),
    )
    worker = settings.for_worker()
    assert worker.level == logging.ERROR
    assert worker.error_dir is None
    assert worker.general_enabled is False
    assert worker.console_enabled is True


def test_slot_filter_tags_worker_records() -> None:
    slot_filter = SlotFilter(3)
    record = _record()
    assert slot_filter.filter(record) is True
    assert record.slot_index == 3

    explicit = _record(slot_index=0)
    slot_filter.filter(explicit)
    assert explicit.slot_index == 0

    payload = json.loads(JsonFormatter().format(record))
    assert payload["slot_index"] == 3


def test_worker_level_from_env(monkeypatch) -> None:
    monkeypatch.setenv("LOG_WORKER_LEVEL", "info")
    assert load_logging_settings().worker_level == logging.INFO
