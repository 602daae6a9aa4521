import zlib

import pytest
from typer.testing import CliRunner

from shrink_pool.cli import app
from shrink_pool.core import BaseEngine

runner = CliRunner()


class _BrokenInitEngine(BaseEngine):
    def initialize(self) -> None:
        raise RuntimeError("native library missing")

    def transform(self, data: bytes) -> bytes:
        return data


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    monkeypatch.setenv("LOG_CONSOLE_ENABLED", "false")
    monkeypatch.setenv("SHRINK_POOL_SIZE", "1")
    monkeypatch.delenv("SHRINK_ENGINE", raising=False)


def test_compress_writes_outputs(tmp_path):
    documents = {}
    for name in ("one.pdf", "two.pdf"):
        data = b"%PDF-1.7 " + name.encode() * 50
        (tmp_path / name).write_bytes(data)
        documents[name] = data
    out = tmp_path / "out"

    result = runner.invoke(app, [
        "compress",
        str(tmp_path / "one.pdf"),
        str(tmp_path / "two.pdf"),
        "--out", str(out),
        "--workers", "2",
    ])

    assert result.exit_code == 0, result.output
    assert "Processing 2 file(s) with 2 workers..." in result.output
    assert "Completed! 2/2 files processed successfully." in result.output
    for name, data in documents.items():
        assert zlib.decompress((out / f"compressed_{name}").read_bytes()) == (
            data)


def test_compress_with_engine_option(tmp_path):
    source = tmp_path / "same.pdf"
    source.write_bytes(b"%PDF-identity")

    result = runner.invoke(app, [
        "compress", str(source),
        "--engine", "shrink_pool.engines:IdentityEngine",
    ])

    assert result.exit_code == 0, result.output
    assert "ok       same.pdf" in result.output
    assert (tmp_path / "compressed_same.pdf").read_bytes() == (
        b"%PDF-identity")


def test_compress_rejects_non_pdf_inputs(tmp_path):
    source = tmp_path / "notes.txt"
    source.write_text("hello")

    result = runner.invoke(app, ["compress", str(source)])

    assert result.exit_code == 2
    assert "Please upload PDF files only" in result.output


def test_compress_reports_init_failure(tmp_path):
    source = tmp_path / "doc.pdf"
    source.write_bytes(b"%PDF-1.7")

    result = runner.invoke(app, [
        "compress", str(source),
        "--engine", "test_cli:_BrokenInitEngine",
    ])

    assert result.exit_code == 1
    assert "Worker initialization failed" in result.output
    assert "native library missing" in result.output
    assert not (tmp_path / "compressed_doc.pdf").exists()


def test_compress_rejects_unknown_engine(tmp_path):
    source = tmp_path / "doc.pdf"
    source.write_bytes(b"%PDF-1.7")

    result = runner.invoke(app, [
        "compress", str(source),
        "--engine", "shrink_pool.engines:NoSuchEngine",
    ])

    assert result.exit_code == 2
    assert "Invalid engine" in result.output
