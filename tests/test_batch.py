from concurrent.futures import Future

import pytest

from shrink_pool import (
    FileStatus,
    IdentityEngine,
    NoEligibleFilesError,
    PoolConfig,
    TaskError,
    WorkerPool,
    compress_files,
    is_pdf_bytes,
)
from shrink_pool.batch import format_bytes, output_path_for
from shrink_pool.core import CompressResult


class _HalvingPool:
    pool_size = 2

    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.failing = failing
        self.submitted: list[str] = []

    def submit(self, data: bytes, filename: str, *,
               timeout_s: float | None = None) -> Future:
        self.submitted.append(filename)
        future: Future = Future()
        if filename in self.failing:
            future.set_exception(TaskError("Can not shrink"))
            return future
        half = data[:len(data) // 2]
        future.set_result(CompressResult(
            original_size=len(data),
            compressed_size=len(half),
            data=half,
            task_id=filename,
            filename=filename,
            slot_index=0,
        ))
        return future


def _write(tmp_path, name: str, data: bytes = b"%PDF-1.7 body....") -> str:
    path = tmp_path / name
    path.write_bytes(data)
    return str(path)


def test_batch_reports_partial_success(tmp_path):
    paths = [_write(tmp_path, "a.pdf"), _write(tmp_path, "b.pdf"),
             _write(tmp_path, "c.PDF")]
    pool = _HalvingPool(failing=("b.pdf",))

    report = compress_files(pool, paths)  # type: ignore[arg-type]

    assert pool.submitted == ["a.pdf", "b.pdf", "c.PDF"]
    assert report.total == 3
    assert report.success_count == 2
    assert report.failure_count == 1
    assert report.message == "Completed! 2/3 files processed successfully."

    a, b, c = report.outcomes
    assert a.status is FileStatus.COMPLETED
    assert a.output_path == tmp_path / "compressed_a.pdf"
    assert a.output_path.read_bytes() == b"%PDF-1.7"
    assert a.compression_ratio == "52.94"
    assert b.status is FileStatus.ERROR
    assert b.error == "Can not shrink"
    assert not (tmp_path / "compressed_b.pdf").exists()
    assert c.status is FileStatus.COMPLETED


def test_batch_skips_other_files_and_writes_to_output_dir(tmp_path):
    out = tmp_path / "out"
    paths = [_write(tmp_path, "notes.txt", b"plain"),
             _write(tmp_path, "doc.pdf")]

    report = compress_files(_HalvingPool(), paths,  # type: ignore[arg-type]
                            output_dir=out)

    assert report.skipped == [paths[0]]
    assert report.total == 1
    assert (out / "compressed_doc.pdf").exists()


def test_batch_rejects_pdf_named_file_without_pdf_header(tmp_path):
    paths = [_write(tmp_path, "fake.pdf", b"\x89PNG\r\n\x1a\n image"),
             _write(tmp_path, "real.pdf")]
    pool = _HalvingPool()

    report = compress_files(pool, paths)  # type: ignore[arg-type]

    assert pool.submitted == ["real.pdf"]
    fake, real = report.outcomes
    assert fake.status is FileStatus.ERROR
    assert fake.error == "Please upload PDF files only"
    assert not (tmp_path / "compressed_fake.pdf").exists()
    assert real.status is FileStatus.COMPLETED
    assert report.message == "Completed! 1/2 files processed successfully."


def test_batch_without_eligible_files(tmp_path):
    with pytest.raises(NoEligibleFilesError,
                       match="Please upload PDF files only"):
        compress_files(_HalvingPool(),  # type: ignore[arg-type]
                       [_write(tmp_path, "image.png", b"\x89PNG")])


def test_unreadable_file_is_a_per_file_error(tmp_path):
    missing = str(tmp_path / "gone.pdf")
    present = _write(tmp_path, "here.pdf")
    report = compress_files(_HalvingPool(),  # type: ignore[arg-type]
                            [missing, present])
    assert report.outcomes[0].status is FileStatus.ERROR
    assert report.success_count == 1


def test_batch_on_real_pool(tmp_path):
    paths = [_write(tmp_path, f"doc{index}.pdf",
                    b"%PDF-1.7 " + bytes([index]) * 64)
             for index in range(4)]
    pool = WorkerPool(IdentityEngine, config=PoolConfig(size=2))
    try:
        report = compress_files(pool, paths)
    finally:
        pool.close()

    assert report.success_count == 4
    for index, outcome in enumerate(report.outcomes):
        assert outcome.output_path.read_bytes() == (
            b"%PDF-1.7 " + bytes([index]) * 64)
        assert outcome.compression_ratio == "0.00"


def test_is_pdf_bytes():
    assert is_pdf_bytes(b"%PDF-1.4\n...")
    assert is_pdf_bytes(b"\n\n%PDF-2.0")
    assert not is_pdf_bytes(b"PK\x03\x04")
    assert not is_pdf_bytes(b"")


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
    ],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_output_path_for(tmp_path):
    source = tmp_path / "in" / "x.pdf"
    assert output_path_for(source, None) == tmp_path / "in" / "compressed_x.pdf"
    assert output_path_for(source, tmp_path) == tmp_path / "compressed_x.pdf"
