"""Byte transfer: atomic replacement, cleanup, and stream closing order."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from external_sqlite_importer.deployment.transfer import copy_file, copy_stream
from external_sqlite_importer.errors import TransferFailedError

if TYPE_CHECKING:
    from pathlib import Path


class _TrackedStream(io.BytesIO):
    def __init__(self, data: bytes, journal: list[str], *, fail_after: int | None = None) -> None:
        super().__init__(data)
        self._journal = journal
        self._fail_after = fail_after
        self._reads = 0

    def read(self, size: int | None = -1) -> bytes:
        if self._fail_after is not None and self._reads >= self._fail_after:
            raise OSError("simulated read failure")
        self._reads += 1
        return super().read(size)

    def close(self) -> None:
        if not self.closed:
            self._journal.append("source")
        super().close()


def test_copy_stream_produces_identical_bytes(tmp_path: Path) -> None:
    data = bytes(range(256)) * 100
    destination = tmp_path / "store.db"
    source = io.BytesIO(data)

    copied = copy_stream(source, destination, chunk_size=1000)

    assert copied == len(data)
    assert destination.read_bytes() == data
    assert source.closed


def test_copy_replaces_existing_destination(tmp_path: Path) -> None:
    destination = tmp_path / "store.db"
    destination.write_bytes(b"old contents")

    copy_stream(io.BytesIO(b"new"), destination)

    assert destination.read_bytes() == b"new"


def test_failed_copy_leaves_no_partial_file(tmp_path: Path) -> None:
    destination = tmp_path / "store.db"
    journal: list[str] = []
    source = _TrackedStream(b"x" * 10_000, journal, fail_after=2)

    with pytest.raises(TransferFailedError) as excinfo:
        copy_stream(source, destination, chunk_size=1024)

    assert isinstance(excinfo.value.__cause__, OSError)
    assert not destination.exists()
    assert list(tmp_path.iterdir()) == []
    assert source.closed


def test_failed_copy_keeps_previous_destination(tmp_path: Path) -> None:
    destination = tmp_path / "store.db"
    destination.write_bytes(b"previous")
    source = _TrackedStream(b"y" * 4096, [], fail_after=1)

    with pytest.raises(TransferFailedError):
        copy_stream(source, destination, chunk_size=512)

    assert destination.read_bytes() == b"previous"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["store.db"]


def test_missing_destination_directory_fails_and_closes_source(tmp_path: Path) -> None:
    journal: list[str] = []
    source = _TrackedStream(b"data", journal)

    with pytest.raises(TransferFailedError):
        copy_stream(source, tmp_path / "missing" / "store.db")

    assert journal == ["source"]


def test_copy_file_from_missing_source_raises(tmp_path: Path) -> None:
    with pytest.raises(TransferFailedError):
        copy_file(tmp_path / "absent.db", tmp_path / "store.db")
    assert not (tmp_path / "store.db").exists()


def test_invalid_chunk_size_is_rejected(tmp_path: Path) -> None:
    source = io.BytesIO(b"abc")
    with pytest.raises(ValueError, match="chunk_size"):
        copy_stream(source, tmp_path / "store.db", chunk_size=0)
    assert source.closed


@settings(
    max_examples=25,
    derandomize=True,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(data=st.binary(max_size=4096), chunk_size=st.integers(min_value=1, max_value=700))
def test_copy_file_is_byte_identical_for_any_chunking(
    tmp_path: Path, data: bytes, chunk_size: int
) -> None:
    source_path = tmp_path / "payload.bin"
    source_path.write_bytes(data)
    destination = tmp_path / "copy.bin"

    assert copy_file(source_path, destination, chunk_size=chunk_size) == len(data)
    assert destination.read_bytes() == data
