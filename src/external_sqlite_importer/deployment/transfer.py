"""
external-sqlite-importer — store payload transfer.

File: src/external_sqlite_importer/deployment/transfer.py

Purpose
- Copy a store payload byte-for-byte onto its destination path.

Functional requirements
- The destination is either byte-identical to the source or absent: bytes are
  streamed into a temp file in the destination directory, fsynced and moved into
  place with ``os.replace``.
- Both streams are closed on every path, destination first.

Non-functional requirements
- Standard library only.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from external_sqlite_importer.constants import DEFAULT_COPY_CHUNK_BYTES
from external_sqlite_importer.errors import TransferFailedError

if TYPE_CHECKING:
    from collections.abc import Callable


def copy_stream(
    source: BinaryIO,
    destination: Path,
    *,
    chunk_size: int = DEFAULT_COPY_CHUNK_BYTES,
) -> int:
    """
    Stream ``source`` into ``destination`` and return the number of bytes copied.

    ``source`` is consumed and closed. Any failure removes the partial temp file
    and raises ``TransferFailedError``; an existing destination is left as it was.
    """

    if chunk_size < 1:
        source.close()
        raise ValueError("chunk_size must be >= 1")

    target = Path(destination)
    with contextlib.ExitStack() as stack:
        # Callbacks unwind in reverse: the temp file closes before the source.
        stack.callback(source.close)
        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{target.name}.",
                suffix=".tmp",
                dir=str(target.parent),
            )
        except OSError as exc:
            raise TransferFailedError(target, f"cannot create temp file: {exc}") from exc

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as sink:
                copied = _pump(source.read, sink.write, chunk_size)
                sink.flush()
                os.fsync(sink.fileno())
            os.replace(temp_path, target)
        except OSError as exc:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise TransferFailedError(target, str(exc)) from exc
        except BaseException:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise

    _fsync_directory(target.parent)
    return copied


def copy_file(
    source_path: Path,
    destination: Path,
    *,
    chunk_size: int = DEFAULT_COPY_CHUNK_BYTES,
) -> int:
    try:
        source = Path(source_path).open("rb")
    except OSError as exc:
        raise TransferFailedError(Path(destination), f"cannot open {source_path}: {exc}") from exc
    return copy_stream(source, destination, chunk_size=chunk_size)


def _pump(
    read: Callable[[int], bytes],
    write: Callable[[bytes], object],
    chunk_size: int,
) -> int:
    total = 0
    while True:
        chunk = read(chunk_size)
        if not chunk:
            return total
        write(chunk)
        total += len(chunk)


def _fsync_directory(path: Path) -> None:
    """Best-effort directory fsync so the rename itself is durable."""

    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)


__all__ = ["copy_file", "copy_stream"]
