"""
external-sqlite-importer — SQLite store engine.

File: src/external_sqlite_importer/persistence/sqlite_store.py

Purpose
- The store-engine contract consumed by the deployment orchestrator
  (open/close, get/set version, begin/commit/rollback, execute) and its SQLite
  implementation.

What should be included in this file
- ``StoreEngine`` / ``StoreHandle`` protocols so the orchestrator composes an
  engine instead of extending one.
- Read-only opens that never create files, bounded busy retries, and actionable
  error classification (busy vs. corruption vs. other).
- Statement splitting so multi-statement scripts run inside the caller's
  transaction.

Functional requirements
- ``PRAGMA user_version`` is the persisted store version.
- ``execute`` must never commit on its own.

Non-functional requirements
- Standard library ``sqlite3`` only; handles are short-lived.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Final, Literal, NoReturn, Protocol

from external_sqlite_importer.constants import MAX_STORE_VERSION, MIN_STORE_VERSION

OpenMode = Literal["readonly", "readwrite"]
READ_ONLY: Final[OpenMode] = "readonly"
READ_WRITE: Final[OpenMode] = "readwrite"
OPEN_MODES: Final[tuple[OpenMode, ...]] = (READ_ONLY, READ_WRITE)

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRY_LIMIT: Final[int] = 4
DEFAULT_BUSY_RETRY_BACKOFF_MS: Final[int] = 25

_SQLITE_BUSY_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_BUSY", None),
        getattr(sqlite3, "SQLITE_BUSY_RECOVERY", None),
        getattr(sqlite3, "SQLITE_BUSY_SNAPSHOT", None),
        getattr(sqlite3, "SQLITE_LOCKED", None),
        getattr(sqlite3, "SQLITE_LOCKED_SHAREDCACHE", None),
    )
    if isinstance(code, int)
)

_SQLITE_CORRUPTION_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_CORRUPT", None),
        getattr(sqlite3, "SQLITE_NOTADB", None),
    )
    if isinstance(code, int)
)

_BUSY_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database is locked",
    "database table is locked",
    "database schema is locked",
)

_CORRUPTION_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database disk image is malformed",
    "malformed database",
    "file is not a database",
)


class StoreError(RuntimeError):
    """Base class for store engine errors."""


class StoreBusyError(StoreError):
    """Raised when bounded busy retries are exhausted."""


class StoreCorruptionError(StoreError):
    """Raised when SQLite reports the file is corrupt or not a database."""


class StoreHandle(Protocol):
    """An open connection to one store file."""

    @property
    def path(self) -> Path: ...

    @property
    def mode(self) -> OpenMode: ...

    def close(self) -> None: ...

    def get_version(self) -> int: ...

    def set_version(self, version: int) -> None: ...

    def begin_transaction(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def execute(self, statement_text: str) -> None: ...


class StoreEngine(Protocol):
    """Opens store handles; the only engine surface the orchestrator relies on."""

    def open(self, path: Path, mode: OpenMode) -> StoreHandle: ...


@contextmanager
def opened(engine: StoreEngine, path: Path, mode: OpenMode) -> Iterator[StoreHandle]:
    """Open a handle and close it on every exit path."""

    handle = engine.open(path, mode)
    try:
        yield handle
    finally:
        handle.close()


@contextmanager
def transaction(handle: StoreHandle) -> Iterator[StoreHandle]:
    """Commit when the block completes, roll back and re-raise otherwise."""

    handle.begin_transaction()
    try:
        yield handle
    except BaseException:
        handle.rollback()
        raise
    else:
        handle.commit()


def split_statements(script: str) -> tuple[str, ...]:
    """Split raw SQL text into complete statements.

    Boundaries come from ``sqlite3.complete_statement`` so semicolons inside
    string literals, comments and trigger bodies do not split a statement.
    A trailing statement without a terminating semicolon is kept; a trailing
    remainder made only of comments is dropped.
    """

    statements: list[str] = []
    buffer: list[str] = []
    for char in script:
        buffer.append(char)
        if char != ";":
            continue
        candidate = "".join(buffer)
        if sqlite3.complete_statement(candidate):
            stripped = candidate.strip()
            if stripped != ";":
                statements.append(stripped)
            buffer.clear()

    remainder = "".join(buffer).strip()
    if remainder and _has_sql_outside_comments(remainder):
        statements.append(remainder)
    return tuple(statements)


class SQLiteStoreHandle:
    """``StoreHandle`` over a ``sqlite3.Connection`` in explicit-transaction mode."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        path: Path,
        mode: OpenMode,
        busy_retry_limit: int,
        busy_retry_backoff_ms: int,
    ) -> None:
        self._conn = conn
        self._path = path
        self._mode = mode
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_ms = busy_retry_backoff_ms
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def mode(self) -> OpenMode:
        return self._mode

    @property
    def connection(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreError(f"handle for {self._path} is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_transaction(self) -> bool:
        return not self._closed and self._conn.in_transaction

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._conn.close()

    def get_version(self) -> int:
        row = self._execute("PRAGMA user_version", (), operation="read store version").fetchone()
        if row is None:
            raise StoreError(f"PRAGMA user_version returned no row for {self._path}")
        value = row[0]
        if not isinstance(value, int):
            raise StoreError(f"user_version for {self._path} must be an integer")
        return value

    def validate(self) -> None:
        """Force a header read so a non-database file fails now, not mid-pass."""

        self._execute("PRAGMA schema_version", (), operation="validate store header").fetchone()

    def set_version(self, version: int) -> None:
        if isinstance(version, bool) or not isinstance(version, int):
            raise TypeError(f"version must be an int, got {type(version).__name__}")
        if not MIN_STORE_VERSION <= version <= MAX_STORE_VERSION:
            raise ValueError(
                f"version must be between {MIN_STORE_VERSION} and {MAX_STORE_VERSION}, "
                f"got {version}"
            )
        # PRAGMA arguments cannot be bound as parameters.
        self._execute(f"PRAGMA user_version = {version:d}", (), operation="stamp store version")

    def begin_transaction(self) -> None:
        begin_sql = "BEGIN IMMEDIATE" if self._mode == READ_WRITE else "BEGIN"
        self._execute(begin_sql, (), operation="begin transaction")

    def commit(self) -> None:
        self._execute("COMMIT", (), operation="commit transaction")

    def rollback(self) -> None:
        if not self.in_transaction:
            return
        self._execute("ROLLBACK", (), operation="rollback transaction")

    def execute(self, statement_text: str) -> None:
        """Execute every statement of ``statement_text`` without committing."""

        for statement in split_statements(statement_text):
            self._execute(statement, (), operation="execute statement")

    def query_all(self, sql: str, params: SQLParams = ()) -> list[dict[str, RowValue]]:
        cursor = self._execute(sql, params, operation="query all")
        return [_row_to_dict(cursor, row) for row in cursor.fetchall()]

    def query_one(self, sql: str, params: SQLParams = ()) -> dict[str, RowValue] | None:
        cursor = self._execute(sql, params, operation="query one")
        row = cursor.fetchone()
        return None if row is None else _row_to_dict(cursor, row)

    def __enter__(self) -> SQLiteStoreHandle:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"SQLiteStoreHandle(path={str(self._path)!r}, mode={self._mode!r}, {state})"

    def _execute(self, sql: str, params: SQLParams, *, operation: str) -> sqlite3.Cursor:
        conn = self.connection
        for attempt in range(self._busy_retry_limit + 1):
            try:
                return conn.execute(sql, tuple(params))
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                if _is_busy_error(exc) and attempt < self._busy_retry_limit:
                    time.sleep((self._busy_retry_backoff_ms / 1000.0) * float(2**attempt))
                    continue
                _raise_actionable_error(
                    exc,
                    path=self._path,
                    operation=operation,
                    attempts=attempt + 1,
                )
        raise StoreBusyError(f"{operation} exhausted retries unexpectedly")


class SQLiteStoreEngine:
    """Opens ``SQLiteStoreHandle`` instances with consistent pragmas."""

    def __init__(
        self,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retry_limit: int = DEFAULT_BUSY_RETRY_LIMIT,
        busy_retry_backoff_ms: int = DEFAULT_BUSY_RETRY_BACKOFF_MS,
        write_ahead_logging: bool = False,
    ) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        if busy_retry_limit < 0:
            raise ValueError("busy_retry_limit must be >= 0")
        if busy_retry_backoff_ms < 0:
            raise ValueError("busy_retry_backoff_ms must be >= 0")

        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_ms = busy_retry_backoff_ms
        self._write_ahead_logging = write_ahead_logging

    @property
    def write_ahead_logging(self) -> bool:
        return self._write_ahead_logging

    def open(self, path: Path, mode: OpenMode) -> SQLiteStoreHandle:
        if mode not in OPEN_MODES:
            allowed = ", ".join(OPEN_MODES)
            raise ValueError(f"mode must be one of: {allowed}; got {mode!r}")

        resolved = Path(path).expanduser()
        try:
            if mode == READ_ONLY:
                # mode=ro never creates the file; a missing path fails here.
                conn = sqlite3.connect(
                    f"{resolved.resolve().as_uri()}?mode=ro",
                    uri=True,
                    timeout=self._busy_timeout_ms / 1000.0,
                    isolation_level=None,
                    check_same_thread=False,
                )
            else:
                resolved.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    resolved,
                    timeout=self._busy_timeout_ms / 1000.0,
                    isolation_level=None,
                    check_same_thread=False,
                )
        except sqlite3.Error as exc:
            _raise_actionable_error(exc, path=resolved, operation=f"open {mode}", attempts=1)

        handle = SQLiteStoreHandle(
            conn,
            path=resolved,
            mode=mode,
            busy_retry_limit=self._busy_retry_limit,
            busy_retry_backoff_ms=self._busy_retry_backoff_ms,
        )
        try:
            self._configure(handle)
        except BaseException:
            handle.close()
            raise
        return handle

    def _configure(self, handle: SQLiteStoreHandle) -> None:
        handle._execute(
            f"PRAGMA busy_timeout={self._busy_timeout_ms:d}", (), operation="configure busy_timeout"
        )
        if handle.mode != READ_WRITE:
            return
        wanted = "wal" if self._write_ahead_logging else "delete"
        row = handle._execute(
            f"PRAGMA journal_mode={wanted.upper()}", (), operation="configure journal_mode"
        ).fetchone()
        if row is None:
            raise StoreError(f"failed to configure journal_mode for {handle.path}")
        journal_mode = str(row[0]).lower()
        if journal_mode != wanted:
            raise StoreError(f"journal_mode must be {wanted!r}, got {journal_mode!r}")


def _has_sql_outside_comments(text: str) -> bool:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("--"):
            return True
    return False


def _row_to_dict(cursor: sqlite3.Cursor, row: Sequence[RowValue]) -> dict[str, RowValue]:
    names = [str(column[0]) for column in cursor.description or ()]
    return dict(zip(names, row, strict=True))


def _is_busy_error(exc: sqlite3.Error) -> bool:
    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int) and code in _SQLITE_BUSY_CODES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in _BUSY_SUBSTRINGS)


def _is_corruption_error(exc: sqlite3.Error) -> bool:
    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int) and code in _SQLITE_CORRUPTION_CODES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in _CORRUPTION_SUBSTRINGS)


def _raise_actionable_error(
    exc: sqlite3.Error,
    *,
    path: Path,
    operation: str,
    attempts: int,
) -> NoReturn:
    if _is_corruption_error(exc):
        raise StoreCorruptionError(
            f"{operation} failed for {path}: {exc}. The file is not a usable SQLite store."
        ) from exc
    if _is_busy_error(exc):
        raise StoreBusyError(
            f"{operation} hit SQLITE_BUSY for {path} after {attempts} attempt(s): {exc}"
        ) from exc
    raise StoreError(f"{operation} failed for {path}: {exc}") from exc


__all__ = [
    "DEFAULT_BUSY_RETRY_BACKOFF_MS",
    "DEFAULT_BUSY_RETRY_LIMIT",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "OPEN_MODES",
    "READ_ONLY",
    "READ_WRITE",
    "OpenMode",
    "RowValue",
    "SQLParams",
    "SQLValue",
    "SQLiteStoreEngine",
    "SQLiteStoreHandle",
    "StoreBusyError",
    "StoreCorruptionError",
    "StoreEngine",
    "StoreError",
    "StoreHandle",
    "opened",
    "split_statements",
    "transaction",
]
