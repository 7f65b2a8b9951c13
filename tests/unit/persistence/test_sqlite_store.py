"""SQLite store engine: open modes, versioning, transactions, statement splitting."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest

from external_sqlite_importer.persistence.sqlite_store import (
    READ_ONLY,
    READ_WRITE,
    SQLiteStoreEngine,
    StoreCorruptionError,
    StoreError,
    opened,
    split_statements,
    transaction,
)

from . import count_rows, create_items_store

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def engine() -> SQLiteStoreEngine:
    return SQLiteStoreEngine(busy_timeout_ms=1_000, busy_retry_limit=0)


def test_read_only_open_of_missing_file_fails_without_creating_it(
    tmp_path: Path, engine: SQLiteStoreEngine
) -> None:
    target = tmp_path / "absent.db"

    with pytest.raises(StoreError):
        engine.open(target, READ_ONLY)

    assert not target.exists()


def test_read_write_open_creates_parent_and_file(
    tmp_path: Path, engine: SQLiteStoreEngine
) -> None:
    target = tmp_path / "nested" / "store.db"

    with engine.open(target, READ_WRITE) as handle:
        assert handle.get_version() == 0

    assert target.exists()


def test_version_round_trip(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    path = create_items_store(tmp_path / "store.db", version=1)

    with opened(engine, path, READ_WRITE) as handle, transaction(handle):
        handle.set_version(9)

    with opened(engine, path, READ_ONLY) as handle:
        assert handle.get_version() == 9


@pytest.mark.parametrize("bad", [0, -1, 2**31, 3_000_000_000])
def test_set_version_rejects_out_of_range(
    tmp_path: Path, engine: SQLiteStoreEngine, bad: int
) -> None:
    path = create_items_store(tmp_path / "store.db")
    with opened(engine, path, READ_WRITE) as handle, pytest.raises(ValueError):
        handle.set_version(bad)


def test_set_version_accepts_largest_signed_32_bit_value(
    tmp_path: Path, engine: SQLiteStoreEngine
) -> None:
    path = create_items_store(tmp_path / "store.db")

    with opened(engine, path, READ_WRITE) as handle, transaction(handle):
        handle.set_version(2**31 - 1)

    with opened(engine, path, READ_ONLY) as handle:
        assert handle.get_version() == 2**31 - 1


def test_set_version_rejects_bool(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    path = create_items_store(tmp_path / "store.db")
    with opened(engine, path, READ_WRITE) as handle, pytest.raises(TypeError):
        handle.set_version(True)


def test_read_only_handle_cannot_write(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    path = create_items_store(tmp_path / "store.db")

    with opened(engine, path, READ_ONLY) as handle, pytest.raises(StoreError):
        handle.execute("INSERT INTO items (label) VALUES ('x');")

    assert count_rows(path) == 1


def test_transaction_rolls_back_every_statement_on_error(
    tmp_path: Path, engine: SQLiteStoreEngine
) -> None:
    path = create_items_store(tmp_path / "store.db", rows=2)

    with opened(engine, path, READ_WRITE) as handle:
        with pytest.raises(StoreError), transaction(handle):
            handle.execute(
                "INSERT INTO items (label) VALUES ('a');\n"
                "INSERT INTO items (label) VALUES ('b');\n"
                "INSERT INTO nowhere VALUES (1);\n"
            )
        assert not handle.in_transaction

    assert count_rows(path) == 2


def test_execute_does_not_commit_on_its_own(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    path = create_items_store(tmp_path / "store.db", rows=0)

    with opened(engine, path, READ_WRITE) as handle:
        handle.begin_transaction()
        handle.execute(
            "INSERT INTO items (label) VALUES ('a'); INSERT INTO items (label) VALUES ('b');"
        )
        handle.rollback()

    assert count_rows(path) == 0


def test_garbage_file_is_reported_as_corruption(
    tmp_path: Path, engine: SQLiteStoreEngine
) -> None:
    path = tmp_path / "garbage.db"
    path.write_bytes(b"definitely not sqlite " * 100)

    with pytest.raises(StoreCorruptionError):
        with opened(engine, path, READ_ONLY) as handle:
            handle.validate()


def test_query_helpers_return_dict_rows(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    path = create_items_store(tmp_path / "store.db", rows=2)

    with opened(engine, path, READ_ONLY) as handle:
        assert handle.query_all("SELECT id, label FROM items ORDER BY id") == [
            {"id": 1, "label": "row-0"},
            {"id": 2, "label": "row-1"},
        ]
        assert handle.query_one("SELECT label FROM items WHERE id = ?", (2,)) == {
            "label": "row-1"
        }
        assert handle.query_one("SELECT label FROM items WHERE id = ?", (99,)) is None


def test_closed_handle_refuses_work(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    path = create_items_store(tmp_path / "store.db")
    handle = engine.open(path, READ_ONLY)
    handle.close()
    handle.close()

    assert handle.closed
    with pytest.raises(StoreError, match="closed"):
        handle.get_version()


def test_write_ahead_logging_is_applied_on_read_write_opens(tmp_path: Path) -> None:
    path = create_items_store(tmp_path / "store.db")
    wal_engine = SQLiteStoreEngine(write_ahead_logging=True)

    with opened(wal_engine, path, READ_WRITE) as handle:
        assert handle.query_one("PRAGMA journal_mode") == {"journal_mode": "wal"}


@pytest.mark.parametrize(
    "kwargs",
    [{"busy_timeout_ms": -1}, {"busy_retry_limit": -1}, {"busy_retry_backoff_ms": -5}],
)
def test_engine_rejects_negative_settings(kwargs: dict[str, int]) -> None:
    with pytest.raises(ValueError):
        SQLiteStoreEngine(**kwargs)


def test_engine_rejects_unknown_mode(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    with pytest.raises(ValueError, match="mode"):
        engine.open(tmp_path / "store.db", "append")  # type: ignore[arg-type]


# --- statement splitting -----------------------------------------------------


def test_split_keeps_semicolons_inside_literals() -> None:
    script = "INSERT INTO t VALUES ('a;b');\nINSERT INTO t VALUES (\"c;d\");"

    assert split_statements(script) == (
        "INSERT INTO t VALUES ('a;b');",
        'INSERT INTO t VALUES ("c;d");',
    )


def test_split_keeps_trigger_bodies_whole() -> None:
    script = (
        "CREATE TRIGGER t_ai AFTER INSERT ON t BEGIN\n"
        "  UPDATE t SET n = n + 1;\n"
        "  DELETE FROM u;\n"
        "END;\n"
        "SELECT 1;"
    )

    statements = split_statements(script)

    assert len(statements) == 2
    assert statements[0].startswith("CREATE TRIGGER")
    assert statements[0].endswith("END;")
    assert statements[1] == "SELECT 1;"


def test_split_keeps_unterminated_tail_and_drops_comment_tail() -> None:
    assert split_statements("SELECT 1;\nSELECT 2") == ("SELECT 1;", "SELECT 2")
    assert split_statements("SELECT 1;\n-- trailing note\n") == ("SELECT 1;",)
    assert split_statements(";;  ;") == ()
    assert split_statements("") == ()


def test_trigger_script_executes_through_handle(
    tmp_path: Path, engine: SQLiteStoreEngine
) -> None:
    path = create_items_store(tmp_path / "store.db", rows=0)

    with opened(engine, path, READ_WRITE) as handle, transaction(handle):
        handle.execute(
            "CREATE TABLE audit (n INTEGER);\n"
            "CREATE TRIGGER items_ai AFTER INSERT ON items BEGIN\n"
            "  INSERT INTO audit VALUES (NEW.id);\n"
            "END;\n"
            "INSERT INTO items (label) VALUES ('x');\n"
        )

    assert count_rows(path, "audit") == 1


def test_integrity_errors_surface_unchanged(tmp_path: Path, engine: SQLiteStoreEngine) -> None:
    path = create_items_store(tmp_path / "store.db")

    with opened(engine, path, READ_WRITE) as handle, pytest.raises(sqlite3.IntegrityError):
        handle.execute("INSERT INTO items (id, label) VALUES (1, 'dup');")
