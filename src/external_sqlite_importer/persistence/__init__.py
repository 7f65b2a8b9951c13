"""
external-sqlite-importer — persistence package.

File: src/external_sqlite_importer/persistence/__init__.py

Purpose
- Store-engine contract and the SQLite engine the deployment layer opens
  live stores and replacement payloads with.
"""

from external_sqlite_importer.persistence.sqlite_store import (
    OPEN_MODES,
    READ_ONLY,
    READ_WRITE,
    OpenMode,
    SQLiteStoreEngine,
    SQLiteStoreHandle,
    StoreBusyError,
    StoreCorruptionError,
    StoreEngine,
    StoreError,
    StoreHandle,
    opened,
    split_statements,
    transaction,
)

__all__ = [
    "OPEN_MODES",
    "READ_ONLY",
    "READ_WRITE",
    "OpenMode",
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
