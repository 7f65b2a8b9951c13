"""
external-sqlite-importer — reconciliation hooks.

File: src/external_sqlite_importer/deployment/hooks.py

Purpose
- Extension points called when a replacement payload is present during a
  migration. Both default to no-ops; hosts subclass and override one or both.

Functional requirements
- ``live`` is a read-only handle on the local store: it already reflects the
  update script, if any, and still carries the old version stamp.
- ``external`` is a read-only handle on the payload, opened in place.
- Both handles are closed by the orchestrator after the hook returns or raises.
  Hooks must not keep references to them.
- Hooks must not call ``ensure_deployed`` for the same store: the per-store
  lock is not reentrant.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from external_sqlite_importer.persistence.sqlite_store import StoreHandle


class ReconciliationHooks:
    def on_upgrade_externally(
        self,
        live: StoreHandle,
        external: StoreHandle,
        external_path: Path,
        from_version: int,
        to_version: int,
    ) -> None:
        """Called when the external source declares a newer version."""

    def on_downgrade_externally(
        self,
        live: StoreHandle,
        external: StoreHandle,
        external_path: Path,
        from_version: int,
        to_version: int,
    ) -> None:
        """Called when the external source declares an older version."""


__all__ = ["ReconciliationHooks"]
