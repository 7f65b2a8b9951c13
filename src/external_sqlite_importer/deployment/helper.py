"""
external-sqlite-importer — host-facing store helper.

File: src/external_sqlite_importer/deployment/helper.py

Purpose
- The object a host application keeps per external store. Every request for
  a readable or writable handle first runs a deployment pass, so callers
  always see a store at the externally declared version.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from external_sqlite_importer.constants import DEFAULT_COPY_CHUNK_BYTES
from external_sqlite_importer.deployment.assets import DirectoryAssetStore, EmptyAssetStore
from external_sqlite_importer.deployment.orchestrator import (
    DeploymentOrchestrator,
    validate_store_name,
)
from external_sqlite_importer.persistence.sqlite_store import (
    READ_ONLY,
    READ_WRITE,
    SQLiteStoreEngine,
)

if TYPE_CHECKING:
    from external_sqlite_importer.deployment.access import SourceAccessPolicy
    from external_sqlite_importer.deployment.assets import AssetStore
    from external_sqlite_importer.deployment.hooks import ReconciliationHooks
    from external_sqlite_importer.deployment.outcome import DeploymentOutcome, DeploymentPlan
    from external_sqlite_importer.observability.metrics import DeploymentMetrics
    from external_sqlite_importer.persistence.sqlite_store import OpenMode, SQLiteStoreHandle


class ExternalSQLiteHelper:
    """
    Hands out SQLite handles on a store provisioned from an external source.

    The store lives at ``databases_dir / store_name``. Handles returned by
    ``readable``/``writable`` stay open until the caller closes them or
    ``close`` is called on the helper.
    """

    def __init__(
        self,
        *,
        store_name: str,
        source_dir: Path,
        databases_dir: Path,
        asset_store: AssetStore | None = None,
        hooks: ReconciliationHooks | None = None,
        engine: SQLiteStoreEngine | None = None,
        access_policy: SourceAccessPolicy | None = None,
        chunk_size: int = DEFAULT_COPY_CHUNK_BYTES,
        metrics: DeploymentMetrics | None = None,
        logger: Any | None = None,
    ) -> None:
        self._store_name = validate_store_name(store_name)
        self._database_path = Path(databases_dir) / self._store_name
        self._engine = engine if engine is not None else SQLiteStoreEngine()
        self._orchestrator = DeploymentOrchestrator(
            store_name=self._store_name,
            destination=self._database_path,
            source_dir=Path(source_dir),
            engine=self._engine,
            asset_store=asset_store if asset_store is not None else EmptyAssetStore(),
            hooks=hooks,
            access_policy=access_policy,
            chunk_size=chunk_size,
            metrics=metrics,
            logger=logger,
        )
        self._handles_lock = threading.Lock()
        self._handles: list[SQLiteStoreHandle] = []
        self._last_outcome: DeploymentOutcome | None = None

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        hooks: ReconciliationHooks | None = None,
        asset_store: AssetStore | None = None,
        access_policy: SourceAccessPolicy | None = None,
        metrics: DeploymentMetrics | None = None,
        logger: Any | None = None,
    ) -> ExternalSQLiteHelper:
        """Build a helper from a validated config (see ``config.load_config``)."""

        store = config["store"]
        paths = config["paths"]
        if "name" not in store:
            raise ValueError("store.name is required to build a helper")
        engine = SQLiteStoreEngine(
            busy_timeout_ms=store["busy_timeout_ms"],
            busy_retry_limit=store["busy_retry_limit"],
            busy_retry_backoff_ms=store["busy_retry_backoff_ms"],
            write_ahead_logging=store["write_ahead_logging"],
        )
        return cls(
            store_name=store["name"],
            source_dir=Path(paths["source_dir"]),
            databases_dir=Path(paths["databases_dir"]),
            asset_store=(
                asset_store
                if asset_store is not None
                else DirectoryAssetStore(Path(paths["assets_dir"]))
            ),
            hooks=hooks,
            engine=engine,
            access_policy=access_policy,
            chunk_size=config["transfer"]["chunk_size_bytes"],
            metrics=metrics,
            logger=logger,
        )

    @property
    def database_name(self) -> str:
        return self._store_name

    @property
    def database_path(self) -> Path:
        return self._database_path

    @property
    def orchestrator(self) -> DeploymentOrchestrator:
        return self._orchestrator

    @property
    def write_ahead_logging(self) -> bool:
        return self._engine.write_ahead_logging

    @property
    def last_outcome(self) -> DeploymentOutcome | None:
        """Outcome of the most recent deployment pass run by this helper."""
        return self._last_outcome

    def readable(self) -> SQLiteStoreHandle:
        return self._open(READ_ONLY)

    def writable(self) -> SQLiteStoreHandle:
        return self._open(READ_WRITE)

    def plan(self) -> DeploymentPlan:
        return self._orchestrator.plan()

    def close(self) -> None:
        """Close every handle this helper handed out."""

        with self._handles_lock:
            handles = list(self._handles)
            self._handles.clear()
        for handle in handles:
            handle.close()

    def __enter__(self) -> ExternalSQLiteHelper:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close()

    def _open(self, mode: OpenMode) -> SQLiteStoreHandle:
        self._last_outcome = self._orchestrator.ensure_deployed()
        handle = self._engine.open(self._database_path, mode)
        with self._handles_lock:
            self._handles = [item for item in self._handles if not item.closed]
            self._handles.append(handle)
        return handle


__all__ = ["ExternalSQLiteHelper"]
