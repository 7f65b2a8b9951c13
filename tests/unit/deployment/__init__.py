"""Shared builders for deployment tests: store files, source layouts, recorders."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from external_sqlite_importer.deployment.assets import DirectoryAssetStore
from external_sqlite_importer.deployment.hooks import ReconciliationHooks
from external_sqlite_importer.deployment.orchestrator import DeploymentOrchestrator
from external_sqlite_importer.deployment.scripts import script_file_name
from external_sqlite_importer.persistence.sqlite_store import (
    SQLiteStoreEngine,
    SQLiteStoreHandle,
    StoreHandle,
)

STORE_NAME: Final[str] = "catalog.db"


@dataclass(slots=True)
class RecordingLogger:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    levels: list[str] = field(default_factory=list)

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, kwargs)

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def find(self, event: str) -> list[dict[str, object]]:
        return [fields for name, fields in self.events if name == event]

    def _record(self, level: str, event: str, fields: dict[str, object]) -> None:
        self.levels.append(level)
        self.events.append((event, dict(fields)))


@dataclass(frozen=True, slots=True)
class HookCall:
    direction: str
    external_path: Path
    from_version: int
    to_version: int
    live_version: int
    live_labels: tuple[str, ...]
    external_labels: tuple[str, ...]


@dataclass(slots=True)
class RecordingHooks(ReconciliationHooks):
    """Records each dispatch along with what both handles showed at that moment."""

    calls: list[HookCall] = field(default_factory=list)
    handles: list[StoreHandle] = field(default_factory=list)
    fail_with: Exception | None = None

    def on_upgrade_externally(
        self,
        live: StoreHandle,
        external: StoreHandle,
        external_path: Path,
        from_version: int,
        to_version: int,
    ) -> None:
        self._record("upgrade", live, external, external_path, from_version, to_version)

    def on_downgrade_externally(
        self,
        live: StoreHandle,
        external: StoreHandle,
        external_path: Path,
        from_version: int,
        to_version: int,
    ) -> None:
        self._record("downgrade", live, external, external_path, from_version, to_version)

    def _record(
        self,
        direction: str,
        live: StoreHandle,
        external: StoreHandle,
        external_path: Path,
        from_version: int,
        to_version: int,
    ) -> None:
        self.handles.extend((live, external))
        self.calls.append(
            HookCall(
                direction=direction,
                external_path=external_path,
                from_version=from_version,
                to_version=to_version,
                live_version=live.get_version(),
                live_labels=_labels(live),
                external_labels=_labels(external),
            )
        )
        if self.fail_with is not None:
            raise self.fail_with


def _labels(handle: StoreHandle) -> tuple[str, ...]:
    assert isinstance(handle, SQLiteStoreHandle)
    rows = handle.query_all("SELECT label FROM items ORDER BY id")
    return tuple(str(row["label"]) for row in rows)


def make_store(path: Path, *, version: int, labels: Sequence[str] = ("alpha",)) -> Path:
    """Create a store file with an ``items`` table and the given user_version."""

    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT NOT NULL)")
        conn.executemany("INSERT INTO items (label) VALUES (?)", [(label,) for label in labels])
        conn.execute(f"PRAGMA user_version = {version:d}")
        conn.commit()
    finally:
        conn.close()
    return path


def read_version(path: Path) -> int:
    conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    try:
        return int(conn.execute("PRAGMA user_version").fetchone()[0])
    finally:
        conn.close()


def read_labels(path: Path) -> tuple[str, ...]:
    conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    try:
        rows = conn.execute("SELECT label FROM items ORDER BY id").fetchall()
    finally:
        conn.close()
    return tuple(str(row[0]) for row in rows)


def write_version_info(source_dir: Path, text: str | int) -> Path:
    source_dir.mkdir(parents=True, exist_ok=True)
    path = source_dir / "version.info"
    path.write_text(f"{text}\n", encoding="utf-8")
    return path


def write_script(source_dir: Path, version: int, text: str, *, name: str = STORE_NAME) -> Path:
    source_dir.mkdir(parents=True, exist_ok=True)
    path = source_dir / script_file_name(name, version)
    path.write_text(text, encoding="utf-8")
    return path


@dataclass(frozen=True, slots=True)
class Layout:
    """Directories of one deployment scenario under ``tmp_path``."""

    root: Path

    @property
    def source_dir(self) -> Path:
        return self.root / "external"

    @property
    def databases_dir(self) -> Path:
        return self.root / "app" / "databases"

    @property
    def assets_dir(self) -> Path:
        return self.root / "assets"

    @property
    def destination(self) -> Path:
        return self.databases_dir / STORE_NAME

    @property
    def payload(self) -> Path:
        return self.source_dir / STORE_NAME

    @property
    def bundled_payload(self) -> Path:
        return self.assets_dir / "databases" / STORE_NAME


def make_orchestrator(
    layout: Layout,
    *,
    hooks: ReconciliationHooks | None = None,
    logger: RecordingLogger | None = None,
    **kwargs: object,
) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(
        store_name=STORE_NAME,
        destination=layout.destination,
        source_dir=layout.source_dir,
        engine=SQLiteStoreEngine(busy_retry_limit=0),
        asset_store=DirectoryAssetStore(layout.assets_dir),
        hooks=hooks,
        logger=logger if logger is not None else RecordingLogger(),
        **kwargs,  # type: ignore[arg-type]
    )
