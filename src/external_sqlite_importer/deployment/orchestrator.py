"""
external-sqlite-importer — deployment orchestrator.

File: src/external_sqlite_importer/deployment/orchestrator.py

Purpose
- Decide, on every access request, whether the local store must be freshly
  installed, left alone, or migrated to the version declared by the external
  source, and carry that decision out.

What should be included in this file
- ``DeploymentOrchestrator.ensure_deployed`` (the state machine) and
  ``DeploymentOrchestrator.plan`` (the same decisions without side effects).

Functional requirements
- Fresh install never opens a store handle on the destination before the
  payload has been copied into place.
- Migration runs script, then reconciliation hook, then version stamp. Script
  and stamp each run in their own transaction; a failure stops the pass, so the
  stamp is never written unless everything before it succeeded. The next call
  re-attempts the whole migration.
- Every pass for one store name runs under that store's non-reentrant lock.

Non-functional requirements
- Decision events are structlog events with stable names so tests and log
  pipelines can assert on them.
"""

from __future__ import annotations

import sqlite3
import time
import uuid
from contextlib import ExitStack
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from external_sqlite_importer.constants import DEFAULT_COPY_CHUNK_BYTES
from external_sqlite_importer.deployment.access import FilesystemAccessPolicy
from external_sqlite_importer.deployment.hooks import ReconciliationHooks
from external_sqlite_importer.deployment.locks import store_lock
from external_sqlite_importer.deployment.outcome import (
    FRESH_INSTALLED,
    NOT_NEEDED,
    DeploymentOutcome,
    DeploymentPlan,
    HookDirection,
    PlannedAction,
)
from external_sqlite_importer.deployment.scripts import (
    locate_update_script,
    update_script_path,
)
from external_sqlite_importer.deployment.transfer import copy_file, copy_stream
from external_sqlite_importer.deployment.version import resolve_external_version
from external_sqlite_importer.errors import (
    AssetNotFoundError,
    CorruptExternalSourceError,
    ExternalStoreError,
    MigrationScriptFailedError,
    NoMigrationPathAvailableError,
    PayloadUnavailableError,
    PermissionDeniedError,
    TransferFailedError,
)
from external_sqlite_importer.observability.logging import correlation_scope
from external_sqlite_importer.persistence.sqlite_store import (
    READ_ONLY,
    READ_WRITE,
    StoreError,
    opened,
    transaction,
)

if TYPE_CHECKING:
    from external_sqlite_importer.deployment.access import SourceAccessPolicy
    from external_sqlite_importer.deployment.assets import AssetStore
    from external_sqlite_importer.observability.metrics import DeploymentMetrics
    from external_sqlite_importer.persistence.sqlite_store import StoreEngine


def validate_store_name(store_name: str) -> str:
    if not isinstance(store_name, str) or not store_name.strip():
        raise ValueError("store_name must be a non-empty string")
    if "/" in store_name or "\\" in store_name or store_name in {".", ".."}:
        raise ValueError(f"store_name must be a plain file name, got {store_name!r}")
    return store_name


class DeploymentOrchestrator:
    """
    Keeps one local store file in step with its external source.

    The orchestrator composes a ``StoreEngine`` rather than extending one: it
    only opens short-lived handles for the duration of each step.
    """

    def __init__(
        self,
        *,
        store_name: str,
        destination: Path,
        source_dir: Path,
        engine: StoreEngine,
        asset_store: AssetStore,
        hooks: ReconciliationHooks | None = None,
        access_policy: SourceAccessPolicy | None = None,
        chunk_size: int = DEFAULT_COPY_CHUNK_BYTES,
        metrics: DeploymentMetrics | None = None,
        logger: Any | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self._store_name = validate_store_name(store_name)
        self._destination = Path(destination)
        self._source_dir = Path(source_dir)
        self._engine = engine
        self._asset_store = asset_store
        self._hooks = hooks if hooks is not None else ReconciliationHooks()
        self._access_policy = (
            access_policy if access_policy is not None else FilesystemAccessPolicy()
        )
        self._chunk_size = chunk_size
        self._metrics = metrics
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def store_name(self) -> str:
        return self._store_name

    @property
    def destination(self) -> Path:
        return self._destination

    @property
    def source_dir(self) -> Path:
        return self._source_dir

    @property
    def payload_path(self) -> Path:
        """Replacement payload inside the source directory, named exactly like the store."""
        return self._source_dir / self._store_name

    def ensure_deployed(self) -> DeploymentOutcome:
        """Run one deployment pass and return what it did."""

        pass_id = uuid.uuid4().hex
        started = time.perf_counter()
        with store_lock(self._store_name), correlation_scope(
            store_name=self._store_name, pass_id=pass_id
        ):
            self._logger.info(
                "deployment_pass_started",
                store_name=self._store_name,
                destination=str(self._destination),
                source_dir=str(self._source_dir),
            )
            try:
                outcome = self._run_pass()
            except Exception as exc:
                self._logger.error(
                    "deployment_pass_failed",
                    store_name=self._store_name,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                if self._metrics is not None:
                    self._metrics.record_failure(
                        self._store_name, type(exc).__name__, time.perf_counter() - started
                    )
                raise

        if self._metrics is not None:
            self._metrics.record_outcome(
                self._store_name, outcome.kind.value, time.perf_counter() - started
            )
        return outcome

    def plan(self) -> DeploymentPlan:
        """Describe what ``ensure_deployed`` would do now, without changing anything."""

        with store_lock(self._store_name):
            payload_present = self.payload_path.is_file()
            destination_exists = self._destination.exists()
            decision = self._access_policy.check(self._source_dir)
            if not decision.allowed:
                return DeploymentPlan(
                    store_name=self._store_name,
                    action=PlannedAction.BLOCKED,
                    destination_exists=destination_exists,
                    payload_present=payload_present,
                    reason=f"access denied: {decision.reason}",
                )

            if not destination_exists:
                reason = None if payload_present else self._bundled_payload_problem()
                return DeploymentPlan(
                    store_name=self._store_name,
                    action=PlannedAction.BLOCKED if reason else PlannedAction.FRESH_INSTALL,
                    destination_exists=False,
                    payload_present=payload_present,
                    reason=reason,
                )

            try:
                current = self._read_current_version()
            except (StoreError, sqlite3.Error) as exc:
                return DeploymentPlan(
                    store_name=self._store_name,
                    action=PlannedAction.BLOCKED,
                    destination_exists=True,
                    payload_present=payload_present,
                    reason=f"cannot read local store version: {exc}",
                )

            try:
                external = resolve_external_version(
                    self._source_dir, current, logger=self._logger
                )
            except ExternalStoreError as exc:
                return DeploymentPlan(
                    store_name=self._store_name,
                    action=PlannedAction.BLOCKED,
                    destination_exists=True,
                    payload_present=payload_present,
                    current_version=current,
                    reason=str(exc),
                )

            if external == current:
                return DeploymentPlan(
                    store_name=self._store_name,
                    action=PlannedAction.UP_TO_DATE,
                    destination_exists=True,
                    payload_present=payload_present,
                    current_version=current,
                    external_version=external,
                )

            script_present = (
                locate_update_script(
                    self._source_dir, self._store_name, external, logger=self._logger
                )
                is not None
            )
            if not script_present and not payload_present:
                return DeploymentPlan(
                    store_name=self._store_name,
                    action=PlannedAction.BLOCKED,
                    destination_exists=True,
                    payload_present=False,
                    current_version=current,
                    external_version=external,
                    reason="no update script and no replacement payload",
                )
            return DeploymentPlan(
                store_name=self._store_name,
                action=PlannedAction.MIGRATE,
                destination_exists=True,
                payload_present=payload_present,
                current_version=current,
                external_version=external,
                script_present=script_present,
                hook=_direction(current, external) if payload_present else None,
            )

    def _run_pass(self) -> DeploymentOutcome:
        self._check_access()

        if not self._destination.exists():
            self._logger.info(
                "deployment_decision",
                store_name=self._store_name,
                action=PlannedAction.FRESH_INSTALL.value,
            )
            self._fresh_install()
            return FRESH_INSTALLED

        current = self._read_current_version()
        external = resolve_external_version(self._source_dir, current, logger=self._logger)
        if external == current:
            self._logger.info(
                "deployment_decision",
                store_name=self._store_name,
                action=PlannedAction.UP_TO_DATE.value,
                current_version=current,
            )
            return NOT_NEEDED
        return self._migrate(current, external)

    def _check_access(self) -> None:
        decision = self._access_policy.check(self._source_dir)
        if not decision.allowed:
            raise PermissionDeniedError(self._source_dir, decision.reason)

    def _read_current_version(self) -> int:
        with opened(self._engine, self._destination, READ_ONLY) as handle:
            return handle.get_version()

    def _fresh_install(self) -> None:
        try:
            self._destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TransferFailedError(self._destination, f"cannot create directory: {exc}") from exc

        if self.payload_path.is_file():
            origin = "external"
            copied = copy_file(self.payload_path, self._destination, chunk_size=self._chunk_size)
        else:
            origin = "bundled"
            try:
                stream = self._asset_store.open_payload(self._store_name)
            except AssetNotFoundError as exc:
                raise PayloadUnavailableError(
                    self._destination,
                    f"no payload in {self._source_dir} and no bundled asset: {exc}",
                ) from exc
            except OSError as exc:
                raise TransferFailedError(
                    self._destination, f"cannot open bundled payload: {exc}"
                ) from exc
            copied = copy_stream(stream, self._destination, chunk_size=self._chunk_size)

        self._logger.info(
            "store_payload_copied",
            store_name=self._store_name,
            origin=origin,
            bytes_copied=copied,
            destination=str(self._destination),
        )

    def _migrate(self, current: int, external: int) -> DeploymentOutcome:
        script = locate_update_script(
            self._source_dir, self._store_name, external, logger=self._logger
        )
        payload_present = self.payload_path.is_file()
        if script is None and not payload_present:
            raise NoMigrationPathAvailableError(self._store_name, current, external)

        self._logger.info(
            "deployment_decision",
            store_name=self._store_name,
            action=PlannedAction.MIGRATE.value,
            current_version=current,
            external_version=external,
            script_present=script is not None,
            payload_present=payload_present,
        )

        if script is not None:
            self._apply_script(script, external)
        if payload_present:
            self._reconcile(current, external)
        self._stamp(external)
        return DeploymentOutcome.migrated(current, external)

    def _apply_script(self, script: str, target_version: int) -> None:
        script_path = update_script_path(self._source_dir, self._store_name, target_version)
        with opened(self._engine, self._destination, READ_WRITE) as handle:
            try:
                with transaction(handle):
                    handle.execute(script)
            except (StoreError, sqlite3.Error) as exc:
                raise MigrationScriptFailedError(script_path, target_version, str(exc)) from exc

        self._logger.info(
            "update_script_applied",
            store_name=self._store_name,
            script=str(script_path),
            target_version=target_version,
        )

    def _reconcile(self, current: int, external: int) -> None:
        direction = _direction(current, external)
        payload = self.payload_path
        with ExitStack() as stack:
            live = stack.enter_context(opened(self._engine, self._destination, READ_ONLY))
            try:
                external_handle = stack.enter_context(opened(self._engine, payload, READ_ONLY))
                external_handle.get_version()
            except (StoreError, sqlite3.Error) as exc:
                raise CorruptExternalSourceError(payload, str(exc)) from exc

            self._logger.info(
                "reconciliation_hook_dispatched",
                store_name=self._store_name,
                direction=direction.value,
                from_version=current,
                to_version=external,
            )
            if direction is HookDirection.UPGRADE:
                self._hooks.on_upgrade_externally(live, external_handle, payload, current, external)
            else:
                self._hooks.on_downgrade_externally(
                    live, external_handle, payload, current, external
                )

    def _stamp(self, version: int) -> None:
        with opened(self._engine, self._destination, READ_WRITE) as handle, transaction(handle):
            handle.set_version(version)
        self._logger.info(
            "store_version_stamped",
            store_name=self._store_name,
            version=version,
        )

    def _bundled_payload_problem(self) -> str | None:
        try:
            stream = self._asset_store.open_payload(self._store_name)
        except AssetNotFoundError as exc:
            return f"no payload in {self._source_dir} and no bundled asset: {exc}"
        stream.close()
        return None


def _direction(current: int, external: int) -> HookDirection:
    return HookDirection.UPGRADE if current < external else HookDirection.DOWNGRADE


__all__ = ["DeploymentOrchestrator", "validate_store_name"]
