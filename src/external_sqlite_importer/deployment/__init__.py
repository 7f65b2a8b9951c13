"""
external-sqlite-importer — deployment package.

File: src/external_sqlite_importer/deployment/__init__.py

Purpose
- Provisioning and migration of a local store from an external source:
  version declaration, update scripts, payload transfer, reconciliation hooks,
  and the orchestrator tying them together.
"""

from external_sqlite_importer.deployment.access import (
    AccessDecision,
    AllowAllAccessPolicy,
    FilesystemAccessPolicy,
    SourceAccessPolicy,
)
from external_sqlite_importer.deployment.assets import (
    AssetStore,
    DirectoryAssetStore,
    EmptyAssetStore,
    PackageAssetStore,
)
from external_sqlite_importer.deployment.helper import ExternalSQLiteHelper
from external_sqlite_importer.deployment.hooks import ReconciliationHooks
from external_sqlite_importer.deployment.locks import store_lock
from external_sqlite_importer.deployment.orchestrator import DeploymentOrchestrator
from external_sqlite_importer.deployment.outcome import (
    DeploymentOutcome,
    DeploymentPlan,
    HookDirection,
    OutcomeKind,
    PlannedAction,
)
from external_sqlite_importer.deployment.scripts import locate_update_script, script_file_name
from external_sqlite_importer.deployment.transfer import copy_file, copy_stream
from external_sqlite_importer.deployment.version import resolve_external_version

__all__ = [
    "AccessDecision",
    "AllowAllAccessPolicy",
    "AssetStore",
    "DeploymentOrchestrator",
    "DeploymentOutcome",
    "DeploymentPlan",
    "DirectoryAssetStore",
    "EmptyAssetStore",
    "ExternalSQLiteHelper",
    "FilesystemAccessPolicy",
    "HookDirection",
    "OutcomeKind",
    "PackageAssetStore",
    "PlannedAction",
    "ReconciliationHooks",
    "SourceAccessPolicy",
    "copy_file",
    "copy_stream",
    "locate_update_script",
    "resolve_external_version",
    "script_file_name",
    "store_lock",
]
