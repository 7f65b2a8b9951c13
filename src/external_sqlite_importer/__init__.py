"""
external-sqlite-importer — package root.

File: src/external_sqlite_importer/__init__.py

Purpose
- Provision a local, versioned SQLite store from an external source (a shared
  directory or a bundled asset) and keep it in step with the source's declared
  version across application runs.

Functional requirements
- No side effects at import time (no config loading, no logging init).
"""

from external_sqlite_importer.deployment import (
    DeploymentOrchestrator,
    DeploymentOutcome,
    DeploymentPlan,
    DirectoryAssetStore,
    ExternalSQLiteHelper,
    OutcomeKind,
    PackageAssetStore,
    ReconciliationHooks,
)
from external_sqlite_importer.errors import ExternalStoreError

__version__ = "0.1.0"

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentOutcome",
    "DeploymentPlan",
    "DirectoryAssetStore",
    "ExternalSQLiteHelper",
    "ExternalStoreError",
    "OutcomeKind",
    "PackageAssetStore",
    "ReconciliationHooks",
    "__version__",
]
