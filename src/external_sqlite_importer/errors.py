"""
external-sqlite-importer — deployment error taxonomy.

File: src/external_sqlite_importer/errors.py

Purpose
- Typed failures raised by a deployment pass. Every fatal condition aborts the
  current ``ensure_deployed`` call with one of these; nothing here is retried.
"""

from __future__ import annotations

from pathlib import Path


class ExternalStoreError(RuntimeError):
    """Base class for deployment pass failures."""


class PermissionDeniedError(ExternalStoreError):
    """Raised when the host environment disallows reading the external source."""

    def __init__(self, source_dir: Path, reason: str) -> None:
        self.source_dir = source_dir
        self.reason = reason
        super().__init__(f"access to external source {source_dir} denied: {reason}")


class MalformedVersionDeclarationError(ExternalStoreError):
    """Raised when the version declaration exists but holds no usable integer."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        super().__init__(f"{path} does not contain a valid integer version number: {detail}")


class InvalidVersionValueError(ExternalStoreError):
    """Raised when the declared version parses but falls outside 1..2**31-1."""

    def __init__(self, path: Path, value: int) -> None:
        self.path = path
        self.value = value
        super().__init__(
            f"version declared in {path} must be between 1 and 2147483647, was {value}"
        )


class NoMigrationPathAvailableError(ExternalStoreError):
    """Raised when versions differ but neither an update script nor a payload exists."""

    def __init__(self, store_name: str, current_version: int, target_version: int) -> None:
        self.store_name = store_name
        self.current_version = current_version
        self.target_version = target_version
        super().__init__(
            f"store {store_name!r} is at version {current_version} but the external source "
            f"declares {target_version}, and neither an update script nor a replacement "
            "payload is available"
        )


class MigrationScriptFailedError(ExternalStoreError):
    """Raised when an update script errors; its transaction has been rolled back."""

    def __init__(self, script_path: Path, target_version: int, detail: str) -> None:
        self.script_path = script_path
        self.target_version = target_version
        super().__init__(
            f"update script {script_path} for version {target_version} failed: {detail}"
        )


class CorruptExternalSourceError(ExternalStoreError):
    """Raised when the replacement payload cannot be opened as a valid store."""

    def __init__(self, payload_path: Path, detail: str) -> None:
        self.payload_path = payload_path
        super().__init__(f"external store {payload_path} is not valid or corrupted: {detail}")


class TransferFailedError(ExternalStoreError):
    """Raised when copying a payload fails; the destination was cleaned up."""

    def __init__(self, destination: Path, detail: str) -> None:
        self.destination = destination
        super().__init__(f"failed to copy store payload to {destination}: {detail}")


class PayloadUnavailableError(TransferFailedError):
    """Raised on fresh install when neither the source nor the asset store has a payload."""


class AssetNotFoundError(LookupError):
    """Raised by an asset store that has no payload for the requested name."""

    def __init__(self, name: str, location: str) -> None:
        self.name = name
        self.location = location
        super().__init__(f"no bundled payload named {name!r} in {location}")


__all__ = [
    "AssetNotFoundError",
    "CorruptExternalSourceError",
    "ExternalStoreError",
    "InvalidVersionValueError",
    "MalformedVersionDeclarationError",
    "MigrationScriptFailedError",
    "NoMigrationPathAvailableError",
    "PayloadUnavailableError",
    "PermissionDeniedError",
    "TransferFailedError",
]
