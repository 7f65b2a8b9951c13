"""
external-sqlite-importer — bundled fallback payloads.

File: src/external_sqlite_importer/deployment/assets.py

Purpose
- Locate the payload a fresh install copies from when the external source
  has none. Payloads live under ``databases/<store name>`` of an asset root.
"""

from __future__ import annotations

from importlib import resources
from pathlib import Path
from typing import BinaryIO, Protocol

from external_sqlite_importer.constants import ASSET_DATABASES_DIR
from external_sqlite_importer.errors import AssetNotFoundError


class AssetStore(Protocol):
    """Opens bundled store payloads by name."""

    def open_payload(self, name: str) -> BinaryIO: ...


class DirectoryAssetStore:
    """Asset store rooted at a directory on disk."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def payload_path(self, name: str) -> Path:
        _validate_asset_name(name)
        return self._root.joinpath(*ASSET_DATABASES_DIR.parts, name)

    def open_payload(self, name: str) -> BinaryIO:
        path = self.payload_path(name)
        try:
            return path.open("rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise AssetNotFoundError(name, str(path.parent)) from exc

    def __repr__(self) -> str:
        return f"DirectoryAssetStore(root={str(self._root)!r})"


class PackageAssetStore:
    """Asset store reading ``databases/<name>`` shipped inside a Python package."""

    def __init__(self, package: str) -> None:
        if not package:
            raise ValueError("package must be a non-empty module name")
        self._package = package

    @property
    def package(self) -> str:
        return self._package

    def open_payload(self, name: str) -> BinaryIO:
        _validate_asset_name(name)
        location = f"{self._package}:{ASSET_DATABASES_DIR.as_posix()}"
        try:
            resource = (
                resources.files(self._package)
                .joinpath(ASSET_DATABASES_DIR.as_posix())
                .joinpath(name)
            )
        except ModuleNotFoundError as exc:
            raise AssetNotFoundError(name, location) from exc
        if not resource.is_file():
            raise AssetNotFoundError(name, location)
        return resource.open("rb")

    def __repr__(self) -> str:
        return f"PackageAssetStore(package={self._package!r})"


class EmptyAssetStore:
    """Asset store with no payloads; fresh installs need an external payload."""

    def open_payload(self, name: str) -> BinaryIO:
        raise AssetNotFoundError(name, "<no bundled assets>")


def _validate_asset_name(name: str) -> None:
    if not name or "/" in name or "\\" in name or name in {".", ".."}:
        raise ValueError(f"invalid store name for asset lookup: {name!r}")


__all__ = ["AssetStore", "DirectoryAssetStore", "EmptyAssetStore", "PackageAssetStore"]
