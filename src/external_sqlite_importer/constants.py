"""Stable constants shared across the importer packages."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# External source layout.
VERSION_INFO_FILENAME: Final[str] = "version.info"
UPDATE_SCRIPT_TEMPLATE: Final[str] = "{store_name}_update_{version}.sql"

# Bundled fallback payloads live under this directory of an asset root.
ASSET_DATABASES_DIR: Final[PurePosixPath] = PurePosixPath("databases")

# Store versions are positive; 0 is what SQLite reports for a never-stamped file.
MIN_STORE_VERSION: Final[int] = 1
# PRAGMA user_version is a signed 32-bit integer.
MAX_STORE_VERSION: Final[int] = 2**31 - 1

# Schema version of ``importer.toml``.
CONFIG_SCHEMA_VERSION: Final[int] = 1

DEFAULT_COPY_CHUNK_BYTES: Final[int] = 64 * 1024

__all__ = [
    "ASSET_DATABASES_DIR",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_COPY_CHUNK_BYTES",
    "MAX_STORE_VERSION",
    "MIN_STORE_VERSION",
    "UPDATE_SCRIPT_TEMPLATE",
    "VERSION_INFO_FILENAME",
]
