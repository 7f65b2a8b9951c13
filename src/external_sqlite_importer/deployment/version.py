"""
external-sqlite-importer — external version declaration.

File: src/external_sqlite_importer/deployment/version.py

Purpose
- Read the ``version.info`` declaration of an external source directory.

Functional requirements
- An absent declaration is tolerated: it is logged and the caller's default is
  used, which means "no version change".
- A present declaration must start with an integer in 1..2**31-1 (the range of
  ``PRAGMA user_version``); anything else aborts the pass with a typed error.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Final

import structlog

from external_sqlite_importer.constants import (
    MAX_STORE_VERSION,
    MIN_STORE_VERSION,
    VERSION_INFO_FILENAME,
)
from external_sqlite_importer.errors import (
    InvalidVersionValueError,
    MalformedVersionDeclarationError,
)

# Optional sign followed by ASCII digits.
_INTEGER_TOKEN: Final[re.Pattern[str]] = re.compile(r"[+-]?[0-9]+")


def version_declaration_path(source_dir: Path) -> Path:
    return Path(source_dir) / VERSION_INFO_FILENAME


def resolve_external_version(
    source_dir: Path,
    default_version: int,
    *,
    logger: Any | None = None,
) -> int:
    """Return the version declared by ``source_dir`` or ``default_version``."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    path = version_declaration_path(source_dir)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        log.info(
            "version_declaration_missing",
            path=str(path),
            default_version=default_version,
        )
        return default_version
    except (OSError, UnicodeDecodeError) as exc:
        raise MalformedVersionDeclarationError(path, f"unreadable: {exc}") from exc

    tokens = text.split()
    if not tokens:
        raise MalformedVersionDeclarationError(path, "file is empty")
    token = tokens[0]
    if _INTEGER_TOKEN.fullmatch(token) is None:
        raise MalformedVersionDeclarationError(path, f"{token!r} is not an integer")
    value = int(token)

    if not MIN_STORE_VERSION <= value <= MAX_STORE_VERSION:
        raise InvalidVersionValueError(path, value)
    return value


__all__ = ["resolve_external_version", "version_declaration_path"]
