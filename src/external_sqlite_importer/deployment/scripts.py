"""Update-script naming and lookup inside an external source directory."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from external_sqlite_importer.constants import UPDATE_SCRIPT_TEMPLATE


def script_file_name(store_name: str, version: int) -> str:
    """Return ``<store_name>_update_<version>.sql``."""

    return UPDATE_SCRIPT_TEMPLATE.format(store_name=store_name, version=version)


def update_script_path(source_dir: Path, store_name: str, target_version: int) -> Path:
    return Path(source_dir) / script_file_name(store_name, target_version)


def locate_update_script(
    source_dir: Path,
    store_name: str,
    target_version: int,
    *,
    logger: Any | None = None,
) -> str | None:
    """
    Return the update script text for ``target_version`` or ``None``.

    A missing file and a whitespace-only file both mean "no script". Any other
    read failure is logged as ``update_script_unreadable`` and also treated as
    absent, so the pass falls through to payload reconciliation.
    """

    path = update_script_path(source_dir, store_name, target_version)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        log = logger if logger is not None else structlog.get_logger(__name__)
        log.warning(
            "update_script_unreadable",
            path=str(path),
            store_name=store_name,
            target_version=target_version,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return None

    if not text.strip():
        return None
    return text


__all__ = ["locate_update_script", "script_file_name", "update_script_path"]
