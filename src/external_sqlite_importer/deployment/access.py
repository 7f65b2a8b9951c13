"""Access gate evaluated before a deployment pass touches the external source."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    reason: str = ""


ALLOWED = AccessDecision(allowed=True)


class SourceAccessPolicy(Protocol):
    """Decides whether the host may read ``source_dir`` at all."""

    def check(self, source_dir: Path) -> AccessDecision: ...


class AllowAllAccessPolicy:
    """For hosts that gate access to the source before calling the importer."""

    def check(self, source_dir: Path) -> AccessDecision:
        del source_dir
        return ALLOWED


class FilesystemAccessPolicy:
    """
    Deny when the source directory exists but the process cannot list or read it.

    A missing directory is allowed: it simply holds no payload, declaration or
    scripts, and the pass falls back to bundled assets.
    """

    def check(self, source_dir: Path) -> AccessDecision:
        path = Path(source_dir)
        if not path.exists():
            return ALLOWED
        if not path.is_dir():
            return AccessDecision(False, f"{path} is not a directory")
        if not os.access(path, os.R_OK | os.X_OK):
            return AccessDecision(False, f"{path} is not readable by this process")
        return ALLOWED


__all__ = [
    "ALLOWED",
    "AccessDecision",
    "AllowAllAccessPolicy",
    "FilesystemAccessPolicy",
    "SourceAccessPolicy",
]
