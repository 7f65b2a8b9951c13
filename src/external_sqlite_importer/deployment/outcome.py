"""Deployment pass results: the outcome of ``ensure_deployed`` and the dry-run plan."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final


class OutcomeKind(StrEnum):
    NOT_NEEDED = "not_needed"
    FRESH_INSTALLED = "fresh_installed"
    MIGRATED = "migrated"


@dataclass(frozen=True, slots=True)
class DeploymentOutcome:
    """What one ``ensure_deployed`` call did. Never persisted."""

    kind: OutcomeKind
    from_version: int | None = None
    to_version: int | None = None

    def __post_init__(self) -> None:
        if self.kind is OutcomeKind.MIGRATED:
            if self.from_version is None or self.to_version is None:
                raise ValueError("MIGRATED outcome requires from_version and to_version")
            if self.from_version == self.to_version:
                raise ValueError("MIGRATED outcome requires differing versions")
        elif self.from_version is not None or self.to_version is not None:
            raise ValueError(f"{self.kind.value} outcome carries no versions")

    @classmethod
    def migrated(cls, from_version: int, to_version: int) -> DeploymentOutcome:
        return cls(OutcomeKind.MIGRATED, from_version, to_version)

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "from_version": self.from_version,
            "to_version": self.to_version,
        }


NOT_NEEDED: Final[DeploymentOutcome] = DeploymentOutcome(OutcomeKind.NOT_NEEDED)
FRESH_INSTALLED: Final[DeploymentOutcome] = DeploymentOutcome(OutcomeKind.FRESH_INSTALLED)


class PlannedAction(StrEnum):
    FRESH_INSTALL = "fresh_install"
    UP_TO_DATE = "up_to_date"
    MIGRATE = "migrate"
    BLOCKED = "blocked"


class HookDirection(StrEnum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


@dataclass(frozen=True, slots=True)
class DeploymentPlan:
    """Side-effect-free preview of the next ``ensure_deployed`` call."""

    store_name: str
    action: PlannedAction
    destination_exists: bool
    payload_present: bool
    current_version: int | None = None
    external_version: int | None = None
    script_present: bool = False
    hook: HookDirection | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "store_name": self.store_name,
            "action": self.action.value,
            "destination_exists": self.destination_exists,
            "payload_present": self.payload_present,
            "current_version": self.current_version,
            "external_version": self.external_version,
            "script_present": self.script_present,
            "hook": None if self.hook is None else self.hook.value,
            "reason": self.reason,
        }


__all__ = [
    "FRESH_INSTALLED",
    "NOT_NEEDED",
    "DeploymentOutcome",
    "DeploymentPlan",
    "HookDirection",
    "OutcomeKind",
    "PlannedAction",
]
