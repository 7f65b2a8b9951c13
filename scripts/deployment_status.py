"""
external-sqlite-importer — report the deployment plan for a configured store.

Purpose
- Show what the next access to the store would do (fresh install, nothing,
  migration, or blocked) without copying, migrating, or stamping anything.
- Log the planning events to the JSON-lines file configured by the
  ``[observability]`` section of the config.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"


def _ensure_src_path() -> None:
    if str(SRC_PATH) not in sys.path:
        sys.path.insert(0, str(SRC_PATH))


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Show the deployment plan of an external SQLite store without mutating it.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to importer.toml (defaults to ./importer.toml when present).",
    )
    parser.add_argument(
        "--store-name",
        default=None,
        help="Override store.name from the config.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON output.",
    )
    return parser.parse_args(argv)


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _emit_text(payload: Mapping[str, object]) -> None:
    for key in (
        "store_name",
        "database_path",
        "source_dir",
        "action",
        "current_version",
        "external_version",
        "payload_present",
        "script_present",
        "hook",
        "reason",
        "log_path",
    ):
        print(f"{key}: {payload.get(key)}")


def _emit_error(exc: Exception, *, as_json: bool) -> int:
    if as_json:
        _emit_json({"error": str(exc), "error_type": type(exc).__name__})
    else:
        print(f"error: {exc}", file=sys.stderr)
    return 2


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    _ensure_src_path()
    import structlog

    from external_sqlite_importer.config import load_config
    from external_sqlite_importer.deployment import ExternalSQLiteHelper, PlannedAction
    from external_sqlite_importer.observability import (
        correlation_scope,
        setup_logging,
        shutdown_logging,
    )

    overrides: dict[str, object] = {}
    if args.store_name is not None:
        overrides["store.name"] = args.store_name

    try:
        config = load_config(args.config, overrides=overrides)
        # Events go to <observability.log_dir>/importer.jsonl; stdout carries the report.
        handle = setup_logging(config["observability"])
    except Exception as exc:  # noqa: BLE001
        return _emit_error(exc, as_json=args.json)

    log = structlog.get_logger("external_sqlite_importer.scripts.deployment_status")
    try:
        helper = ExternalSQLiteHelper.from_config(config)
        with correlation_scope(store_name=helper.database_name):
            plan = helper.plan()
            log.info(
                "deployment_plan_reported",
                action=plan.action.value,
                current_version=plan.current_version,
                external_version=plan.external_version,
                reason=plan.reason,
            )
        payload: dict[str, object] = {
            **plan.to_dict(),
            "database_path": helper.database_path.as_posix(),
            "source_dir": config["paths"]["source_dir"],
            "log_path": handle.log_path.as_posix(),
        }
        if args.json:
            _emit_json(payload)
        else:
            _emit_text(payload)
        return 1 if plan.action is PlannedAction.BLOCKED else 0
    except Exception as exc:  # noqa: BLE001
        log.error("deployment_status_failed", error_type=type(exc).__name__, error=str(exc))
        return _emit_error(exc, as_json=args.json)
    finally:
        shutdown_logging(handle)



if __name__ == "__main__":
    raise SystemExit(main())
