"""
external-sqlite-importer — script subprocess smoke tests

File: tests/unit/scripts/test_scripts_smoke.py

Purpose
- Keep script entrypoints executable and deterministic at a smoke-test level.
- Verify `--help`, `--json` output structure, and that planning never mutates the store.
"""

from __future__ import annotations

import json
import os
import sqlite3
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[3]
SRC_PATH = REPO_ROOT / "src"


def _run_script(*args: str) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("EXTSTORE_")}
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    return subprocess.run(
        [sys.executable, *args],
        cwd=REPO_ROOT,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _render_failure(label: str, completed: subprocess.CompletedProcess[str]) -> str:
    return (
        f"{label} failed with exit code {completed.returncode}\n"
        f"stdout:\n{completed.stdout}\n"
        f"stderr:\n{completed.stderr}\n"
    )


def _write_store(path: Path, version: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY)")
        conn.execute(f"PRAGMA user_version = {version:d}")
        conn.commit()
    finally:
        conn.close()


def _write_config(root: Path) -> Path:
    config_path = root / "importer.toml"
    config_path.write_text(
        '[store]\nname = "catalog.db"\n\n[paths]\nsource_dir = "external"\n',
        encoding="utf-8",
    )
    return config_path


@pytest.mark.unit
def test_deployment_status_help_smoke() -> None:
    result = _run_script("scripts/deployment_status.py", "--help")

    assert result.returncode == 0, _render_failure("deployment_status --help", result)
    lowered_output = result.stdout.lower()
    assert "usage" in lowered_output
    assert "--config" in lowered_output
    assert "--store-name" in lowered_output


@pytest.mark.unit
def test_deployment_status_json_reports_fresh_install_without_copying(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    _write_store(tmp_path / "external" / "catalog.db", version=3)

    result = _run_script("scripts/deployment_status.py", "--config", str(config_path), "--json")

    assert result.returncode == 0, _render_failure("deployment_status --json", result)
    payload = json.loads(result.stdout)
    assert payload["action"] == "fresh_install"
    assert payload["store_name"] == "catalog.db"
    assert payload["payload_present"] is True
    assert payload["database_path"] == (tmp_path.resolve() / "databases" / "catalog.db").as_posix()
    assert not (tmp_path / "databases" / "catalog.db").exists()

    log_path = tmp_path.resolve() / "logs" / "importer.jsonl"
    assert payload["log_path"] == log_path.as_posix()
    events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    reported = [event for event in events if event["event"] == "deployment_plan_reported"]
    assert len(reported) == 1
    assert reported[0]["store_name"] == "catalog.db"
    assert reported[0]["fields"]["action"] == "fresh_install"


@pytest.mark.unit
def test_deployment_status_json_reports_migration_plan(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    _write_store(tmp_path / "databases" / "catalog.db", version=1)
    _write_store(tmp_path / "external" / "catalog.db", version=2)
    (tmp_path / "external" / "version.info").write_text("2\n", encoding="utf-8")

    result = _run_script("scripts/deployment_status.py", "--config", str(config_path), "--json")

    assert result.returncode == 0, _render_failure("deployment_status --json", result)
    payload = json.loads(result.stdout)
    assert payload["action"] == "migrate"
    assert payload["current_version"] == 1
    assert payload["external_version"] == 2
    assert payload["hook"] == "upgrade"


@pytest.mark.unit
def test_deployment_status_blocked_exits_one(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = _run_script(
        "scripts/deployment_status.py",
        "--config",
        str(config_path),
        "--store-name",
        "missing.db",
        "--json",
    )

    assert result.returncode == 1, _render_failure("deployment_status blocked", result)
    payload = json.loads(result.stdout)
    assert payload["action"] == "blocked"
    assert payload["store_name"] == "missing.db"
    assert payload["reason"]


@pytest.mark.unit
def test_deployment_status_honors_observability_log_dir(tmp_path: Path) -> None:
    config_path = tmp_path / "importer.toml"
    config_path.write_text(
        '[store]\nname = "catalog.db"\n\n'
        '[observability]\nlog_dir = "var/log"\nlog_level = "WARNING"\n',
        encoding="utf-8",
    )
    _write_store(tmp_path / "external" / "catalog.db", version=1)

    result = _run_script("scripts/deployment_status.py", "--config", str(config_path))

    assert result.returncode == 0, _render_failure("deployment_status text", result)
    assert "action: fresh_install" in result.stdout
    log_path = tmp_path / "var" / "log" / "importer.jsonl"
    assert log_path.exists()
    assert log_path.read_text(encoding="utf-8") == ""


@pytest.mark.unit
def test_deployment_status_reports_config_errors_as_json(tmp_path: Path) -> None:
    config_path = tmp_path / "importer.toml"
    config_path.write_text("[store]\nbogus = 1\n", encoding="utf-8")

    result = _run_script("scripts/deployment_status.py", "--config", str(config_path), "--json")

    assert result.returncode == 2, _render_failure("deployment_status invalid config", result)
    payload = json.loads(result.stdout)
    assert payload["error_type"] == "ConfigValidationError"
    assert "store.bogus" in payload["error"]
