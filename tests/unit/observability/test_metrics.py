"""
external-sqlite-importer — unit tests for deployment metrics

File: tests/unit/observability/test_metrics.py

Purpose
- Verify thread-safe metric updates and deterministic snapshot/export behavior.
"""

from __future__ import annotations

import json
import math
import threading

import pytest

from external_sqlite_importer.observability.metrics import (
    FAILURES_TOTAL,
    PASSES_TOTAL,
    DeploymentMetrics,
)


def test_thread_safe_counter_increments() -> None:
    metrics = DeploymentMetrics()

    def worker() -> None:
        for _ in range(250):
            metrics.record_outcome("catalog.db", "not_needed", 0.001)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert metrics.get_counter(PASSES_TOTAL, store="catalog.db", outcome="not_needed") == 2_000
    distribution = metrics.get_distribution("catalog.db")
    assert distribution is not None
    assert distribution["count"] == 2_000


def test_failures_and_outcomes_share_the_duration_distribution() -> None:
    metrics = DeploymentMetrics()
    metrics.record_outcome("catalog.db", "migrated", 0.5)
    metrics.record_failure("catalog.db", "MigrationScriptFailedError", 1.5)

    assert metrics.get_counter(
        FAILURES_TOTAL, store="catalog.db", error="MigrationScriptFailedError"
    ) == 1
    assert metrics.get_distribution("catalog.db") == {
        "count": 2,
        "sum": 2.0,
        "min": 0.5,
        "max": 1.5,
        "avg": 1.0,
    }
    assert metrics.get_distribution("other.db") is None


def test_snapshot_is_deterministic_and_json_serializable() -> None:
    first = DeploymentMetrics()
    first.record_outcome("b.db", "fresh_installed", 0.2)
    first.record_outcome("a.db", "migrated", 0.1)

    second = DeploymentMetrics()
    second.record_outcome("a.db", "migrated", 0.1)
    second.record_outcome("b.db", "fresh_installed", 0.2)

    assert first.to_json() == second.to_json()
    counters = json.loads(first.to_json())["counters"]
    assert list(counters) == [
        "deployment_passes_total{outcome=migrated,store=a.db}",
        "deployment_passes_total{outcome=fresh_installed,store=b.db}",
    ]


def test_reset_clears_everything() -> None:
    metrics = DeploymentMetrics()
    metrics.record_outcome("catalog.db", "migrated", 0.1)

    metrics.reset()

    assert metrics.snapshot() == {"counters": {}, "distributions": {}}


@pytest.mark.parametrize("bad", [-1.0, math.inf, math.nan, True])
def test_invalid_durations_are_rejected(bad: float) -> None:
    with pytest.raises(ValueError):
        DeploymentMetrics().record_outcome("catalog.db", "migrated", bad)


def test_empty_labels_are_rejected() -> None:
    with pytest.raises(ValueError):
        DeploymentMetrics().record_outcome(" ", "migrated", 0.1)
