"""Thread-safe deployment pass metrics with deterministic JSON export."""

from __future__ import annotations

import json
import math
import threading
from dataclasses import dataclass
from typing import Final

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

PASSES_TOTAL: Final[str] = "deployment_passes_total"
FAILURES_TOTAL: Final[str] = "deployment_failures_total"
PASS_DURATION: Final[str] = "deployment_pass_seconds"


@dataclass(frozen=True, order=True, slots=True)
class _MetricKey:
    name: str
    labels: tuple[tuple[str, str], ...]


@dataclass(slots=True)
class _DistributionState:
    count: int = 0
    total: float = 0.0
    minimum: float | None = None
    maximum: float | None = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.minimum is None or value < self.minimum:
            self.minimum = value
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    def as_dict(self) -> dict[str, JSONValue]:
        avg = self.total / self.count if self.count else 0.0
        return {
            "count": self.count,
            "sum": self.total,
            "min": self.minimum,
            "max": self.maximum,
            "avg": avg,
        }


class DeploymentMetrics:
    """
    Per-store counters of pass outcomes and failures plus pass durations.

    Counters are keyed by store name and outcome kind (or error type); every
    pass, successful or not, contributes one duration sample.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counters: dict[_MetricKey, int] = {}
        self._distributions: dict[_MetricKey, _DistributionState] = {}

    def record_outcome(self, store_name: str, kind: str, duration_seconds: float) -> None:
        self._record(
            _key(PASSES_TOTAL, store=store_name, outcome=kind),
            store_name,
            duration_seconds,
        )

    def record_failure(self, store_name: str, error_type: str, duration_seconds: float) -> None:
        self._record(
            _key(FAILURES_TOTAL, store=store_name, error=error_type),
            store_name,
            duration_seconds,
        )

    def get_counter(self, name: str, **labels: str) -> int:
        with self._lock:
            return self._counters.get(_key(name, **labels), 0)

    def get_distribution(self, store_name: str) -> dict[str, JSONValue] | None:
        with self._lock:
            state = self._distributions.get(_key(PASS_DURATION, store=store_name))
            return None if state is None else state.as_dict()

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._distributions.clear()

    def snapshot(self) -> dict[str, JSONValue]:
        """Return a snapshot with stable key ordering."""

        with self._lock:
            counters = tuple(sorted(self._counters.items()))
            distributions = tuple(
                (key, state.as_dict()) for key, state in sorted(self._distributions.items())
            )

        counters_out: dict[str, JSONValue] = {}
        for key, value in counters:
            counters_out[_identifier(key)] = value
        distributions_out: dict[str, JSONValue] = {}
        for key, summary in distributions:
            distributions_out[_identifier(key)] = summary
        return {"counters": counters_out, "distributions": distributions_out}

    def to_json(self, *, indent: int | None = None) -> str:
        payload = self.snapshot()
        if indent is None:
            return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return json.dumps(payload, sort_keys=True, indent=indent, ensure_ascii=False)

    def _record(self, counter: _MetricKey, store_name: str, duration_seconds: float) -> None:
        sample = _as_duration(duration_seconds)
        duration_key = _key(PASS_DURATION, store=store_name)
        with self._lock:
            self._counters[counter] = self._counters.get(counter, 0) + 1
            state = self._distributions.get(duration_key)
            if state is None:
                state = _DistributionState()
                self._distributions[duration_key] = state
            state.observe(sample)


def _key(name: str, **labels: str) -> _MetricKey:
    normalized: list[tuple[str, str]] = []
    for label, value in labels.items():
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            raise ValueError(f"label {label!r} must be a non-empty string")
        normalized.append((label, text))
    normalized.sort()
    return _MetricKey(name=name, labels=tuple(normalized))


def _identifier(key: _MetricKey) -> str:
    if not key.labels:
        return key.name
    labels = ",".join(f"{k}={v}" for k, v in key.labels)
    return f"{key.name}{{{labels}}}"


def _as_duration(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"duration must be numeric, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed) or parsed < 0:
        raise ValueError("duration must be a finite value >= 0")
    return parsed


__all__ = [
    "FAILURES_TOTAL",
    "PASSES_TOTAL",
    "PASS_DURATION",
    "DeploymentMetrics",
    "JSONScalar",
    "JSONValue",
]
