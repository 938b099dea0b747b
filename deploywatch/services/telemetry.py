from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Deque


@dataclass(frozen=True)
class ExternalCallSample:
    ts: float
    integration: str
    latency_ms: float
    success: bool


@dataclass(frozen=True)
class MonitorRunSample:
    ts: float
    duration_ms: float
    success: bool
    stats: dict[str, int]


_external_samples: Deque[ExternalCallSample] = deque(maxlen=10000)
_run_samples: Deque[MonitorRunSample] = deque(maxlen=500)
_counters: dict[str, int] = defaultdict(int)


def record_external_call(*, integration: str, latency_ms: float, success: bool) -> None:
    # Capture outbound call latency and outcomes per integration.
    _external_samples.append(
        ExternalCallSample(
            ts=time.time(),
            integration=integration,
            latency_ms=latency_ms,
            success=success,
        )
    )


def record_monitor_run(*, duration_ms: float, success: bool, stats: dict[str, int]) -> None:
    _run_samples.append(
        MonitorRunSample(ts=time.time(), duration_ms=duration_ms, success=success, stats=dict(stats))
    )
    increment_counter("monitor_runs_total")
    if not success:
        increment_counter("monitor_runs_skipped_total")
    for name, value in stats.items():
        increment_counter(f"monitor_{name}_total", int(value))


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def external_latency_by_integration(window_s: int) -> dict[str, dict[str, float | int | None]]:
    # Aggregate external call latency and failures per integration in the window.
    cutoff = time.time() - window_s
    by_integration: dict[str, list[ExternalCallSample]] = defaultdict(list)
    for sample in _external_samples:
        if sample.ts < cutoff:
            continue
        by_integration[sample.integration].append(sample)
    result: dict[str, dict[str, float | int | None]] = {}
    for integration, samples in by_integration.items():
        latencies = sorted(sample.latency_ms for sample in samples)
        p95_idx = max(0, math.ceil(0.95 * len(latencies)) - 1)
        result[integration] = {
            "p95": latencies[p95_idx],
            "max": latencies[-1],
            "failures": sum(1 for sample in samples if not sample.success),
        }
    return result


def last_monitor_run() -> dict[str, Any] | None:
    if not _run_samples:
        return None
    sample = _run_samples[-1]
    return {
        "ts": sample.ts,
        "duration_ms": sample.duration_ms,
        "success": sample.success,
        "stats": dict(sample.stats),
    }


def counters_snapshot() -> dict[str, int]:
    # Return a copy of all counters for metrics reporting.
    return dict(_counters)


def reset_telemetry() -> None:
    # Allow tests to start from empty samples and counters.
    _external_samples.clear()
    _run_samples.clear()
    _counters.clear()
