from __future__ import annotations

import math
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Deque, Dict, Iterator, List

_MAX_RECENT_SAMPLES = 500


def _percentile(values: List[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    idx = (len(ordered) - 1) * max(0.0, min(1.0, p))
    lo = int(math.floor(idx))
    hi = int(math.ceil(idx))
    if lo == hi:
        return float(ordered[lo])
    frac = idx - lo
    return float(ordered[lo]) * (1.0 - frac) + float(ordered[hi]) * frac


@dataclass(frozen=True)
class OperationSample:
    ts: float
    latency_sec: float
    operation: str
    outcome: str


class GatewayMetrics:
    """In-flight indicator and per-operation counters shared by one gateway."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._inflight = 0
        self._calls_total = 0
        self._failures_total = 0
        self._calls_by_operation: Dict[str, int] = defaultdict(int)
        self._failures_by_operation: Dict[str, int] = defaultdict(int)
        self._recent: Deque[OperationSample] = deque(maxlen=_MAX_RECENT_SAMPLES)

    @property
    def inflight(self) -> int:
        with self._lock:
            return self._inflight

    def inc_inflight(self) -> None:
        with self._lock:
            self._inflight += 1

    def dec_inflight(self) -> None:
        with self._lock:
            self._inflight = max(0, self._inflight - 1)

    def record(self, *, operation: str, outcome: str, latency_sec: float) -> None:
        latency = max(0.0, float(latency_sec))
        with self._lock:
            self._calls_total += 1
            self._calls_by_operation[operation] += 1
            if outcome == "error":
                self._failures_total += 1
                self._failures_by_operation[operation] += 1
            self._recent.append(
                OperationSample(ts=time.time(), latency_sec=latency, operation=operation, outcome=outcome)
            )

    @contextmanager
    def track(self, operation: str) -> Iterator[Dict[str, str]]:
        """Count the call as in flight; the caller sets ``slot["outcome"]``."""
        slot = {"outcome": "ok"}
        started = time.monotonic()
        self.inc_inflight()
        try:
            yield slot
        except Exception:
            slot["outcome"] = "error"
            raise
        finally:
            self.dec_inflight()
            self.record(operation=operation, outcome=slot["outcome"], latency_sec=time.monotonic() - started)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            recent = list(self._recent)
            inflight = self._inflight
            calls_total = self._calls_total
            failures_total = self._failures_total
            calls_by_operation = dict(self._calls_by_operation)
            failures_by_operation = dict(self._failures_by_operation)

        latencies = [x.latency_sec for x in recent]
        failure_rate = (failures_total / calls_total) if calls_total else 0.0
        return {
            "inflight": inflight,
            "calls_total": calls_total,
            "failures_total": failures_total,
            "failure_rate": round(failure_rate, 6),
            "latency_sec": {
                "p50": round(_percentile(latencies, 0.50), 4),
                "p95": round(_percentile(latencies, 0.95), 4),
                "sample_count": len(latencies),
            },
            "calls_by_operation": calls_by_operation,
            "failures_by_operation": failures_by_operation,
        }
