from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional


def _percentile(vals: List[float], pct: float) -> Optional[float]:
    if not vals:
        return None
    v = sorted(vals)
    if len(v) == 1:
        return float(v[0])
    k = max(0, min(len(v) - 1, int(round((pct / 100.0) * (len(v) - 1)))))
    return float(v[k])


class Metrics:
    """In-process counters for quoting: per-source outcomes and latencies."""

    def __init__(self, max_samples: int = 2000) -> None:
        self._counters: Dict[str, int] = defaultdict(int)
        self._reason_counters: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._histograms: Dict[str, List[float]] = defaultdict(list)
        self._max_samples = int(max_samples)

    def inc(self, name: str, n: int = 1) -> None:
        if not name:
            return
        self._counters[str(name)] += int(n)

    def inc_reason(self, group: str, reason: str, n: int = 1) -> None:
        if not group or not reason:
            return
        self._reason_counters[str(group)][str(reason)] += int(n)

    def observe(self, name: str, value: float) -> None:
        v = float(value)
        if v != v:  # NaN
            return
        bucket = self._histograms[str(name)]
        bucket.append(v)
        if len(bucket) > self._max_samples:
            del bucket[: len(bucket) - self._max_samples]

    def record_quote(self, source_id: str, *, ok: bool, latency_ms: float, reason: Optional[str] = None) -> None:
        self.inc(f"quote_ok:{source_id}" if ok else f"quote_fail:{source_id}")
        if not ok and reason:
            self.inc_reason(f"quote_fail_by_reason:{source_id}", reason)
        self.observe(f"quote_latency_ms:{source_id}", latency_ms)

    def source_stats(self, source_id: str) -> Dict[str, Any]:
        lats = self._histograms.get(f"quote_latency_ms:{source_id}", [])
        return {
            "ok": self._counters.get(f"quote_ok:{source_id}", 0),
            "fail": self._counters.get(f"quote_fail:{source_id}", 0),
            "fail_reasons": dict(self._reason_counters.get(f"quote_fail_by_reason:{source_id}", {})),
            "p50_latency_ms": _percentile(lats, 50.0),
            "p95_latency_ms": _percentile(lats, 95.0),
        }

    def snapshot(self) -> Dict[str, Any]:
        hist_stats: Dict[str, Any] = {}
        for name, vals in self._histograms.items():
            hist_stats[name] = {
                "count": len(vals),
                "p50": _percentile(vals, 50.0),
                "p95": _percentile(vals, 95.0),
            }
        return {
            "counters": dict(self._counters),
            "reason_counters": {g: dict(c) for g, c in self._reason_counters.items()},
            "histograms": hist_stats,
        }


METRICS = Metrics()
