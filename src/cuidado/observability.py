"""In-process turn metrics.

Two views are kept behind one lock:

- stage latencies, keyed by stage name (``pipeline.retrieve``,
  ``pipeline.draft``, ``pipeline.helper``, ``pipeline.turn`` and the
  ``mcp.<tool>`` wrappers);
- a tally of finished turns by status, with helper engagement and safety
  flag counts.

``metrics_snapshot()`` returns both; the ``turn_stats`` MCP tool serves it.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator
from collections.abc import Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import field
from threading import Lock
from time import perf_counter

logger = logging.getLogger(__name__)


@dataclass
class StageLatency:
    """Latency aggregate for one pipeline stage or tool."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    def add(self, duration_ms: float, ok: bool) -> None:
        self.count += 1
        if not ok:
            self.error_count += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)

    def as_dict(self) -> dict[str, float | int]:
        return {
            "count": self.count,
            "error_count": self.error_count,
            "avg_ms": round(self.total_ms / self.count, 3) if self.count else 0.0,
            "max_ms": round(self.max_ms, 3),
        }


@dataclass
class TurnTally:
    """Counts of finished turns."""

    by_status: Counter[str] = field(default_factory=Counter)
    safety_flags: Counter[str] = field(default_factory=Counter)
    helper_engaged: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "total": sum(self.by_status.values()),
            "by_status": dict(sorted(self.by_status.items())),
            "helper_engaged": self.helper_engaged,
            "safety_flags": dict(sorted(self.safety_flags.items())),
        }


class _TurnMetrics:
    def __init__(self) -> None:
        self._lock = Lock()
        self._stages: dict[str, StageLatency] = {}
        self._turns = TurnTally()

    def record_stage(self, stage: str, duration_ms: float, ok: bool) -> None:
        duration_ms = max(float(duration_ms), 0.0)
        with self._lock:
            self._stages.setdefault(stage, StageLatency()).add(duration_ms, ok)
        logger.debug("latency operation=%s duration_ms=%.3f ok=%s", stage, duration_ms, ok)

    def record_turn(self, status: str, safety: Sequence[str], helper_engaged: bool) -> None:
        with self._lock:
            self._turns.by_status[status] += 1
            self._turns.safety_flags.update(safety)
            if helper_engaged:
                self._turns.helper_engaged += 1

    def snapshot(self) -> dict[str, dict]:
        with self._lock:
            return {
                "stages": {
                    stage: latency.as_dict()
                    for stage, latency in sorted(self._stages.items())
                },
                "turns": self._turns.as_dict(),
            }

    def reset(self) -> None:
        with self._lock:
            self._stages.clear()
            self._turns = TurnTally()


_METRICS = _TurnMetrics()


def record_latency(*, operation: str, duration_ms: float, ok: bool = True) -> None:
    """Record one latency sample for a stage or tool."""
    _METRICS.record_stage(operation, duration_ms, ok)


@contextmanager
def timed(operation: str) -> Iterator[None]:
    """Record the wrapped block's duration; a raised exception counts as an error."""
    start = perf_counter()
    ok = False
    try:
        yield
        ok = True
    finally:
        record_latency(
            operation=operation,
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


def record_turn(status: str, *, safety: Sequence[str] = (), helper_engaged: bool = False) -> None:
    """Count one finished turn with its status and safety flag ids."""
    _METRICS.record_turn(status, safety, helper_engaged)


def metrics_snapshot() -> dict[str, dict]:
    """Return ``{"stages": {...}, "turns": {...}}``."""
    return _METRICS.snapshot()


def reset_metrics() -> None:
    """Clear stage latencies and the turn tally (test helper)."""
    _METRICS.reset()
