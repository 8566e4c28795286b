"""Service statistics for the cspgen HTTP service.

Provides:
  - AnalysisTracker — rolling window of the last N analysis durations plus
                      completed / failed counters, reported by ``/health``.
"""

from __future__ import annotations

from collections import deque


class AnalysisTracker:
    """Rolling latency window and outcome counters for ``POST /v1/csp``.

    Only touched from the event loop, so no locking.

    Args:
        window: Maximum number of latency samples to retain.

    Usage::

        tracker = AnalysisTracker()
        tracker.record_success(120.5)
        tracker.record_failure(8000.0)
        tracker.avg_ms, tracker.p99_ms, tracker.completed, tracker.failed
    """

    def __init__(self, window: int = 100) -> None:
        self._durations: deque[float] = deque(maxlen=window)
        self.completed = 0
        self.failed = 0

    # ── Mutation ──────────────────────────────────────────────────────────────

    def record_success(self, duration_ms: float) -> None:
        self._durations.append(duration_ms)
        self.completed += 1

    def record_failure(self, duration_ms: float) -> None:
        self._durations.append(duration_ms)
        self.failed += 1

    # ── Computed properties ───────────────────────────────────────────────────

    @property
    def avg_ms(self) -> float:
        """Mean of the samples in the window (0.0 when empty)."""
        if not self._durations:
            return 0.0
        return sum(self._durations) / len(self._durations)

    @property
    def p99_ms(self) -> float:
        """99th percentile of the window; 0.0 until at least 10 samples exist."""
        if len(self._durations) < 10:
            return 0.0
        ordered = sorted(self._durations)
        idx = max(0, int(len(ordered) * 0.99) - 1)
        return ordered[idx]

    @property
    def count(self) -> int:
        """Number of samples currently in the window."""
        return len(self._durations)
