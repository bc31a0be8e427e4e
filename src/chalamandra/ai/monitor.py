"""Performance Monitor - process-wide cascade statistics.

Observes every cascade outcome without being on the critical path. Counters
are updated under a lock, one update per cascade, and reset only by an
explicit reset().

All data stays in memory. No analyzed content is recorded, only backend ids,
outcomes and timings.

Example:
    >>> monitor = get_monitor()
    >>> metrics = monitor.metrics()
    >>> print(f"{metrics.success_rate:.1%} of cascades succeeded on the first try")
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Sequence

from chalamandra.core.models import CascadeAttempt, PerformanceMetrics

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Thread-safe cascade counters.

    Attributes:
        _lock: Serializes counter updates and snapshots.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset_unlocked()

    def _reset_unlocked(self) -> None:
        self._total_cascades = 0
        self._first_try_successes = 0
        self._fallback_usage = 0
        self._ultimate_fallbacks = 0
        self._total_latency_ms = 0.0
        self._backend_failures: Counter[str] = Counter()
        self._escalations = 0
        self._escalation_failures = 0

    def record_cascade(
        self, attempts: Sequence[CascadeAttempt], total_ms: float, used_fallback: bool
    ) -> None:
        """Record one finished cascade.

        Args:
            attempts: Attempts in the order they were made.
            total_ms: Wall time of the whole cascade.
            used_fallback: True when no candidate succeeded and the ultimate
                fallback result was returned.
        """
        first_succeeded = bool(attempts) and attempts[0].succeeded
        with self._lock:
            self._total_cascades += 1
            self._total_latency_ms += max(total_ms, 0.0)
            if first_succeeded:
                self._first_try_successes += 1
            else:
                self._fallback_usage += 1
            if used_fallback:
                self._ultimate_fallbacks += 1
            for attempt in attempts:
                if not attempt.succeeded:
                    self._backend_failures[attempt.backend_id.value] += 1

    def record_escalation(self, attempt: CascadeAttempt) -> None:
        """Record one escalation to remote analysis."""
        with self._lock:
            self._escalations += 1
            if not attempt.succeeded:
                self._escalation_failures += 1
                self._backend_failures[attempt.backend_id.value] += 1

    def metrics(self) -> PerformanceMetrics:
        """Return a consistent snapshot of the counters."""
        with self._lock:
            total = self._total_cascades
            return PerformanceMetrics(
                total_cascades=total,
                success_rate=self._first_try_successes / total if total else 1.0,
                fallback_usage_count=self._fallback_usage,
                ultimate_fallback_count=self._ultimate_fallbacks,
                avg_latency_ms=self._total_latency_ms / total if total else 0.0,
                backend_failures=dict(self._backend_failures),
                escalations=self._escalations,
                escalation_failures=self._escalation_failures,
            )

    def reset(self) -> None:
        """Clear all counters."""
        with self._lock:
            self._reset_unlocked()
        logger.info("Performance metrics reset")

    def generate_report(self) -> str:
        """Human-readable summary of the current metrics."""
        m = self.metrics()
        lines = [
            f"Cascades: {m.total_cascades}",
            f"First-try success rate: {m.success_rate:.1%}",
            f"Fallback usage: {m.fallback_usage_count}",
            f"Ultimate fallbacks: {m.ultimate_fallback_count}",
            f"Average latency: {m.avg_latency_ms:.0f}ms",
            f"Escalations: {m.escalations} ({m.escalation_failures} failed)",
        ]
        if m.backend_failures:
            lines.append("Failures by backend:")
            for backend, count in sorted(m.backend_failures.items(), key=lambda x: -x[1]):
                lines.append(f"  {backend}: {count}")
        return "\n".join(lines)


# =============================================================================
# Singleton
# =============================================================================


_monitor_instance: PerformanceMonitor | None = None
_monitor_lock = threading.Lock()


def get_monitor() -> PerformanceMonitor:
    """Get the process-wide monitor, created on first call."""
    global _monitor_instance

    if _monitor_instance is None:
        with _monitor_lock:
            if _monitor_instance is None:
                _monitor_instance = PerformanceMonitor()

    return _monitor_instance
