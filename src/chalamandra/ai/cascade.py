"""Fallback Cascade Executor.

Runs an ordered list of backend candidates for one request:

    SELECTING -> ATTEMPTING(1) -> SUCCEEDED -> DONE
    SELECTING -> ATTEMPTING(1) -> ATTEMPTING(2) -> ... -> ULTIMATE_FALLBACK -> DONE

Ordering is fixed by mode and capabilities, never by the content:
    - remote-enhanced first, only for CLOUD_ONLY requests that privacy allows
    - on-device generative, if available
    - local heuristic, if available
    - the ultimate fallback result, which cannot fail

A failing candidate is never retried; the cascade moves on. Every attempt is
recorded as a CascadeAttempt and forwarded to the monitor once the run ends.
PrivacyViolationError and cancellation propagate, and a cancelled run
forwards nothing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from chalamandra.ai.backends import AnalysisBackend, BackendError
from chalamandra.ai.heuristic import ultimate_fallback_result
from chalamandra.ai.monitor import PerformanceMonitor
from chalamandra.core.models import (
    AnalysisMode,
    AnalysisResult,
    AttemptOutcome,
    BackendId,
    CascadeAttempt,
    Capabilities,
    Content,
    ErrorKind,
)
from chalamandra.core.privacy import PrivacyError, PrivacyGate, SanitizedContent

logger = logging.getLogger(__name__)

LOCAL_PREFERENCE = (BackendId.ON_DEVICE_GENERATIVE, BackendId.LOCAL_HEURISTIC)


class CascadeState(str, Enum):
    """States of a single cascade run."""

    SELECTING = "selecting"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    ULTIMATE_FALLBACK = "ultimate_fallback"
    DONE = "done"


@dataclass
class CascadeReport:
    """Outcome of a cascade run.

    Attributes:
        result: The result returned to the caller. Always present.
        attempts: Every attempt in the order it was made.
        states: State transitions, ending in DONE.
    """

    result: AnalysisResult
    attempts: list[CascadeAttempt] = field(default_factory=list)
    states: list[CascadeState] = field(default_factory=list)

    @property
    def used_ultimate_fallback(self) -> bool:
        return CascadeState.ULTIMATE_FALLBACK in self.states


class FallbackCascadeExecutor:
    """Tries backends in order until one succeeds.

    Args:
        backends: Available adapters. At most one per BackendId.
        monitor: Receives one record per finished cascade.
        privacy_gate: Sanitizes content before any remote candidate.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        backends: Sequence[AnalysisBackend],
        monitor: PerformanceMonitor | None = None,
        privacy_gate: PrivacyGate | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._backends = {backend.backend_id: backend for backend in backends}
        self._monitor = monitor
        self._gate = privacy_gate or PrivacyGate()
        self._clock = clock

    def backend(self, backend_id: BackendId) -> AnalysisBackend | None:
        return self._backends.get(backend_id)

    def plan(
        self, capabilities: Capabilities, mode: AnalysisMode, remote_permitted: bool
    ) -> list[AnalysisBackend]:
        """Build the ordered candidate list.

        Args:
            capabilities: Current capability snapshot.
            mode: Requested analysis mode.
            remote_permitted: Whether privacy settings allow remote use.

        Returns:
            Candidates in the order they will be tried.
        """
        candidates: list[AnalysisBackend] = []

        if mode == AnalysisMode.CLOUD_ONLY and remote_permitted:
            remote = self._backends.get(BackendId.REMOTE_ENHANCED)
            if remote is not None and remote.is_available(capabilities):
                candidates.append(remote)

        for backend_id in LOCAL_PREFERENCE:
            backend = self._backends.get(backend_id)
            if backend is not None and backend.is_available(capabilities):
                candidates.append(backend)

        return candidates

    async def run(
        self,
        content: Content,
        mode: AnalysisMode,
        capabilities: Capabilities,
        remote_permitted: bool,
        timeout_s: float | None = None,
    ) -> CascadeReport:
        """Run the cascade. Never fails except for privacy violations or cancellation.

        Args:
            content: Raw content.
            mode: Requested analysis mode.
            capabilities: Snapshot taken once for this request.
            remote_permitted: Whether privacy settings allow remote use.
            timeout_s: Bound applied to remote candidates.
        """
        report = CascadeReport(result=ultimate_fallback_result(), states=[CascadeState.SELECTING])
        candidates = self.plan(capabilities, mode, remote_permitted)
        logger.debug(f"Cascade plan for {mode.value}: {[c.backend_id.value for c in candidates]}")

        started = self._clock()
        sanitized: SanitizedContent | None = None

        for backend in candidates:
            report.states.append(CascadeState.ATTEMPTING)
            payload = content
            if backend.requires_sanitized:
                if sanitized is None:
                    sanitized = self._gate.prepare_for_remote(content)
                payload = sanitized

            attempt_start = self._clock()
            try:
                result = await backend.analyze(
                    payload, mode, timeout_s if backend.requires_sanitized else None
                )
            except BackendError as e:
                report.attempts.append(self._failure(backend, attempt_start, e.kind))
                log = logger.error if e.kind == ErrorKind.INVALID_RESPONSE else logger.warning
                log(f"{backend.backend_id.value} failed ({e.kind.value}): {e}")
                continue
            except PrivacyError:
                raise
            except Exception as e:
                report.attempts.append(self._failure(backend, attempt_start, ErrorKind.UNEXPECTED))
                logger.error(f"{backend.backend_id.value} raised unexpectedly: {type(e).__name__}: {e}")
                continue

            report.attempts.append(
                CascadeAttempt(
                    backend_id=backend.backend_id,
                    outcome=AttemptOutcome.SUCCESS,
                    duration_ms=self._elapsed_ms(attempt_start),
                )
            )
            report.result = result
            report.states += [CascadeState.SUCCEEDED, CascadeState.DONE]
            self._finish(report, started)
            return report

        logger.warning("All analysis backends failed; returning limited analysis")
        report.states += [CascadeState.ULTIMATE_FALLBACK, CascadeState.DONE]
        self._finish(report, started)
        return report

    def _elapsed_ms(self, since: float) -> float:
        return max(0.0, (self._clock() - since) * 1000)

    def _failure(self, backend: AnalysisBackend, since: float, kind: ErrorKind) -> CascadeAttempt:
        return CascadeAttempt(
            backend_id=backend.backend_id,
            outcome=AttemptOutcome.FAILURE,
            duration_ms=self._elapsed_ms(since),
            error_kind=kind,
        )

    def _finish(self, report: CascadeReport, started: float) -> None:
        if self._monitor is not None:
            self._monitor.record_cascade(
                report.attempts, self._elapsed_ms(started), report.used_ultimate_fallback
            )
