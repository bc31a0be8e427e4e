"""Analysis Orchestrator - the single entry point for analyzing content.

Flow for one request:
    1. Read privacy settings once (request options can only narrow them)
    2. Take a capability snapshot, and answer from the result cache on a hit
    3. Run the local fallback cascade (CLOUD_ONLY starts with remote and
       its result is final)
    4. Evaluate the escalation policy
    5. Sanitize and call the remote backend, bounded by the request timeout
    6. Merge, or mark the local result as unescalated
    7. Cache the final result and append it to the history store

analyze() always returns a result. The only exception that escapes is
PrivacyViolationError, which signals a bug in the privacy boundary.

Example:
    >>> orchestrator = AnalysisOrchestrator()
    >>> result = await orchestrator.analyze_text("Per my last email...", AnalysisMode.DEEP)
    >>> result.overall_risk
    58
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from chalamandra.ai.backends import AnalysisBackend, BackendError
from chalamandra.ai.cache import CACHED, ResultCache, build_cache_key, fingerprint_content
from chalamandra.ai.cascade import FallbackCascadeExecutor
from chalamandra.ai.escalation import escalation_reasons
from chalamandra.ai.heuristic import LocalHeuristicBackend
from chalamandra.ai.merger import mark_unescalated, merge
from chalamandra.ai.monitor import PerformanceMonitor, get_monitor
from chalamandra.ai.ondevice import OnDeviceGenerativeBackend
from chalamandra.ai.remote import GeminiTransport, RemoteEnhancedBackend
from chalamandra.config import AppConfig, get_config
from chalamandra.core.capabilities import CapabilityRegistry
from chalamandra.core.history import HistoryStore
from chalamandra.core.models import (
    AnalysisMode,
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    AttemptOutcome,
    BackendId,
    CascadeAttempt,
    Capabilities,
    Content,
    ErrorKind,
    PerformanceMetrics,
)
from chalamandra.core.privacy import PrivacyError, PrivacyGate, PrivacySettings

logger = logging.getLogger(__name__)

SettingsProvider = Callable[[], PrivacySettings]


def default_backends(config: AppConfig) -> list[AnalysisBackend]:
    """Production backend set for a configuration."""
    return [
        OnDeviceGenerativeBackend(config.ondevice),
        LocalHeuristicBackend(),
        RemoteEnhancedBackend(
            GeminiTransport(config=config),
            default_timeout_s=config.analysis.remote_timeout_ms / 1000,
        ),
    ]


class AnalysisOrchestrator:
    """Coordinates capability discovery, cascade, escalation and merging.

    Args:
        config: Application configuration. Defaults to get_config().
        registry: Capability registry. Defaults to one built from config.
        backends: Backend adapters. Defaults to default_backends(config).
        monitor: Performance monitor. Defaults to the process-wide monitor.
        history: Result history. Defaults to the configured history file;
            pass False to disable.
        settings_provider: Returns privacy settings, called once per request.
        privacy_gate: Sanitizer and transmission audit log.
        cache: Result cache. Defaults to one sized from config when caching
            is enabled; pass False to disable.

    Attributes:
        last_attempts: Audit log of the most recent request, escalation included.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        registry: CapabilityRegistry | None = None,
        backends: Sequence[AnalysisBackend] | None = None,
        monitor: PerformanceMonitor | None = None,
        history: HistoryStore | None | bool = None,
        settings_provider: SettingsProvider | None = None,
        privacy_gate: PrivacyGate | None = None,
        cache: ResultCache | None | bool = None,
    ) -> None:
        self._config = config or get_config()
        self._registry = registry or CapabilityRegistry(self._config)
        self._monitor = monitor or get_monitor()
        self._gate = privacy_gate or PrivacyGate()
        self._settings_provider = settings_provider or self._config.privacy.to_settings
        self._executor = FallbackCascadeExecutor(
            backends if backends is not None else default_backends(self._config),
            monitor=self._monitor,
            privacy_gate=self._gate,
        )

        self._history: HistoryStore | None
        if history is False:
            self._history = None
        elif history is None or history is True:
            self._history = HistoryStore(
                self._config.paths.history_file, limit=self._config.analysis.history_limit
            )
        else:
            self._history = history

        self._cache: ResultCache | None
        if cache is False:
            self._cache = None
        elif cache is None or cache is True:
            analysis = self._config.analysis
            self._cache = (
                ResultCache(analysis.cache_size, analysis.cache_ttl_seconds)
                if analysis.cache_enabled or cache is True
                else None
            )
        else:
            self._cache = cache

        self.last_attempts: list[CascadeAttempt] = []

    # =========================================================================
    # Public API
    # =========================================================================

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Analyze one request.

        Raises:
            PrivacyViolationError: Only if unsanitized content would reach a
                remote backend.
        """
        privacy = self._read_settings().narrowed(request.options.allow_remote)
        capabilities = await self._registry.current()
        mode = request.mode
        timeout_ms = request.options.timeout_ms or self._config.analysis.remote_timeout_ms
        timeout_s = timeout_ms / 1000

        cache_key: str | None = None
        if self._cache is not None:
            cache_key = build_cache_key(
                fingerprint_content(request.content), mode, privacy.remote_permitted(), capabilities
            )
            cached = self._cache.load(cache_key)
            if cached is not None:
                logger.info(f"Answered {mode.value} request from cache")
                self.last_attempts = []
                return cached.with_markers(CACHED)

        logger.info(f"Analyzing {len(request.content.text)} chars in {mode.value} mode")

        report = await self._executor.run(
            request.content, mode, capabilities, privacy.remote_permitted(), timeout_s
        )
        attempts = list(report.attempts)
        local = report.result

        if mode == AnalysisMode.CLOUD_ONLY:
            if local.source == BackendId.REMOTE_ENHANCED:
                final = local
            else:
                final = mark_unescalated(local, failed=_remote_failed(attempts))
        else:
            final = await self._maybe_escalate(
                request.content, mode, local, privacy, capabilities, timeout_s, attempts
            )

        self.last_attempts = attempts
        if cache_key is not None:
            self._cache.store(cache_key, final)
        self._record_history(final)
        return final

    async def analyze_text(
        self,
        text: str,
        mode: AnalysisMode = AnalysisMode.QUICK,
        options: AnalysisOptions | None = None,
    ) -> AnalysisResult:
        """Convenience wrapper for plain text."""
        request = AnalysisRequest(
            content=Content(text=text), mode=mode, options=options or AnalysisOptions()
        )
        return await self.analyze(request)

    def capabilities(self) -> Capabilities:
        return self._registry.snapshot()

    def metrics(self) -> PerformanceMetrics:
        return self._monitor.metrics()

    @property
    def history(self) -> HistoryStore | None:
        return self._history

    # =========================================================================
    # Internals
    # =========================================================================

    def _read_settings(self) -> PrivacySettings:
        try:
            return self._settings_provider()
        except Exception as e:
            logger.warning(f"Privacy settings unavailable ({type(e).__name__}); staying local")
            return PrivacySettings()

    async def _maybe_escalate(
        self,
        content: Content,
        mode: AnalysisMode,
        local: AnalysisResult,
        privacy: PrivacySettings,
        capabilities: Capabilities,
        timeout_s: float,
        attempts: list[CascadeAttempt],
    ) -> AnalysisResult:
        reasons = escalation_reasons(
            local, mode, privacy, capabilities.network_available, self._config.escalation
        )
        remote = self._executor.backend(BackendId.REMOTE_ENHANCED)
        if not reasons or remote is None or not remote.is_available(capabilities):
            return mark_unescalated(local, failed=False)

        logger.info(f"Escalating to remote analysis: {', '.join(reasons)}")
        sanitized = self._gate.prepare_for_remote(content)

        start = time.perf_counter()
        error_kind: ErrorKind | None = None
        remote_result: AnalysisResult | None = None
        try:
            remote_result = await remote.analyze(sanitized, mode, timeout_s)
        except BackendError as e:
            error_kind = e.kind
            logger.warning(f"Escalation failed ({e.kind.value}): {e}")
        except PrivacyError:
            raise
        except Exception as e:
            error_kind = ErrorKind.UNEXPECTED
            logger.error(f"Escalation raised unexpectedly: {type(e).__name__}: {e}")

        attempt = CascadeAttempt(
            backend_id=remote.backend_id,
            outcome=AttemptOutcome.SUCCESS if remote_result else AttemptOutcome.FAILURE,
            duration_ms=(time.perf_counter() - start) * 1000,
            error_kind=error_kind,
        )
        attempts.append(attempt)
        self._monitor.record_escalation(attempt)

        if remote_result is None:
            return mark_unescalated(local, failed=True)
        return merge(local, remote_result)

    def _record_history(self, result: AnalysisResult) -> None:
        if self._history is None:
            return
        try:
            self._history.append(result)
        except Exception as e:
            logger.warning(f"Could not record result in history: {type(e).__name__}")


def _remote_failed(attempts: Sequence[CascadeAttempt]) -> bool:
    return any(
        a.backend_id == BackendId.REMOTE_ENHANCED and a.outcome == AttemptOutcome.FAILURE
        for a in attempts
    )
