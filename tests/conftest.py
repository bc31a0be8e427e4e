"""Central Pytest Fixtures for Chalamandra.

This module provides reusable configuration, capability registries, fake
backends and fake remote transports across all test modules. No fixture
touches the network, the system keyring or the user's home directory.

Fixtures included:
- Configuration: app_config, remote_privacy, local_privacy
- Capabilities: make_registry, make_capabilities
- Backends: fake_backend, recording_transport, remote_payload
- Orchestration: monitor, make_orchestrator
- Sample text: friendly_text, sarcastic_text
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from chalamandra.ai.backends import AnalysisBackend
from chalamandra.ai.heuristic import LocalHeuristicBackend
from chalamandra.ai.monitor import PerformanceMonitor
from chalamandra.ai.orchestrator import AnalysisOrchestrator
from chalamandra.ai.remote import RemoteEnhancedBackend
from chalamandra.config import AppConfig, PathsConfig, RemoteConfig, reset_config
from chalamandra.core.capabilities import CapabilityRegistry
from chalamandra.core.history import HistoryStore
from chalamandra.core.models import (
    AnalysisMode,
    AnalysisResult,
    BackendId,
    Capabilities,
    Content,
)
from chalamandra.core.privacy import PrivacyGate, PrivacyLevel, PrivacySettings

FRIENDLY_TEXT = "Thank you for the excellent work, really appreciate the team"
SARCASTIC_TEXT = (
    "I'm absolutely THRILLED the deadline moved up, nothing makes me happier "
    "than working weekends"
)


# =============================================================================
# Helper Classes
# =============================================================================


class FakeBackend(AnalysisBackend):
    """Backend double that returns a fixed result or raises a fixed error.

    Records every call as (content, mode, timeout_s).
    """

    def __init__(
        self,
        backend_id: BackendId,
        result: AnalysisResult | None = None,
        error: Exception | None = None,
        available: bool = True,
        requires_sanitized: bool = False,
    ) -> None:
        self.backend_id = backend_id
        self.requires_sanitized = requires_sanitized
        self._result = result
        self._error = error
        self._available = available
        self.calls: list[tuple[Content, AnalysisMode, float | None]] = []

    def is_available(self, capabilities: Capabilities) -> bool:
        return self._available

    async def analyze(
        self, content: Content, mode: AnalysisMode, timeout_s: float | None = None
    ) -> AnalysisResult:
        self.calls.append((content, mode, timeout_s))
        if self._error is not None:
            raise self._error
        if self._result is not None:
            return self._result
        return AnalysisResult(confidence=0.8, source=self.backend_id)


class RecordingTransport:
    """Remote transport double that records payloads.

    Optionally sleeps before answering or raises instead of answering.
    """

    def __init__(
        self,
        response: Any = None,
        delay_s: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.response = response
        self.delay_s = delay_s
        self.error = error
        self.payloads: list[dict[str, Any]] = []

    async def __call__(self, payload: dict[str, Any]) -> Any:
        self.payloads.append(payload)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return self.response


def make_remote_payload(**overrides: Any) -> dict[str, Any]:
    """A well-formed remote answer."""
    data: dict[str, Any] = {
        "strategic": {"power_dynamics": "balanced", "agenda": "vent about the schedule"},
        "emotional": {"tone": "sarcastic", "subtext": "frustration with the deadline"},
        "relational": {"trust_score": 40, "collaboration_score": 35},
        "overall_risk": 60,
        "sarcasm_score": 90,
        "confidence": 0.9,
        "recommendations": ["Say directly that the new deadline is a problem."],
        "detected_patterns": ["sarcasm"],
    }
    data.update(overrides)
    return data


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep real API keys and the system keyring out of tests."""
    for name in ("GEMINI_API_KEY", "CHALAMANDRA_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("chalamandra.config.KEYRING_AVAILABLE", False)
    reset_config()
    yield
    reset_config()


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration rooted in a temporary directory, network probe off."""
    return AppConfig(
        paths=PathsConfig(config_dir=tmp_path),
        remote=RemoteConfig(probe_network=False),
    )


@pytest.fixture
def remote_privacy() -> PrivacySettings:
    """User opted in to remote enhancement."""
    return PrivacySettings(privacy_level=PrivacyLevel.STANDARD, allow_remote=True)


@pytest.fixture
def local_privacy() -> PrivacySettings:
    """Default, most restrictive settings."""
    return PrivacySettings()


# =============================================================================
# Capability Fixtures
# =============================================================================


@pytest.fixture
def make_capabilities() -> Callable[..., Capabilities]:
    """Factory for capability snapshots."""

    def _make(
        on_device: bool = False, remote: bool = False, network: bool = False, local: bool = True
    ) -> Capabilities:
        return Capabilities(
            on_device_generative=on_device,
            local_model=local,
            remote_enhanced=remote,
            network_available=network,
        )

    return _make


@pytest.fixture
def make_registry(app_config: AppConfig) -> Callable[..., CapabilityRegistry]:
    """Factory for registries whose probes return fixed values."""

    def _make(
        on_device: bool = False, remote: bool = False, network: bool = False, local: bool = True
    ) -> CapabilityRegistry:
        flags = {
            "on_device_generative": on_device,
            "local_model": local,
            "remote_enhanced": remote,
            "network_available": network,
        }
        probes = {name: (lambda value=value: value) for name, value in flags.items()}
        return CapabilityRegistry(app_config, probes=probes)

    return _make


# =============================================================================
# Backend Fixtures
# =============================================================================


@pytest.fixture
def fake_backend() -> type[FakeBackend]:
    """The FakeBackend class, for building custom cascades."""
    return FakeBackend


@pytest.fixture
def recording_transport() -> type[RecordingTransport]:
    """The RecordingTransport class, for building remote backends."""
    return RecordingTransport


@pytest.fixture
def remote_payload() -> Callable[..., dict[str, Any]]:
    """Factory for well-formed remote answers."""
    return make_remote_payload


@pytest.fixture
def monitor() -> PerformanceMonitor:
    """A fresh monitor, independent of the process-wide one."""
    return PerformanceMonitor()


@pytest.fixture
def make_orchestrator(
    app_config: AppConfig,
    make_registry: Callable[..., CapabilityRegistry],
    monitor: PerformanceMonitor,
    tmp_path: Path,
) -> Callable[..., AnalysisOrchestrator]:
    """Factory for orchestrators with a heuristic backend and an optional remote.

    Args (of the returned factory):
        transport: Remote transport. None leaves out the remote backend.
        privacy: Privacy settings returned by the provider.
        remote_available: Whether the registry reports remote and network.
        extra_backends: Additional backends, e.g. a fake on-device backend.
        cache: Result cache. Off unless a test asks for one.
    """

    def _make(
        transport: Any = None,
        privacy: PrivacySettings | None = None,
        remote_available: bool = False,
        extra_backends: list[AnalysisBackend] | None = None,
        gate: PrivacyGate | None = None,
        cache: Any = False,
    ) -> AnalysisOrchestrator:
        backends: list[AnalysisBackend] = [LocalHeuristicBackend()]
        if transport is not None:
            backends.append(RemoteEnhancedBackend(transport))
        backends.extend(extra_backends or [])
        settings = privacy or PrivacySettings()
        return AnalysisOrchestrator(
            config=app_config,
            registry=make_registry(remote=remote_available, network=remote_available),
            backends=backends,
            monitor=monitor,
            history=HistoryStore(tmp_path / "history.json"),
            settings_provider=lambda: settings,
            privacy_gate=gate,
            cache=cache,
        )

    return _make


# =============================================================================
# Sample Text
# =============================================================================


@pytest.fixture
def friendly_text() -> str:
    return FRIENDLY_TEXT


@pytest.fixture
def sarcastic_text() -> str:
    return SARCASTIC_TEXT
