"""Demonstration script for the analysis orchestrator.

Runs four reference messages through a fully local setup:
1. Sincere thanks, quick mode, no remote
2. Sarcasm in deep mode, escalated to a simulated remote service
3. Cloud-only request whose remote call times out
4. A message with an email address, showing what the remote side receives

The remote service is simulated with staged delays, so nothing leaves the
machine and no API key is needed.
"""

import asyncio
import tempfile
from pathlib import Path

from chalamandra.ai.heuristic import LocalHeuristicBackend
from chalamandra.ai.monitor import PerformanceMonitor
from chalamandra.ai.orchestrator import AnalysisOrchestrator
from chalamandra.ai.remote import RemoteEnhancedBackend, SimulatedRemoteTransport
from chalamandra.config import AppConfig, PathsConfig, RemoteConfig
from chalamandra.core.capabilities import CapabilityRegistry
from chalamandra.core.models import AnalysisMode, AnalysisOptions
from chalamandra.core.privacy import PrivacyGate, PrivacyLevel, PrivacySettings

SCENARIOS = [
    (
        "Sincere thanks",
        "Thank you for the excellent work, really appreciate the team",
        AnalysisMode.QUICK,
        AnalysisOptions(allow_remote=False),
    ),
    (
        "Ambiguous sarcasm",
        "I'm absolutely THRILLED the deadline moved up, nothing makes me happier "
        "than working weekends",
        AnalysisMode.DEEP,
        AnalysisOptions(),
    ),
    (
        "Remote timeout",
        "Per my last email, the report is still missing.",
        AnalysisMode.CLOUD_ONLY,
        AnalysisOptions(timeout_ms=200),
    ),
    (
        "Email address",
        "Great, just great. Loop in jane@example.com before it gets worse.",
        AnalysisMode.CLOUD_ONLY,
        AnalysisOptions(),
    ),
]


class PrintingTransport(SimulatedRemoteTransport):
    """Simulated remote that shows the text it was handed."""

    async def __call__(self, payload):
        print(f"  remote received: {payload['text']!r}")
        return await super().__call__(payload)


def build_orchestrator(workdir: Path, gate: PrivacyGate) -> AnalysisOrchestrator:
    config = AppConfig(
        paths=PathsConfig(config_dir=workdir),
        remote=RemoteConfig(probe_network=False),
    )
    probes = {
        "on_device_generative": lambda: False,
        "local_model": lambda: True,
        "remote_enhanced": lambda: True,
        "network_available": lambda: True,
    }
    settings = PrivacySettings(privacy_level=PrivacyLevel.STANDARD, allow_remote=True)
    return AnalysisOrchestrator(
        config=config,
        registry=CapabilityRegistry(config, probes=probes),
        backends=[
            LocalHeuristicBackend(),
            RemoteEnhancedBackend(PrintingTransport(stages=(0.1, 0.2, 0.2))),
        ],
        monitor=PerformanceMonitor(),
        settings_provider=lambda: settings,
        privacy_gate=gate,
    )


async def run_demo(orchestrator: AnalysisOrchestrator) -> None:
    for number, (title, text, mode, options) in enumerate(SCENARIOS, 1):
        print("=" * 70)
        print(f"DEMO {number}: {title} ({mode.value})")
        print("=" * 70)

        result = await orchestrator.analyze_text(text, mode, options)

        for attempt in orchestrator.last_attempts:
            error = f" ({attempt.error_kind.value})" if attempt.error_kind else ""
            print(
                f"  {attempt.backend_id.value}: {attempt.outcome.value}{error}"
                f" in {attempt.duration_ms:.0f}ms"
            )
        print(f"  source:     {result.source.value}")
        print(f"  tone:       {result.tone}")
        print(f"  risk:       {result.overall_risk}/100")
        print(f"  sarcasm:    {result.sarcasm_score}/100")
        print(f"  confidence: {result.confidence:.2f}")
        if result.markers:
            print(f"  markers:    {', '.join(result.markers)}")
        print()


def main() -> None:
    gate = PrivacyGate()
    with tempfile.TemporaryDirectory() as workdir:
        orchestrator = build_orchestrator(Path(workdir), gate)
        asyncio.run(run_demo(orchestrator))

        metrics = orchestrator.metrics()
        print("=" * 70)
        print("Summary")
        print("=" * 70)
        print(f"  cascades:            {metrics.total_cascades}")
        print(f"  first-try successes: {metrics.success_rate:.0%}")
        print(f"  escalations:         {metrics.escalations}")
        print(f"  transmissions:       {gate.get_transmission_summary()}")
        print(f"  history entries:     {len(orchestrator.history or [])}")


if __name__ == "__main__":
    main()
