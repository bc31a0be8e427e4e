"""Analysis backends and the orchestration around them.

The client.py module is the SOLE interface to the Gemini API; no other file
imports google-generativeai.

Exports:
    - AnalysisOrchestrator: single entry point for analyzing content
    - FallbackCascadeExecutor: ordered backend attempts with a guaranteed result
    - LocalHeuristicBackend, OnDeviceGenerativeBackend, RemoteEnhancedBackend
    - PerformanceMonitor / get_monitor: process-wide cascade statistics
    - should_escalate, merge, explain: policy, merging and explanations
    - BackendError hierarchy for typed backend failures
"""

from chalamandra.ai.backends import (
    AnalysisBackend,
    BackendError,
    BackendTimeoutError,
    BackendUnavailableError,
    InvalidResponseError,
    RemoteUnavailableError,
)
from chalamandra.ai.cascade import CascadeReport, FallbackCascadeExecutor
from chalamandra.ai.escalation import should_escalate
from chalamandra.ai.explanations import Explanation, explain
from chalamandra.ai.heuristic import LocalHeuristicBackend
from chalamandra.ai.merger import merge
from chalamandra.ai.monitor import PerformanceMonitor, get_monitor
from chalamandra.ai.ondevice import OnDeviceGenerativeBackend
from chalamandra.ai.orchestrator import AnalysisOrchestrator
from chalamandra.ai.remote import GeminiTransport, RemoteEnhancedBackend, SimulatedRemoteTransport

__all__ = [
    "AnalysisBackend",
    "AnalysisOrchestrator",
    "BackendError",
    "BackendTimeoutError",
    "BackendUnavailableError",
    "CascadeReport",
    "Explanation",
    "FallbackCascadeExecutor",
    "GeminiTransport",
    "InvalidResponseError",
    "LocalHeuristicBackend",
    "OnDeviceGenerativeBackend",
    "PerformanceMonitor",
    "RemoteEnhancedBackend",
    "RemoteUnavailableError",
    "SimulatedRemoteTransport",
    "explain",
    "get_monitor",
    "merge",
    "should_escalate",
]
