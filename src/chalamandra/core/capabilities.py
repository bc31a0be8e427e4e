"""Capability Registry - which analysis backends are usable right now.

Detection only checks that a feature exists: an installed package, an enabled
configuration flag, a configured API key, a resolvable remote host. It never
invokes a backend. Each probe is a plain callable so tests and embedders can
swap them; a probe that raises counts as "not available".

Probes can block (DNS lookup, OS keyring). Code running on the event loop
reads capabilities with ``await registry.current()``, which hands a stale
refresh to a worker thread the way asyncio resolves host names; the
synchronous snapshot() is for the CLI and other blocking callers.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import time
from importlib.util import find_spec
from typing import Callable

from chalamandra.config import APIKeyManager, AppConfig, get_config
from chalamandra.core.models import Capabilities

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]

CAPABILITY_NAMES = ("on_device_generative", "local_model", "remote_enhanced", "network_available")


def _package_installed(name: str) -> bool:
    try:
        return find_spec(name) is not None
    except (ImportError, ValueError):
        # Parent package missing, e.g. "google" for "google.generativeai".
        return False


def default_probes(config: AppConfig) -> dict[str, Probe]:
    """Build the standard probe set for a configuration.

    Args:
        config: Application configuration.

    Returns:
        Mapping of capability name to probe callable.
    """

    def on_device_generative() -> bool:
        return config.ondevice.enabled and _package_installed("httpx")

    def remote_enhanced() -> bool:
        return (
            config.remote.enabled
            and _package_installed("google.generativeai")
            and APIKeyManager().get_key() is not None
        )

    def network_available() -> bool:
        if not config.remote.probe_network:
            return False
        return bool(socket.getaddrinfo(config.remote.probe_host, 443))

    return {
        "on_device_generative": on_device_generative,
        "local_model": lambda: True,
        "remote_enhanced": remote_enhanced,
        "network_available": network_available,
    }


class CapabilityRegistry:
    """Owns the current Capabilities snapshot.

    The snapshot is replaced as a whole on refresh, so readers always see a
    consistent set of flags.

    Example:
        >>> registry = CapabilityRegistry(probes={"local_model": lambda: True})
        >>> registry.snapshot().local_model
        True
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        probes: dict[str, Probe] | None = None,
        refresh_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or get_config()
        self._probes = default_probes(self._config)
        if probes:
            self._probes.update(probes)
        self._refresh_interval = (
            refresh_interval
            if refresh_interval is not None
            else self._config.analysis.capability_refresh_seconds
        )
        self._clock = clock
        self._snapshot: Capabilities | None = None
        self._taken_at = 0.0
        self._pending: asyncio.Task[Capabilities] | None = None

    def _run_probe(self, name: str) -> bool:
        probe = self._probes.get(name)
        if probe is None:
            return False
        try:
            return bool(probe())
        except Exception as e:
            logger.debug(f"Capability probe '{name}' failed: {type(e).__name__}")
            return False

    def detect(self) -> Capabilities:
        """Probe every capability and return a fresh snapshot.

        Side-effect free: the stored snapshot is not touched.
        """
        flags = {name: self._run_probe(name) for name in CAPABILITY_NAMES}
        return Capabilities(**flags)

    def _store(self, snapshot: Capabilities) -> Capabilities:
        self._snapshot = snapshot
        self._taken_at = self._clock()
        enabled = [name for name, value in snapshot.flags().items() if value]
        logger.info(f"Capabilities refreshed: {', '.join(enabled) or 'none'}")
        return snapshot

    def _is_stale(self) -> bool:
        return self._snapshot is None or self._clock() - self._taken_at >= self._refresh_interval

    def refresh(self) -> Capabilities:
        """Re-detect and replace the stored snapshot."""
        return self._store(self.detect())

    def snapshot(self) -> Capabilities:
        """Return the current snapshot, refreshing it when stale.

        Blocks while probes run. Use current() from a coroutine.
        """
        if self._is_stale():
            return self.refresh()
        assert self._snapshot is not None
        return self._snapshot

    async def refresh_async(self) -> Capabilities:
        """Re-detect off the event loop and replace the stored snapshot.

        Concurrent callers share one in-flight detection.
        """
        if self._pending is None or self._pending.done():
            self._pending = asyncio.ensure_future(asyncio.to_thread(self.detect))
        snapshot = await asyncio.shield(self._pending)
        if self._snapshot is not snapshot:
            self._store(snapshot)
        return snapshot

    async def current(self) -> Capabilities:
        """Return the current snapshot without blocking the event loop.

        A fresh snapshot is returned immediately. A stale one is re-detected
        in a worker thread while the caller is suspended.
        """
        if self._is_stale():
            return await self.refresh_async()
        assert self._snapshot is not None
        return self._snapshot
