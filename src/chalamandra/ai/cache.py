"""In-memory cache of analysis results.

Repeated requests for the same content, in the same mode, under the same
privacy decision and capability snapshot, are answered from memory instead of
running the cascade again.

Cached results are:
- Keyed by a hash of the content, never the content itself
- Held in memory only and never written to disk
- Bounded in number (least recently used entries go first)
- Expired after a fixed age
- Never degraded or failed-escalation results, which may succeed next time

Example:
    >>> cache = ResultCache(max_entries=64)
    >>> key = build_cache_key(fingerprint_content(content), mode, False, capabilities)
    >>> cache.load(key) is None
    True
    >>> cache.store(key, result)
    True
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

from chalamandra.ai.merger import ESCALATION_FAILED
from chalamandra.core.models import AnalysisMode, AnalysisResult, Capabilities, Content

logger = logging.getLogger(__name__)

CACHED = "cached"
CACHE_VERSION = "1"


# =============================================================================
# Data Structures
# =============================================================================


class CacheEntry(BaseModel):
    """One cached result and when it was stored (monotonic seconds)."""

    model_config = ConfigDict(frozen=True)

    result: AnalysisResult
    created_at: float


# =============================================================================
# Helper Functions
# =============================================================================


def fingerprint_content(content: Content) -> str:
    """Create a deterministic fingerprint of a piece of content.

    Covers text, image references and metadata. Metadata key order does not
    matter.

    Returns:
        Full SHA-256 hex digest (64 characters).
    """
    data = content.model_dump(mode="json")
    json_str = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(json_str.encode("utf-8")).hexdigest()


def build_cache_key(
    content_fingerprint: str,
    mode: AnalysisMode,
    remote_permitted: bool,
    capabilities: Capabilities,
) -> str:
    """Combine everything that decides a request's result into one key.

    Args:
        content_fingerprint: From fingerprint_content().
        mode: Requested analysis mode.
        remote_permitted: Privacy decision for the request.
        capabilities: Snapshot the request runs against.

    Returns:
        First 32 hex characters of SHA-256 hash.
    """
    flags = ",".join(f"{name}={int(value)}" for name, value in sorted(capabilities.flags().items()))
    combined = (
        f"v{CACHE_VERSION}:{content_fingerprint}:{mode.value}:"
        f"remote={int(remote_permitted)}:{flags}"
    )
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:32]


# =============================================================================
# Main Cache Class
# =============================================================================


class ResultCache:
    """Bounded, expiring, least-recently-used result cache.

    Args:
        max_entries: Entries kept before the least recently used is evicted.
        ttl_seconds: Age after which an entry is treated as a miss.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 128,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def cacheable(result: AnalysisResult) -> bool:
        """Degraded and failed-escalation results are never cached."""
        return not result.is_degraded() and ESCALATION_FAILED not in result.markers

    def load(self, key: str) -> AnalysisResult | None:
        """Return the cached result for a key, or None on a miss."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() - entry.created_at >= self.ttl_seconds:
            del self._entries[key]
            self._misses += 1
            logger.debug("Cache entry expired")
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.result

    def store(self, key: str, result: AnalysisResult) -> bool:
        """Cache a result.

        Returns:
            True if stored, False if the result is not cacheable.
        """
        if not self.cacheable(result):
            return False
        self._entries[key] = CacheEntry(result=result, created_at=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return True

    def clear(self) -> int:
        """Drop every entry. Returns how many were dropped."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> dict[str, Any]:
        return {"entries": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        return len(self._entries)
