"""Append-only, capped history of analysis results.

Results are written as a JSON array, most recent first. Message text is not
part of an AnalysisResult, so the history never contains the analyzed content.

Writes are atomic (temp file + rename). Failures are logged and reported as
False; this module NEVER raises from append().
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import deque
from pathlib import Path

from pydantic import ValidationError

from chalamandra.core.models import AnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class HistoryStore:
    """Persisted list of the most recent results.

    Attributes:
        path: JSON file location.
        limit: Maximum number of results kept.
    """

    def __init__(self, path: Path, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.path = Path(path)
        self.limit = limit
        self._entries: deque[AnalysisResult] = deque(self._load(), maxlen=limit)

    def _load(self) -> list[AnalysisResult]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable history file {self.path}: {type(e).__name__}")
            return []
        if not isinstance(raw, list):
            logger.warning(f"Ignoring history file {self.path}: expected a list")
            return []

        entries = []
        for item in raw[: self.limit]:
            try:
                entries.append(AnalysisResult.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed history entry")
        return entries

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, result: AnalysisResult) -> bool:
        """Record a result and persist the capped list.

        Returns:
            True if the file was written, False otherwise.
        """
        self._entries.appendleft(result)
        return self._save()

    def recent(self, limit: int = 10) -> list[AnalysisResult]:
        """Return up to ``limit`` results, most recent first."""
        return list(self._entries)[: max(limit, 0)]

    def clear(self) -> bool:
        """Remove all entries."""
        self._entries.clear()
        return self._save()

    def _save(self) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps([entry.to_dict() for entry in self._entries], indent=2)

            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp", prefix=".history_")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                Path(temp_path).replace(self.path)
            except Exception:
                Path(temp_path).unlink(missing_ok=True)
                raise

            logger.debug(f"History saved ({len(self._entries)} entries)")
            return True
        except Exception as e:
            logger.warning(f"History save failed: {type(e).__name__}")
            return False
