"""Tests for the persisted result history."""

from __future__ import annotations

import json
from pathlib import Path

from chalamandra.core.history import HistoryStore
from chalamandra.core.models import AnalysisResult, BackendId


def result(risk: int) -> AnalysisResult:
    return AnalysisResult(overall_risk=risk, confidence=0.7, source=BackendId.LOCAL_HEURISTIC)


class TestHistoryStore:
    """Tests for HistoryStore."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert len(HistoryStore(tmp_path / "history.json")) == 0

    def test_append_persists_most_recent_first(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "history.json"
        store = HistoryStore(path)

        assert store.append(result(10)) is True
        assert store.append(result(20)) is True

        reloaded = HistoryStore(path)
        assert [r.overall_risk for r in reloaded.recent()] == [20, 10]
        assert isinstance(json.loads(path.read_text(encoding="utf-8")), list)

    def test_limit_caps_entries(self, tmp_path: Path) -> None:
        store = HistoryStore(tmp_path / "history.json", limit=3)
        for risk in range(5):
            store.append(result(risk))

        assert len(store) == 3
        assert [r.overall_risk for r in store.recent()] == [4, 3, 2]
        assert len(HistoryStore(tmp_path / "history.json", limit=3)) == 3

    def test_recent_limit(self, tmp_path: Path) -> None:
        store = HistoryStore(tmp_path / "history.json")
        for risk in range(5):
            store.append(result(risk))

        assert len(store.recent(2)) == 2

    def test_corrupt_file_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        path.write_text("{not json", encoding="utf-8")

        store = HistoryStore(path)

        assert len(store) == 0
        assert store.append(result(5)) is True

    def test_malformed_entries_are_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        good = result(5).to_dict()
        path.write_text(json.dumps([good, {"confidence": 0}]), encoding="utf-8")

        assert len(HistoryStore(path)) == 1

    def test_clear(self, tmp_path: Path) -> None:
        store = HistoryStore(tmp_path / "history.json")
        store.append(result(5))

        assert store.clear() is True
        assert len(HistoryStore(tmp_path / "history.json")) == 0

    def test_write_failure_returns_false(self, tmp_path: Path) -> None:
        """An unwritable location is reported, never raised."""
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = HistoryStore(blocker / "history.json")

        assert store.append(result(5)) is False
        assert len(store) == 1

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        store = HistoryStore(tmp_path / "history.json")
        store.append(result(5))

        assert [p.name for p in tmp_path.iterdir()] == ["history.json"]
