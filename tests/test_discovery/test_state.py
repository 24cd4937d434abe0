"""Tests for the scan state store — persistence, atomicity and corruption handling."""

from __future__ import annotations

import json

import pytest

from skillminer.discovery.errors import CorruptStateError
from skillminer.discovery.models import ScanStats, SessionWatermark
from skillminer.discovery.state import STATE_VERSION, ScanStateStore


def _wm(session_id: str = "s1", project: str = "proj", offset: int = 100) -> SessionWatermark:
    return SessionWatermark(
        session_id=session_id,
        project_slug=project,
        offset=offset,
        file_size=offset,
        file_mtime=1_700_000_000.5,
        scanned_at="2026-01-01T00:00:00+00:00",
    )


class TestLoad:
    def test_missing_file_is_empty(self, tmp_path):
        store = ScanStateStore(tmp_path / "state.json")
        state = store.load()
        assert state.version == STATE_VERSION
        assert state.sessions == {}
        assert state.exclude_projects == []
        assert store.get("proj:s1") is None

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        store = ScanStateStore(path)
        store.load()
        store.update("proj:s1", _wm())
        store.add_exclude("scratch")
        store.set_stats(ScanStats(total_sessions_tracked=1, new_sessions=1), "2026-01-01T00:00:00Z")
        store.save()

        reloaded = ScanStateStore(path)
        state = reloaded.load(strict=True)
        assert reloaded.get("proj:s1") == _wm()
        assert state.exclude_projects == ["scratch"]
        assert reloaded.stats().new_sessions == 1
        assert state.last_scan_at == "2026-01-01T00:00:00Z"

    def test_unknown_fields_preserved(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": 1, "sessions": {}, "futureField": {"a": 1}}))
        store = ScanStateStore(path)
        store.load(strict=True)
        store.save()
        assert json.loads(path.read_text())["futureField"] == {"a": 1}

    @pytest.mark.parametrize(
        "content",
        [
            "{torn",
            "[]",
            json.dumps({"version": 99, "sessions": {}}),
            json.dumps({"version": 1, "sessions": []}),
            json.dumps({"version": 1, "sessions": {"p:s": {"sessionId": "s"}}}),
        ],
    )
    def test_corrupt_strict_raises(self, tmp_path, content):
        path = tmp_path / "state.json"
        path.write_text(content)
        with pytest.raises(CorruptStateError):
            ScanStateStore(path).load(strict=True)

    def test_corrupt_lenient_is_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{torn")
        state = ScanStateStore(path).load()
        assert state.sessions == {}


class TestSave:
    def test_no_temp_files_left(self, tmp_path):
        store = ScanStateStore(tmp_path / "state.json")
        store.load()
        store.update("proj:s1", _wm())
        store.save()
        store.save()
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_failed_write_keeps_previous_file(self, tmp_path, monkeypatch):
        path = tmp_path / "state.json"
        store = ScanStateStore(path)
        store.load()
        store.update("proj:s1", _wm(offset=10))
        store.save()
        before = path.read_text()

        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("skillminer.discovery.state.os.fsync", boom)
        store.update("proj:s1", _wm(offset=20))
        with pytest.raises(OSError):
            store.save()
        assert path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_excludes(self, tmp_path):
        store = ScanStateStore(tmp_path / "state.json")
        store.load()
        store.add_exclude("a")
        store.add_exclude("a")
        store.add_exclude("b")
        store.remove_exclude("a")
        assert store.excluded_projects() == ["b"]

    def test_reset(self, tmp_path):
        store = ScanStateStore(tmp_path / "state.json")
        store.load()
        store.update("proj:s1", _wm())
        store.reset()
        assert store.get("proj:s1") is None
