"""Scan state store — persisted per-session watermarks.

The state is one JSON document per corpus root::

    {
      "version": 1,
      "sessions": {"<project-slug>:<session-id>": {...watermark...}},
      "excludeProjects": [...],
      "lastScanAt": "...",
      "lastScanStats": {...}
    }

Unknown top-level fields are preserved so newer writers don't lose data
when an older reader saves.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from .errors import CorruptStateError
from .models import ScanState, ScanStats, SessionWatermark

logger = logging.getLogger(__name__)

STATE_VERSION = 1

_KNOWN_FIELDS = {"version", "sessions", "excludeProjects", "lastScanAt", "lastScanStats"}


def _decode_state(path: Path, raw: str) -> ScanState:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptStateError(path, f"invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise CorruptStateError(path, "top level is not an object")
    if data.get("version") != STATE_VERSION:
        raise CorruptStateError(path, f"unsupported version {data.get('version')!r}")

    sessions_raw = data.get("sessions", {})
    excludes = data.get("excludeProjects", [])
    if not isinstance(sessions_raw, dict) or not isinstance(excludes, list):
        raise CorruptStateError(path, "malformed sessions or excludeProjects")

    try:
        sessions = {key: SessionWatermark.from_dict(wm) for key, wm in sessions_raw.items()}
        stats = ScanStats.from_dict(data.get("lastScanStats") or {})
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorruptStateError(path, f"malformed watermark ({e})") from e

    return ScanState(
        version=STATE_VERSION,
        sessions=sessions,
        exclude_projects=[str(p) for p in excludes],
        last_scan_at=str(data.get("lastScanAt", "")),
        last_scan_stats=stats,
        extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
    )


def _encode_state(state: ScanState) -> dict[str, Any]:
    data: dict[str, Any] = dict(state.extra)
    data.update(
        {
            "version": state.version,
            "sessions": {key: wm.to_dict() for key, wm in sorted(state.sessions.items())},
            "excludeProjects": sorted(set(state.exclude_projects)),
            "lastScanAt": state.last_scan_at,
            "lastScanStats": state.last_scan_stats.to_dict(),
        }
    )
    return data


def atomic_write_json(path: Path, data: Any, prefix: str = ".state_") -> None:
    """Write JSON via temp file + fsync + rename so readers never see a torn file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    json_data = json.dumps(data, indent=2)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(json_data)
            f.flush()
            os.fsync(f.fileno())
        Path(tmp_path).replace(path)
    except Exception:
        try:
            Path(tmp_path).unlink()
        except OSError:
            pass
        raise


class ScanStateStore:
    """Owns the scan state file for one corpus root.

    Thread-safe: all reads and writes of the in-memory state go through one
    lock, and ``save`` replaces the file atomically.

    Args:
        path: Location of the JSON state file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._state: ScanState | None = None

    # -- persistence --------------------------------------------------------

    def load(self, strict: bool = False) -> ScanState:
        """Load state from disk, replacing anything held in memory.

        A missing file is an empty state. A corrupt file raises
        ``CorruptStateError`` when ``strict``; otherwise it is logged and
        treated as empty so the caller rescans everything.
        """
        with self._lock:
            try:
                raw = self.path.read_text(encoding="utf-8")
            except FileNotFoundError:
                self._state = ScanState()
                return self._state
            except OSError as e:
                if strict:
                    raise CorruptStateError(self.path, str(e)) from e
                logger.warning("Failed to read scan state from %s: %s", self.path, e)
                self._state = ScanState()
                return self._state

            try:
                self._state = _decode_state(self.path, raw)
            except CorruptStateError as e:
                if strict:
                    raise
                logger.warning("%s; starting from an empty state", e)
                self._state = ScanState()
            return self._state

    def save(self, state: ScanState | None = None) -> None:
        """Persist ``state`` (or the in-memory state) atomically."""
        with self._lock:
            if state is not None:
                self._state = state
            atomic_write_json(self.path, _encode_state(self._current()))

    flush = save

    def reset(self) -> None:
        """Forget every watermark in memory (the file is untouched until ``save``)."""
        with self._lock:
            self._state = ScanState()

    # -- queries ------------------------------------------------------------

    def _current(self) -> ScanState:
        if self._state is None:
            self._state = ScanState()
        return self._state

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._current()

    def get(self, session_key: str) -> SessionWatermark | None:
        with self._lock:
            return self._current().sessions.get(session_key)

    def update(self, session_key: str, watermark: SessionWatermark) -> None:
        with self._lock:
            self._current().sessions[session_key] = watermark

    def stats(self) -> ScanStats:
        with self._lock:
            return self._current().last_scan_stats

    def set_stats(self, stats: ScanStats, scanned_at: str) -> None:
        with self._lock:
            state = self._current()
            state.last_scan_stats = stats
            state.last_scan_at = scanned_at

    # -- project excludes ---------------------------------------------------

    def excluded_projects(self) -> list[str]:
        with self._lock:
            return list(self._current().exclude_projects)

    def add_exclude(self, project_slug: str) -> None:
        with self._lock:
            excludes = self._current().exclude_projects
            if project_slug not in excludes:
                excludes.append(project_slug)

    def remove_exclude(self, project_slug: str) -> None:
        with self._lock:
            excludes = self._current().exclude_projects
            if project_slug in excludes:
                excludes.remove(project_slug)
