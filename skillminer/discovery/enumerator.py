"""Session enumerator — find transcript files under ``<claude_dir>/projects``.

Claude Code keeps one directory per project (a slug of its path). Recent
versions also write a ``sessions-index.json`` there with metadata per
session; when it is present and valid it supplies creation times, first
prompt and git branch. Transcripts missing from the index are still picked
up from the directory listing. Subagent transcripts sit in a per-session
subdirectory and are never enumerated as sessions of their own.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .models import SessionInfo

logger = logging.getLogger(__name__)

_INDEX_FILE = "sessions-index.json"


def _read_index(project_dir: Path) -> list[dict[str, Any]]:
    index_path = project_dir / _INDEX_FILE
    try:
        data = json.loads(index_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return []
    except (json.JSONDecodeError, OSError) as e:
        logger.debug("Ignoring unreadable %s: %s", index_path, e)
        return []

    if (
        not isinstance(data, dict)
        or not isinstance(data.get("version"), int)
        or not isinstance(data.get("entries"), list)
    ):
        logger.debug("Ignoring malformed %s", index_path)
        return []
    return [e for e in data["entries"] if isinstance(e, dict) and isinstance(e.get("sessionId"), str)]


def _stat_session(
    session_id: str, slug: str, path: Path, meta: dict[str, Any] | None = None
) -> SessionInfo | None:
    try:
        st = path.stat()
    except OSError:
        return None
    meta = meta or {}
    return SessionInfo(
        session_id=session_id,
        project_slug=slug,
        path=path,
        file_mtime=st.st_mtime,
        file_size=st.st_size,
        created=str(meta.get("created", "")),
        modified=str(meta.get("modified", "")),
        first_prompt=str(meta.get("firstPrompt", "")),
        git_branch=str(meta.get("gitBranch", "")),
    )


def enumerate_project(project_dir: Path) -> list[SessionInfo]:
    """Enumerate sessions of one project directory."""
    slug = project_dir.name
    sessions: dict[str, SessionInfo] = {}

    for meta in _read_index(project_dir):
        session_id = meta["sessionId"]
        candidates = [project_dir / f"{session_id}.jsonl"]
        if isinstance(meta.get("fullPath"), str):
            candidates.insert(0, Path(meta["fullPath"]))
        for path in candidates:
            info = _stat_session(session_id, slug, path, meta)
            if info is not None:
                sessions[session_id] = info
                break
        else:
            logger.debug("Indexed session %s in %s has no transcript", session_id, slug)

    for path in project_dir.glob("*.jsonl"):
        if path.stem not in sessions:
            info = _stat_session(path.stem, slug, path)
            if info is not None:
                sessions[path.stem] = info

    return [sessions[k] for k in sorted(sessions)]


def enumerate_sessions(claude_dir: Path) -> list[SessionInfo]:
    """Enumerate every session transcript, ordered by project slug then session id."""
    projects_dir = Path(claude_dir) / "projects"
    if not projects_dir.is_dir():
        return []

    result: list[SessionInfo] = []
    for project_dir in sorted(projects_dir.iterdir()):
        if not project_dir.is_dir() or project_dir.name.startswith("."):
            continue
        result.extend(enumerate_project(project_dir))
    return result


def discover_subagent_files(session_path: Path) -> list[Path]:
    """Transcripts of subagents spawned by one session.

    They live in ``<project_dir>/<session_id>/subagents/*.jsonl`` beside the
    parent transcript. Returns an empty list when the directory is missing.
    """
    session_path = Path(session_path)
    subagent_dir = session_path.parent / session_path.stem / "subagents"
    if not subagent_dir.is_dir():
        return []
    return sorted(p for p in subagent_dir.glob("*.jsonl") if p.is_file())
