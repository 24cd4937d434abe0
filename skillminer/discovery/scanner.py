"""Corpus scanner — incremental, resumable scan over many transcript files.

For each session the stored watermark decides what to read:

* no watermark (or ``force_rescan``)    → stream the whole file
* same size and mtime as last time      → skip entirely
* file shorter than what was consumed   → rewritten, stream from 0
* otherwise                             → stream only the appended suffix

Sessions are scanned concurrently (fan-out), and every outcome is collected
before the summary is returned (fan-in). One session's failure is recorded
and leaves its watermark untouched; it never cancels the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from .enumerator import enumerate_sessions
from .errors import CorruptStateError
from .models import (
    ParsedEntry,
    ScanResult,
    ScanStats,
    SessionFailure,
    SessionInfo,
    SessionWatermark,
)
from .parser import SessionReader, parse_session_file
from .safety import validate_project_access
from .state import ScanStateStore

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionProcessor(Protocol):
    """Consumes the entry stream of one session.

    Raising marks the session as failed; its watermark is not advanced.
    """

    async def __call__(self, session: SessionInfo, entries: AsyncIterator[ParsedEntry]) -> None: ...


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CorpusScanner:
    """Drive a pluggable ``SessionProcessor`` over new transcript content.

    Args:
        claude_dir: Corpus root containing ``projects/``.
        state_store: Watermark persistence.
        exclude_projects: Project slugs never scanned (added to those stored
            in the state file).
        allow_projects: If given, only these project slugs are scanned.
        force_rescan: Ignore watermarks and read every file from the start.
        dry_run: Classify sessions without reading them or saving state.
        concurrency: Maximum sessions streamed at once.
        max_sessions: Bound on sessions read this run; the rest are left for
            the next run with their watermarks untouched.
    """

    def __init__(
        self,
        claude_dir: Path,
        state_store: ScanStateStore,
        exclude_projects: Iterable[str] = (),
        allow_projects: Iterable[str] | None = None,
        force_rescan: bool = False,
        dry_run: bool = False,
        concurrency: int = 4,
        max_sessions: int | None = None,
    ) -> None:
        self.claude_dir = Path(claude_dir)
        self.state_store = state_store
        self.exclude_projects = set(exclude_projects)
        self.allow_projects = set(allow_projects) if allow_projects is not None else None
        self.force_rescan = force_rescan
        self.dry_run = dry_run
        self.concurrency = max(1, concurrency)
        self.max_sessions = max_sessions

    def _plan(self, session: SessionInfo) -> tuple[int, bool] | None:
        """Return ``(start_offset, is_new)``, or None to skip the session."""
        if self.force_rescan:
            return 0, True
        watermark = self.state_store.get(session.key)
        if watermark is None:
            return 0, True
        if session.file_size == watermark.file_size and session.file_mtime == watermark.file_mtime:
            return None
        if session.file_size < watermark.offset or session.file_size < watermark.file_size:
            return 0, False
        return watermark.offset, False

    async def _scan_one(
        self,
        session: SessionInfo,
        start_offset: int,
        processor: SessionProcessor,
        semaphore: asyncio.Semaphore,
    ) -> SessionReader:
        async with semaphore:
            reader = parse_session_file(session.path, start_offset)
            try:
                await processor(session, reader)
            finally:
                await reader.aclose()
            return reader

    async def scan(self, processor: SessionProcessor) -> ScanResult:
        try:
            self.state_store.load(strict=True)
        except CorruptStateError as e:
            logger.warning("%s; rescanning all sessions", e)
            self.state_store.reset()

        sessions = await asyncio.to_thread(enumerate_sessions, self.claude_dir)
        excludes = self.exclude_projects | set(self.state_store.excluded_projects())

        result = ScanResult(dry_run=self.dry_run)
        projects: set[str] = set()
        work: list[tuple[SessionInfo, int]] = []

        for session in sessions:
            if not validate_project_access(session.project_slug, self.allow_projects, excludes):
                result.excluded_sessions += 1
                continue
            projects.add(session.project_slug)
            result.total_sessions += 1

            plan = self._plan(session)
            if plan is None:
                result.skipped_sessions += 1
                continue
            if self.max_sessions is not None and len(work) >= self.max_sessions:
                result.truncated = True
                continue
            start_offset, is_new = plan
            work.append((session, start_offset))
            if is_new:
                result.new_sessions += 1
            else:
                result.modified_sessions += 1

        result.total_projects = len(projects)
        if self.dry_run:
            return result

        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(
            *(self._scan_one(s, offset, processor, semaphore) for s, offset in work),
            return_exceptions=True,
        )

        scanned_at = _utc_now_iso()
        for (session, _), outcome in zip(work, outcomes):
            if isinstance(outcome, BaseException):
                reason = f"{type(outcome).__name__}: {outcome}"
                logger.warning("Session %s failed: %s", session.key, reason)
                result.failures.append(SessionFailure(session.key, session.path, reason))
                continue
            result.records_read += outcome.records_read
            result.bytes_read += outcome.bytes_read
            self.state_store.update(
                session.key,
                SessionWatermark(
                    session_id=session.session_id,
                    project_slug=session.project_slug,
                    offset=outcome.offset,
                    file_size=session.file_size,
                    file_mtime=session.file_mtime,
                    scanned_at=scanned_at,
                ),
            )
        result.failed_sessions = len(result.failures)

        tracked = self.state_store.state.sessions.values()
        self.state_store.set_stats(
            ScanStats(
                total_sessions_tracked=len(tracked),
                total_projects_tracked=len({wm.project_slug for wm in tracked}),
                new_sessions=result.new_sessions,
                modified_sessions=result.modified_sessions,
                skipped_sessions=result.skipped_sessions,
                failed_sessions=result.failed_sessions,
                records_read=result.records_read,
                bytes_read=result.bytes_read,
            ),
            scanned_at,
        )
        self.state_store.save()

        logger.info(
            "Scanned %d sessions (%d new, %d modified, %d unchanged, %d failed)",
            result.total_sessions,
            result.new_sessions,
            result.modified_sessions,
            result.skipped_sessions,
            result.failed_sessions,
        )
        return result
