"""Session processors — what the corpus scanner does with each entry stream.

Each processor consumes a session in a single pass, keeping only tool names,
Bash categories and (optionally) prompt text. Tool entries go through
``filter_structural_only`` before classification, so raw tool inputs never
outlive the entry that carried them.

Claude Code runs ``Task`` subagents in transcripts of their own, stored
beside the parent session; processors stream those as well.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Callable, MutableMapping
from datetime import datetime
from pathlib import Path

from .aggregator import PatternAggregator
from .enumerator import discover_subagent_files
from .extractors import bash_pattern_for, extract_ngrams
from .models import (
    CollectedPrompt,
    EntryKind,
    ParsedEntry,
    SessionInfo,
    SessionPatterns,
    UserPrompt,
)
from .parser import parse_session_file
from .safety import filter_structural_only
from .scanner import SessionProcessor

logger = logging.getLogger(__name__)

# Shorter prompts ("yes", "continue", "looks good") carry no intent
MIN_SUBSTANTIVE_PROMPT_CHARS = 20


async def process_session(
    entries: AsyncIterator[ParsedEntry],
    session_id: str,
    project_slug: str,
    on_prompt: Callable[[UserPrompt], None] | None = None,
) -> SessionPatterns:
    """Extract tool n-grams and Bash category counts from one session stream."""
    sequence: list[str] = []
    bash: Counter[str] = Counter()

    async for entry in entries:
        if entry.kind == EntryKind.TOOL_USES:
            for tool in filter_structural_only(entry).tool_uses:
                sequence.append(tool.name)
                pattern = bash_pattern_for(tool)
                if pattern is not None:
                    bash[pattern.category.value] += 1
        elif entry.kind == EntryKind.USER_PROMPT and on_prompt is not None and entry.prompt:
            on_prompt(entry.prompt)

    return SessionPatterns(
        session_id=session_id,
        project_slug=project_slug,
        tool_bigrams=extract_ngrams(sequence, 2),
        tool_trigrams=extract_ngrams(sequence, 3),
        bash_patterns=dict(bash),
    )


def _parse_timestamp(value: str) -> float | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


class PromptCollector:
    """Substantive user prompts, grouped by project slug."""

    def __init__(self, min_chars: int = MIN_SUBSTANTIVE_PROMPT_CHARS) -> None:
        self.min_chars = min_chars
        self.prompts: dict[str, list[CollectedPrompt]] = {}

    def add(self, prompt: UserPrompt, session: SessionInfo) -> bool:
        text = prompt.text.strip()
        if len(text) < self.min_chars:
            return False
        timestamp = _parse_timestamp(prompt.timestamp)
        self.prompts.setdefault(session.project_slug, []).append(
            CollectedPrompt(
                text=text,
                session_id=prompt.session_id or session.session_id,
                timestamp=timestamp if timestamp is not None else session.file_mtime,
                project_slug=session.project_slug,
            )
        )
        return True

    @property
    def total(self) -> int:
        return sum(len(p) for p in self.prompts.values())


def subagent_session_id(parent_id: str, path: Path) -> str:
    """Session id a subagent transcript is credited under."""
    return f"{parent_id}:subagent:{path.name}"


async def _process_subagents(session: SessionInfo) -> list[SessionPatterns]:
    # Credited to the parent's project; their prompts are written by the parent agent
    paths = await asyncio.to_thread(discover_subagent_files, session.path)
    results: list[SessionPatterns] = []
    for path in paths:
        reader = parse_session_file(path)
        try:
            results.append(
                await process_session(
                    reader, subagent_session_id(session.session_id, path), session.project_slug
                )
            )
        finally:
            await reader.aclose()
    if paths:
        logger.debug("Processed %d subagent transcript(s) of %s", len(paths), session.key)
    return results


def _record(
    aggregator: PatternAggregator,
    session_timestamps: MutableMapping[str, float] | None,
    session: SessionInfo,
    patterns: list[SessionPatterns],
) -> None:
    for item in patterns:
        aggregator.add_session_patterns(item)
        if session_timestamps is not None:
            session_timestamps[item.session_id] = session.file_mtime


def create_pattern_session_processor(
    aggregator: PatternAggregator,
    session_timestamps: MutableMapping[str, float] | None = None,
) -> SessionProcessor:
    """Processor feeding each session's patterns into ``aggregator``.

    Subagent transcripts of the session are streamed too, each under its
    own ``<parent>:subagent:<file name>`` session id. ``session_timestamps``
    (session id → file mtime) is filled in for the recency factor of scoring.
    """

    async def processor(session: SessionInfo, entries: AsyncIterator[ParsedEntry]) -> None:
        patterns = await process_session(entries, session.session_id, session.project_slug)
        subagents = await _process_subagents(session)
        _record(aggregator, session_timestamps, session, [patterns, *subagents])

    return processor


def create_prompt_collecting_processor(
    aggregator: PatternAggregator,
    collector: PromptCollector,
    session_timestamps: MutableMapping[str, float] | None = None,
) -> SessionProcessor:
    """Like ``create_pattern_session_processor``, also routing prompts to ``collector``.

    Only the parent transcript contributes prompts.
    """

    async def processor(session: SessionInfo, entries: AsyncIterator[ParsedEntry]) -> None:
        # Held back until every stream completes so a failed session contributes nothing
        prompts: list[UserPrompt] = []
        patterns = await process_session(
            entries, session.session_id, session.project_slug, on_prompt=prompts.append
        )
        subagents = await _process_subagents(session)
        _record(aggregator, session_timestamps, session, [patterns, *subagents])
        for prompt in prompts:
            collector.add(prompt, session)

    return processor
