"""Session parser — decode Claude Code JSONL transcripts one line at a time.

Each line is independently decodable, so a truncated file is harmless: a
trailing line that does not decode is never consumed and the reader's
``offset`` stops just past the last complete line. A final record that
decodes whole but lacks its newline is consumed, leaving ``offset`` at
end of file. Restarting a stream means opening a new
``SessionReader`` at that offset.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from .models import EntryKind, ParsedEntry, ToolUse, UserPrompt
from .safety import redact_secrets

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024

# Structurally valid records that carry nothing worth deep-parsing
NOISE_TYPES = frozenset(
    {"progress", "file-history-snapshot", "queue-operation", "system", "summary"}
)

# Injected by the CLI harness rather than typed by a human
_NON_PROMPT_PREFIXES = ("<command", "<local-command", "<system", "[Request interrupted")
_MIN_PROMPT_CHARS = 10


# =============================================================================
# User Prompt Classification
# =============================================================================


def _content_text(content: str | list) -> str:
    if isinstance(content, str):
        return content
    return "\n".join(
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") == "text"
        and isinstance(block.get("text"), str)
    )


def is_real_user_prompt(record: dict[str, Any]) -> bool:
    """Whether a ``user`` record is something a human actually typed.

    Tool results, meta entries, slash-command wrappers, interruption notices
    and near-empty messages all arrive as ``user`` records too.
    """
    if record.get("isMeta") is True:
        return False
    message = record.get("message")
    if not isinstance(message, dict):
        return False
    content = message.get("content")
    if isinstance(content, list):
        if not content:
            return False
        if any(isinstance(b, dict) and b.get("type") == "tool_result" for b in content):
            return False
    elif not isinstance(content, str):
        return False

    text = _content_text(content).strip()
    if text.startswith(_NON_PROMPT_PREFIXES):
        return False
    return len(text) >= _MIN_PROMPT_CHARS


# =============================================================================
# Line Parsing
# =============================================================================


def _parse_user(record: dict[str, Any]) -> ParsedEntry | None:
    message = record.get("message")
    if not isinstance(message, dict) or not isinstance(message.get("content"), (str, list)):
        return None
    if not is_real_user_prompt(record):
        return ParsedEntry.skipped("user")

    cwd = record.get("cwd")
    prompt = UserPrompt(
        text=redact_secrets(_content_text(message["content"]).strip()),
        session_id=str(record.get("sessionId", "")),
        timestamp=str(record.get("timestamp", "")),
        cwd=cwd if isinstance(cwd, str) else "",
    )
    return ParsedEntry(kind=EntryKind.USER_PROMPT, prompt=prompt, entry_type="user")


def _parse_assistant(record: dict[str, Any]) -> ParsedEntry | None:
    message = record.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, list):
        return None

    tool_uses: list[ToolUse] = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_use":
            continue
        name = block.get("name")
        if not isinstance(name, str) or not name:
            continue
        tool_input = block.get("input")
        tool_uses.append(ToolUse(name=name, input=tool_input if isinstance(tool_input, dict) else {}))
    return ParsedEntry(kind=EntryKind.TOOL_USES, tool_uses=tool_uses, entry_type="assistant")


def parse_jsonl_line(line: str) -> ParsedEntry | None:
    """Decode one transcript line.

    Returns None for blank lines, malformed JSON, or records failing minimal
    structural checks. Never raises.
    """
    line = line.strip()
    if not line:
        return None
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(record, dict):
        return None
    record_type = record.get("type")
    if not isinstance(record_type, str):
        return None

    if record_type == "user":
        return _parse_user(record)
    if record_type == "assistant":
        return _parse_assistant(record)
    # Noise types and unknown future types alike
    return ParsedEntry.skipped(record_type)


# =============================================================================
# Streaming Reader
# =============================================================================


def _is_complete_record(text: str) -> bool:
    try:
        return isinstance(json.loads(text), dict)
    except json.JSONDecodeError:
        return False


class SessionReader:
    """Lazy, finite, non-restartable stream of entries from one transcript.

    File reads happen in a worker thread so many readers can share one event
    loop. Only the current line is held in memory.

    Attributes:
        offset: Byte position just past the last line consumed. An
            unterminated final line counts once it decodes as JSON.
        lines_read: Complete lines consumed, including unparseable ones.
        records_read: Lines that produced an entry.
        exhausted: True once end-of-file was reached.
    """

    def __init__(self, path: Path, start_offset: int = 0, chunk_size: int = _CHUNK_SIZE) -> None:
        self.path = Path(path)
        self.start_offset = start_offset
        self.offset = start_offset
        self.lines_read = 0
        self.records_read = 0
        self.exhausted = False
        self._chunk_size = chunk_size
        self._stream = self._iterate()

    @property
    def bytes_read(self) -> int:
        return self.offset - self.start_offset

    def __aiter__(self) -> SessionReader:
        return self

    async def __anext__(self) -> ParsedEntry:
        return await self._stream.__anext__()

    async def aclose(self) -> None:
        await self._stream.aclose()

    async def _iterate(self):
        try:
            handle = await asyncio.to_thread(open, self.path, "rb")
        except FileNotFoundError:
            logger.debug("Session file vanished: %s", self.path)
            self.exhausted = True
            return

        try:
            if self.start_offset:
                await asyncio.to_thread(handle.seek, self.start_offset)
            pending = b""
            while True:
                chunk = await asyncio.to_thread(handle.read, self._chunk_size)
                if not chunk:
                    break
                pending += chunk
                start = 0
                while (newline := pending.find(b"\n", start)) >= 0:
                    raw = pending[start:newline]
                    start = newline + 1
                    self.offset += len(raw) + 1
                    self.lines_read += 1
                    entry = parse_jsonl_line(raw.decode("utf-8", errors="replace"))
                    if entry is not None:
                        self.records_read += 1
                        yield entry
                pending = pending[start:]
            if pending:
                # A final line without its newline counts once it decodes whole
                text = pending.decode("utf-8", errors="replace")
                if _is_complete_record(text):
                    self.offset += len(pending)
                    self.lines_read += 1
                    entry = parse_jsonl_line(text)
                    if entry is not None:
                        self.records_read += 1
                        yield entry
                else:
                    logger.debug("Partial trailing line left unconsumed in %s", self.path)
            self.exhausted = True
        finally:
            handle.close()


def parse_session_file(path: Path, start_offset: int = 0) -> SessionReader:
    """Open a lazy entry stream over ``path`` starting at ``start_offset``."""
    return SessionReader(path, start_offset=start_offset)
