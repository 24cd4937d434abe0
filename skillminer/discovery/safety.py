"""Content safety for discovery — secret redaction and project access rules.

Transcripts routinely contain credentials pasted into prompts or shell
commands. Everything that leaves the parser passes through
``redact_secrets`` first.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .models import EntryKind, ParsedEntry, ToolUse

# Applied in order; earlier, more specific patterns claim their matches
# before the generic assignments run.
SECRET_PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "private-key",
        re.compile(
            r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
            re.S,
        ),
    ),
    ("aws-key", re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")),
    ("github-token", re.compile(r"\b(?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9]{36,}\b")),
    ("npm-token", re.compile(r"\bnpm_[A-Za-z0-9]{30,}\b")),
    ("stripe-key", re.compile(r"\b(?:sk|rk|pk)_(?:live|test)_[A-Za-z0-9]{16,}\b")),
    ("slack-token", re.compile(r"\bxox[abposr]-[A-Za-z0-9-]{10,}")),
    ("bearer-token", re.compile(r"\bBearer\s+[A-Za-z0-9\-._~+/]{8,}=*")),
    (
        "api-key",
        re.compile(r"\bapi[_-]?key\s*[=:]\s*['\"]?[A-Za-z0-9_\-]{8,}['\"]?", re.I),
    ),
    ("password", re.compile(r"\b(?:password|passwd|pwd)\s*[=:]\s*['\"]?[^\s'\"]+['\"]?", re.I)),
    (
        "generic-secret",
        re.compile(
            r"\b(?:secret|token|access[_-]?key)\s*[=:]\s*['\"]?[A-Za-z0-9_\-./+]{16,}['\"]?",
            re.I,
        ),
    ),
]


def redact_secrets(text: str) -> str:
    """Replace every secret match with ``[REDACTED:<pattern-name>]``."""
    if not text:
        return text
    for name, pattern in SECRET_PATTERNS:
        text = pattern.sub(f"[REDACTED:{name}]", text)
    return text


def filter_structural_only(entry: ParsedEntry) -> ParsedEntry | None:
    """Strip conversation content, keeping only structure.

    Prompts are dropped entirely. Tool inputs are replaced by a marker,
    except Bash which keeps its (redacted) command for classification.
    """
    if entry.kind == EntryKind.USER_PROMPT:
        return None
    if entry.kind == EntryKind.SKIPPED:
        return entry

    stripped: list[ToolUse] = []
    for tool in entry.tool_uses:
        if tool.name == "Bash" and isinstance(tool.input.get("command"), str):
            safe_input = {"command": redact_secrets(tool.input["command"]), "redacted": True}
        else:
            safe_input = {"redacted": True}
        stripped.append(ToolUse(name=tool.name, input=safe_input))
    return ParsedEntry(kind=EntryKind.TOOL_USES, tool_uses=stripped, entry_type=entry.entry_type)


def validate_project_access(
    project_slug: str,
    allow_projects: Iterable[str] | None = None,
    exclude_projects: Iterable[str] | None = None,
) -> bool:
    """Whether a project may be scanned. The blocklist wins over the allowlist."""
    if exclude_projects is not None and project_slug in set(exclude_projects):
        return False
    if allow_projects is not None:
        return project_slug in set(allow_projects)
    return True
