"""Per-session feature extraction — tool n-grams and Bash command patterns.

Tool sequences surface recurring workflows like ``Read -> Edit -> Bash``;
Bash patterns surface recurring shell habits like ``git add && git commit``
that are invisible at the tool level (every one of them is just "Bash").
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from .models import EntryKind, ParsedEntry, ToolUse

NGRAM_SEPARATOR = "->"

# Stored command text is capped; classification only looks at the first line
MAX_COMMAND_LENGTH = 500

# =============================================================================
# Tool Sequences
# =============================================================================


def build_tool_sequence(entries: Iterable[ParsedEntry]) -> list[str]:
    """Flatten tool-use batches into one ordered list of tool names."""
    sequence: list[str] = []
    for entry in entries:
        if entry.kind == EntryKind.TOOL_USES:
            sequence.extend(tool.name for tool in entry.tool_uses)
    return sequence


def extract_ngrams(sequence: list[str], n: int) -> dict[str, int]:
    """Count sliding windows of ``n`` tool names, keyed ``"A->B[->C]"``.

    A sequence of length L yields ``max(0, L - n + 1)`` windows.
    """
    if n < 1:
        raise ValueError(f"n-gram size must be >= 1, got {n}")
    counts: Counter[str] = Counter()
    for i in range(len(sequence) - n + 1):
        counts[NGRAM_SEPARATOR.join(sequence[i : i + n])] += 1
    return dict(counts)


# =============================================================================
# Bash Classification
# =============================================================================


class BashCategory(str, Enum):
    """Workflow category of a shell command."""

    GIT_WORKFLOW = "git-workflow"
    TEST_COMMAND = "test-command"
    BUILD_COMMAND = "build-command"
    PACKAGE_MANAGEMENT = "package-management"
    FILE_OPERATION = "file-operation"
    SEARCH = "search"
    SCRIPTED = "scripted"
    OTHER = "other"


@dataclass
class BashPattern:
    category: BashCategory
    command: str  # Original command, truncated
    normalized: str  # Keyword form used for collapsing variants


_Predicate = Callable[[str, list[str]], bool]

_WHITESPACE = re.compile(r"\s+")


def _cmd(*names: str, sub: tuple[str, ...] | None = None, sub2: tuple[str, ...] | None = None) -> _Predicate:
    """Match on the command word, optionally on its first and second arguments."""

    def predicate(command: str, args: list[str]) -> bool:
        if command not in names:
            return False
        if sub is not None and (not args or args[0] not in sub):
            return False
        if sub2 is not None and (len(args) < 2 or args[1] not in sub2):
            return False
        return True

    return predicate


_PYTHONS = ("python", "python3")

# Checked in order; first match wins
_BASH_RULES: list[tuple[_Predicate, BashCategory]] = [
    (_cmd("git"), BashCategory.GIT_WORKFLOW),
    # Test runners
    (_cmd("npx", sub=("vitest", "jest")), BashCategory.TEST_COMMAND),
    (_cmd("npm", sub=("test",)), BashCategory.TEST_COMMAND),
    (_cmd("pytest", "tox"), BashCategory.TEST_COMMAND),
    (_cmd(*_PYTHONS, sub=("-m",), sub2=("pytest", "unittest")), BashCategory.TEST_COMMAND),
    (_cmd("uv", "poetry", sub=("run",), sub2=("pytest",)), BashCategory.TEST_COMMAND),
    (_cmd("cargo", "go", sub=("test",)), BashCategory.TEST_COMMAND),
    # Build tools
    (_cmd("npx", sub=("tsc", "esbuild")), BashCategory.BUILD_COMMAND),
    (_cmd("npm", sub=("run",)), BashCategory.BUILD_COMMAND),
    (_cmd("cargo", "go", sub=("build",)), BashCategory.BUILD_COMMAND),
    (_cmd(*_PYTHONS, sub=("-m",), sub2=("build",)), BashCategory.BUILD_COMMAND),
    (_cmd("make"), BashCategory.BUILD_COMMAND),
    # Package managers
    (_cmd("npm", sub=("install", "add", "remove", "uninstall")), BashCategory.PACKAGE_MANAGEMENT),
    (_cmd("yarn", "pnpm", sub=("add", "remove")), BashCategory.PACKAGE_MANAGEMENT),
    (_cmd("pip", "pip3", sub=("install", "uninstall")), BashCategory.PACKAGE_MANAGEMENT),
    (_cmd("uv", sub=("add", "remove", "pip", "sync")), BashCategory.PACKAGE_MANAGEMENT),
    (_cmd("poetry", sub=("add", "remove", "install")), BashCategory.PACKAGE_MANAGEMENT),
    # File operations
    (_cmd("ls", "cat", "mkdir", "cp", "mv", "rm", "touch", "chmod"), BashCategory.FILE_OPERATION),
    # Search
    (_cmd("find", "grep", "rg", "ag"), BashCategory.SEARCH),
    # Inline scripts
    (_cmd(*_PYTHONS, sub=("-c",)), BashCategory.SCRIPTED),
    (_cmd("node", sub=("-e",)), BashCategory.SCRIPTED),
]


def _first_line(command: str) -> str:
    stripped = command.strip()
    return stripped.split("\n", 1)[0].strip() if stripped else ""


def classify_bash_command(command: str) -> BashCategory:
    """Classify by the first ``&&`` segment of the first line."""
    line = _first_line(command)
    if not line:
        return BashCategory.OTHER
    tokens = _WHITESPACE.split(line.split("&&", 1)[0].strip())
    if not tokens or not tokens[0]:
        return BashCategory.OTHER
    for predicate, category in _BASH_RULES:
        if predicate(tokens[0], tokens[1:]):
            return category
    return BashCategory.OTHER


def _is_keyword(token: str) -> bool:
    return bool(token) and not token.startswith(("-", "/", ".")) and "/" not in token


def _normalize_segment(segment: str) -> str:
    tokens = _WHITESPACE.split(segment)
    command = tokens[0]
    arg = tokens[1] if len(tokens) > 1 else ""

    if command in ("git", "npm", "yarn", "pnpm", "cargo", "go", "uv", "poetry", "pip", "pip3"):
        return f"{command} {arg}" if arg else command
    if command == "npx":
        sub = tokens[2] if len(tokens) > 2 else ""
        if arg and _is_keyword(sub):
            return f"npx {arg} {sub}"
        return f"npx {arg}" if arg else "npx"
    if command in _PYTHONS:
        if arg == "-c":
            return f"{command} -c"
        if arg == "-m" and len(tokens) > 2:
            return f"{command} -m {tokens[2]}"
        return command
    if command == "node" and arg == "-e":
        return "node -e"
    # Plain commands (ls, cat, pytest, make, ...) keep only their name
    return command


def normalize_bash_command(command: str) -> str:
    """Reduce a command to keyword form, preserving ``&&`` chain structure.

    ``git add src/a.py && git commit -m "x"`` → ``git add && git commit``
    """
    line = _first_line(command)
    if not line:
        return ""
    segments = [s.strip() for s in line.split("&&") if s.strip()]
    return " && ".join(_normalize_segment(s) for s in segments)


def bash_pattern_for(tool: ToolUse) -> BashPattern | None:
    """Classify one tool use, or None if it is not a Bash call with a command."""
    if tool.name != "Bash":
        return None
    command = tool.input.get("command")
    if not isinstance(command, str) or not command.strip():
        return None
    return BashPattern(
        category=classify_bash_command(command),
        command=command[:MAX_COMMAND_LENGTH],
        normalized=normalize_bash_command(command),
    )


def extract_bash_patterns(entries: Iterable[ParsedEntry]) -> list[BashPattern]:
    """Classify every Bash invocation in a session, in call order."""
    patterns: list[BashPattern] = []
    for entry in entries:
        if entry.kind != EntryKind.TOOL_USES:
            continue
        for tool in entry.tool_uses:
            pattern = bash_pattern_for(tool)
            if pattern is not None:
                patterns.append(pattern)
    return patterns
