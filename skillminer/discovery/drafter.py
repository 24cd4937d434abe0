"""Skill drafter — turn a ranked candidate or a prompt cluster into a draft.

A draft is structured data (title, sections of lines, evidence map); turning
it into a SKILL.md file is the renderer's job. Every line passes through
secret redaction, since cluster drafts quote user prompts verbatim.
"""

from __future__ import annotations

from .models import (
    ClusterCandidate,
    DraftSection,
    PatternType,
    RankedCandidate,
    SkillDraft,
)
from .safety import redact_secrets
from .scorer import parse_pattern_key

MAX_LABEL_CHARS = 100
MAX_EXAMPLE_CHARS = 80

TOOL_DESCRIPTIONS: dict[str, str] = {
    "Read": "Read the file to understand its structure and existing conventions",
    "Edit": "Make a targeted replacement in an existing file",
    "MultiEdit": "Apply several targeted replacements to one file",
    "Write": "Write a new file from scratch",
    "Bash": "Run shell commands for builds, tests and system operations",
    "Glob": "Find files by name pattern",
    "Grep": "Search file contents for code patterns and references",
    "WebSearch": "Search the web for documentation and current information",
    "WebFetch": "Fetch a URL for API docs and references",
    "NotebookEdit": "Edit Jupyter notebook cells",
    "Task": "Delegate a self-contained subtask to a subagent",
    "TodoWrite": "Record and update the working task list",
    "Skill": "Invoke a skill for a specialized workflow",
}

BASH_DESCRIPTIONS: dict[str, str] = {
    "git-workflow": "Version control with git: staging, committing, branching and merging",
    "test-command": "Running test suites to verify behavior",
    "build-command": "Building, compiling and type-checking the project",
    "package-management": "Adding, removing and syncing dependencies",
    "file-operation": "Creating, copying, moving and deleting files",
    "search": "Searching the tree for files and content",
    "scripted": "One-off inline scripts for quick data processing",
    "other": "General shell utilities",
}

BASH_COMMON_COMMANDS: dict[str, list[str]] = {
    "git-workflow": [
        "`git status` - working tree state",
        "`git add <file>` - stage specific files",
        "`git commit -m <message>` - commit staged changes",
        "`git diff` - unstaged changes",
    ],
    "test-command": [
        "`pytest -q` - run the Python test suite",
        "`pytest -k <expr>` - run a focused subset",
        "`npm test` - run the project test script",
        "`cargo test` - run Rust tests",
    ],
    "build-command": [
        "`make` - run the default build target",
        "`python -m build` - build sdist and wheel",
        "`npm run build` - run the project build script",
        "`npx tsc --noEmit` - type-check without emitting",
    ],
    "package-management": [
        "`pip install <package>` - add a dependency",
        "`uv add <package>` - add and lock a dependency",
        "`npm install <package>` - add a Node dependency",
    ],
    "file-operation": [
        "`mkdir -p <dir>` - create a directory with parents",
        "`cp -r <src> <dst>` - copy recursively",
        "`mv <src> <dst>` - move or rename",
    ],
    "search": [
        "`rg <pattern>` - fast content search",
        "`grep -rn <pattern> .` - recursive content search",
        "`find . -name <glob>` - find files by name",
    ],
    "scripted": [
        "`python -c <code>` - quick Python evaluation",
        "`node -e <code>` - quick Node.js evaluation",
    ],
    "other": [
        "`which <cmd>` - locate a command",
        "`env` - print the environment",
    ],
}

BASH_GUIDELINES: dict[str, list[str]] = {
    "git-workflow": [
        "Stage files explicitly instead of adding everything",
        "Check git status before committing",
        "Keep unrelated changes in separate commits",
    ],
    "test-command": [
        "Run the focused tests while iterating, the full suite before committing",
        "Read warnings in test output even when everything passes",
        "Add a failing test before fixing a reported bug",
    ],
    "build-command": [
        "Type-check before running slower integration steps",
        "Treat new build warnings as future breakage",
    ],
    "package-management": [
        "Pin versions in the lock file for reproducible installs",
        "Remove dependencies that are no longer imported",
        "Read the changelog before a major version upgrade",
    ],
    "file-operation": [
        "Confirm the target path before moving or deleting",
        "Be deliberate with recursive flags",
    ],
    "search": [
        "Narrow searches with file-type filters",
        "Search from the project root so nothing is missed",
    ],
    "scripted": [
        "Keep inline scripts to a single transformation",
        "Move anything multi-step into a script file",
    ],
    "other": [
        "Prefer absolute paths when the working directory is ambiguous",
        "Check a command exists before relying on it",
    ],
}


def _redacted(sections: list[DraftSection]) -> list[DraftSection]:
    return [DraftSection(s.heading, [redact_secrets(line) for line in s.lines]) for s in sections]


def _pattern_evidence(candidate: RankedCandidate) -> dict:
    ev = candidate.evidence
    return {
        "projects": list(ev.projects),
        "sessions": list(ev.sessions),
        "total_occurrences": ev.total_occurrences,
        "example_invocations": list(ev.example_invocations),
        "first_seen": ev.first_seen,
        "last_seen": ev.last_seen,
        "confidence": round(candidate.score, 3),
    }


def _tool_sections(candidate: RankedCandidate, tools: list[str]) -> list[DraftSection]:
    steps = [
        f"{i}. **{tool}** - {TOOL_DESCRIPTIONS.get(tool, f'Use the {tool} tool')}"
        for i, tool in enumerate(tools, start=1)
    ]
    ev = candidate.evidence
    when = [
        f"Use this when a task follows the {candidate.label}.",
        f"Observed across {len(ev.projects)} project(s) in {len(ev.sessions)} session(s).",
    ]
    return [DraftSection("Workflow", steps), DraftSection("When to Use", when)]


def _bash_sections(candidate: RankedCandidate, category: str) -> list[DraftSection]:
    description = BASH_DESCRIPTIONS.get(category, "Shell command patterns")
    workflow = [
        f"{description}. Extracted from recurring shell usage across "
        f"{len(candidate.evidence.projects)} project(s)."
    ]
    commands = [f"- {c}" for c in BASH_COMMON_COMMANDS.get(category, [])]
    guidelines = [f"{i}. {g}" for i, g in enumerate(BASH_GUIDELINES.get(category, []), start=1)]
    return [
        DraftSection("Workflow", workflow),
        DraftSection("Common Commands", commands),
        DraftSection("Guidelines", guidelines),
    ]


def generate_skill_draft(candidate: RankedCandidate) -> SkillDraft:
    """Draft for a frequency-based candidate (tool n-gram or Bash category)."""
    parsed = parse_pattern_key(candidate.pattern_key)
    if parsed.type == PatternType.BASH_PATTERN:
        category = parsed.category or "other"
        title = " ".join(w.capitalize() for w in category.split("-")) + " Patterns"
        sections = _bash_sections(candidate, category)
    else:
        title = " -> ".join(parsed.tools) + " Workflow"
        sections = _tool_sections(candidate, parsed.tools)

    return SkillDraft(
        name=candidate.suggested_name,
        description=redact_secrets(candidate.suggested_description),
        title=title,
        sections=_redacted(sections),
        evidence=_pattern_evidence(candidate),
        source="pattern",
    )


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def generate_cluster_draft(candidate: ClusterCandidate) -> SkillDraft:
    """Draft for a semantic prompt cluster.

    The guidance steps are placeholders: a cluster tells us *when* a skill
    applies, not what it should do.
    """
    activate = [f"> {_clip(candidate.label, MAX_LABEL_CHARS)}", "", "Example prompts:"]
    activate += [f'- "{_clip(p, MAX_EXAMPLE_CHARS)}"' for p in candidate.example_prompts]

    guidance = [
        "1. Identify what the user is asking for in this kind of request",
        "2. Gather the context this workflow usually needs",
        "3. Carry out the steps that recur across these prompts",
        "4. Verify the result before reporting back",
    ]
    footer = [
        "Generated by semantic clustering of recurring user prompts.",
        "Refine the guidance and check the activation pattern against real requests.",
    ]

    return SkillDraft(
        name=candidate.suggested_name,
        description=redact_secrets(candidate.suggested_description),
        title=" ".join(w.capitalize() for w in candidate.suggested_name.split("-")),
        sections=_redacted(
            [
                DraftSection("When to Activate", activate),
                DraftSection("Guidance", guidance),
                DraftSection("Notes", footer),
            ]
        ),
        evidence={
            "projects": list(candidate.evidence.projects),
            "prompts_in_cluster": candidate.evidence.prompt_count,
            "coherence": round(candidate.coherence, 3),
            "confidence": round(candidate.score, 3),
            "last_seen": candidate.evidence.last_seen,
            "method": candidate.method,
        },
        source="cluster",
    )
