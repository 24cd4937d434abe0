"""Data models for skill discovery.

Parsed transcript records, persisted scan watermarks, aggregated pattern
occurrences, and the ranked candidates/drafts handed to a human reviewer.
Only ``ScanState`` (and the embedding cache) survive between runs; every
other structure is rebuilt from the corpus on each discovery run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# =============================================================================
# Parsed Records
# =============================================================================


class EntryKind(str, Enum):
    """Tag of a parsed transcript line."""

    USER_PROMPT = "user-prompt"
    TOOL_USES = "tool-uses"
    SKIPPED = "skipped"


@dataclass
class ToolUse:
    """One tool invocation from an assistant turn."""

    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class UserPrompt:
    """A real (typed by a human) user prompt, already redacted."""

    text: str
    session_id: str
    timestamp: str  # ISO-8601 as written in the transcript, may be ""
    cwd: str = ""


@dataclass
class ParsedEntry:
    """A single decoded transcript line."""

    kind: EntryKind
    prompt: UserPrompt | None = None
    tool_uses: list[ToolUse] = field(default_factory=list)
    entry_type: str = ""  # Raw record type, kept for skipped entries

    @classmethod
    def skipped(cls, entry_type: str) -> ParsedEntry:
        return cls(kind=EntryKind.SKIPPED, entry_type=entry_type)


# =============================================================================
# Sessions & Scan State
# =============================================================================


@dataclass
class SessionInfo:
    """A transcript file discovered under the corpus root."""

    session_id: str
    project_slug: str
    path: Path
    file_mtime: float  # Epoch seconds
    file_size: int
    created: str = ""
    modified: str = ""
    first_prompt: str = ""
    git_branch: str = ""

    @property
    def key(self) -> str:
        """State-store key. Session ids are only unique within a project."""
        return f"{self.project_slug}:{self.session_id}"


@dataclass
class SessionWatermark:
    """How far a session file has been consumed."""

    session_id: str
    project_slug: str
    offset: int  # Byte position just past the last complete line read
    file_size: int
    file_mtime: float
    scanned_at: str  # ISO-8601 UTC

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "projectSlug": self.project_slug,
            "offset": self.offset,
            "fileSize": self.file_size,
            "fileMtime": self.file_mtime,
            "scannedAt": self.scanned_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionWatermark:
        return cls(
            session_id=str(data["sessionId"]),
            project_slug=str(data["projectSlug"]),
            offset=int(data["offset"]),
            file_size=int(data["fileSize"]),
            file_mtime=float(data["fileMtime"]),
            scanned_at=str(data.get("scannedAt", "")),
        )


@dataclass
class ScanStats:
    """Aggregate statistics from the most recent scan."""

    total_sessions_tracked: int = 0
    total_projects_tracked: int = 0
    new_sessions: int = 0
    modified_sessions: int = 0
    skipped_sessions: int = 0
    failed_sessions: int = 0
    records_read: int = 0
    bytes_read: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalSessionsTracked": self.total_sessions_tracked,
            "totalProjectsTracked": self.total_projects_tracked,
            "newSessions": self.new_sessions,
            "modifiedSessions": self.modified_sessions,
            "skippedSessions": self.skipped_sessions,
            "failedSessions": self.failed_sessions,
            "recordsRead": self.records_read,
            "bytesRead": self.bytes_read,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScanStats:
        return cls(
            total_sessions_tracked=int(data.get("totalSessionsTracked", 0)),
            total_projects_tracked=int(data.get("totalProjectsTracked", 0)),
            new_sessions=int(data.get("newSessions", 0)),
            modified_sessions=int(data.get("modifiedSessions", 0)),
            skipped_sessions=int(data.get("skippedSessions", 0)),
            failed_sessions=int(data.get("failedSessions", 0)),
            records_read=int(data.get("recordsRead", 0)),
            bytes_read=int(data.get("bytesRead", 0)),
        )


@dataclass
class ScanState:
    """Persisted scan state. ``extra`` keeps fields written by newer versions."""

    version: int = 1
    sessions: dict[str, SessionWatermark] = field(default_factory=dict)
    exclude_projects: list[str] = field(default_factory=list)
    last_scan_at: str = ""
    last_scan_stats: ScanStats = field(default_factory=ScanStats)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionFailure:
    """A session whose scan failed; its watermark was left untouched."""

    session_key: str
    path: Path
    reason: str


@dataclass
class ScanResult:
    """Summary returned by a corpus scan."""

    total_projects: int = 0
    total_sessions: int = 0
    new_sessions: int = 0
    modified_sessions: int = 0
    skipped_sessions: int = 0  # Unchanged since last scan
    excluded_sessions: int = 0
    failed_sessions: int = 0
    failures: list[SessionFailure] = field(default_factory=list)
    records_read: int = 0
    bytes_read: int = 0
    dry_run: bool = False
    truncated: bool = False  # Outer loop bound hit; remaining sessions deferred

    @property
    def scanned_sessions(self) -> int:
        return self.new_sessions + self.modified_sessions - self.failed_sessions


# =============================================================================
# Patterns
# =============================================================================


class PatternType(str, Enum):
    TOOL_BIGRAM = "tool-bigram"
    TOOL_TRIGRAM = "tool-trigram"
    BASH_PATTERN = "bash-pattern"


@dataclass
class PatternOccurrence:
    """Corpus-wide record of one pattern key.

    ``session_count``/``project_count`` always equal the size of their
    identifier sets; only ``merge`` mutates them.
    """

    total_count: int = 0
    session_count: int = 0
    project_count: int = 0
    session_ids: set[str] = field(default_factory=set)
    project_slugs: set[str] = field(default_factory=set)
    per_session_counts: dict[str, int] = field(default_factory=dict)

    def merge(self, session_id: str, project_slug: str, count: int) -> None:
        self.total_count += count
        if session_id not in self.session_ids:
            self.session_ids.add(session_id)
            self.session_count += 1
        if project_slug not in self.project_slugs:
            self.project_slugs.add(project_slug)
            self.project_count += 1
        self.per_session_counts[session_id] = self.per_session_counts.get(session_id, 0) + count

    def copy(self) -> PatternOccurrence:
        return PatternOccurrence(
            total_count=self.total_count,
            session_count=self.session_count,
            project_count=self.project_count,
            session_ids=set(self.session_ids),
            project_slugs=set(self.project_slugs),
            per_session_counts=dict(self.per_session_counts),
        )


@dataclass
class SessionPatterns:
    """Patterns extracted from one session pass."""

    session_id: str
    project_slug: str
    tool_bigrams: dict[str, int] = field(default_factory=dict)
    tool_trigrams: dict[str, int] = field(default_factory=dict)
    bash_patterns: dict[str, int] = field(default_factory=dict)  # category -> count


@dataclass
class ParsedPatternKey:
    type: PatternType
    raw: str  # Key without its kind prefix
    tools: list[str] = field(default_factory=list)
    category: str | None = None


# =============================================================================
# Candidates
# =============================================================================


@dataclass(frozen=True)
class ScoreBreakdown:
    frequency: float
    cross_project: float
    recency: float
    consistency: float


@dataclass(frozen=True)
class PatternEvidence:
    projects: list[str]
    sessions: list[str]  # Newest first, capped
    total_occurrences: int
    example_invocations: list[str]
    first_seen: str  # ISO-8601 or ""
    last_seen: str


@dataclass(frozen=True)
class RankedCandidate:
    """A frequency-based skill proposal. Immutable once produced."""

    pattern_key: str
    label: str
    type: PatternType
    score: float
    score_breakdown: ScoreBreakdown
    evidence: PatternEvidence
    suggested_name: str
    suggested_description: str


@dataclass(frozen=True)
class ExistingSkill:
    """A skill already in the catalog; read-only reference data."""

    name: str
    description: str


# =============================================================================
# Prompt Clusters
# =============================================================================


@dataclass
class CollectedPrompt:
    text: str
    session_id: str
    timestamp: float  # Epoch seconds, 0.0 if unknown
    project_slug: str


@dataclass
class PromptCluster:
    label: str  # Representative prompt nearest the centroid
    example_prompts: list[str]
    centroid: list[float]
    member_count: int
    project_slugs: list[str]
    timestamps: list[float]
    coherence: float  # 1 - mean cosine distance to the centroid, 0..1
    method: str = "model"  # "model" or "heuristic"

    @property
    def most_recent(self) -> float:
        return max(self.timestamps, default=0.0)


@dataclass(frozen=True)
class ClusterScoreBreakdown:
    size: float
    cross_project: float
    coherence: float
    recency: float
    novelty: float


@dataclass(frozen=True)
class ClusterEvidence:
    projects: list[str]
    prompt_count: int
    last_seen: str


@dataclass(frozen=True)
class ClusterCandidate:
    """A semantic-cluster skill proposal."""

    label: str
    suggested_name: str
    suggested_description: str
    cluster_size: int
    coherence: float
    score: float
    score_breakdown: ClusterScoreBreakdown
    example_prompts: list[str]
    evidence: ClusterEvidence
    method: str = "model"


# =============================================================================
# Drafts
# =============================================================================


@dataclass
class DraftSection:
    heading: str
    lines: list[str] = field(default_factory=list)


@dataclass
class SkillDraft:
    """Renderer input: everything needed to write a SKILL document."""

    name: str
    description: str
    title: str
    sections: list[DraftSection] = field(default_factory=list)
    evidence: dict[str, Any] = field(default_factory=dict)
    source: str = "pattern"  # "pattern" or "cluster"

    def section(self, heading: str) -> DraftSection | None:
        for s in self.sections:
            if s.heading == heading:
                return s
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "title": self.title,
            "sections": [{"heading": s.heading, "lines": list(s.lines)} for s in self.sections],
            "evidence": dict(self.evidence),
            "source": self.source,
        }
