"""Candidate ranker — score, explain, deduplicate and cap pattern candidates."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, TypeVar

from ..config import DEFAULT_SCORING_WEIGHTS, ScoringWeights
from .errors import UnknownPatternKeyError
from .models import (
    ExistingSkill,
    PatternEvidence,
    PatternOccurrence,
    PatternType,
    RankedCandidate,
)
from .scorer import (
    generate_candidate_name,
    generate_description,
    generate_label,
    parse_pattern_key,
    score_pattern,
)
from .text import keyword_similarity

logger = logging.getLogger(__name__)

MAX_EVIDENCE_SESSIONS = 10
DEFAULT_MAX_CANDIDATES = 20
DEFAULT_DEDUP_THRESHOLD = 0.5


# =============================================================================
# Evidence
# =============================================================================


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def assemble_evidence(
    pattern_key: str,
    occurrence: PatternOccurrence,
    session_timestamps: Mapping[str, float],
) -> PatternEvidence:
    """Build the reviewer-facing evidence for one pattern."""
    parsed = parse_pattern_key(pattern_key)

    # Newest first; sessions without a timestamp go last, by id for stability
    sessions = sorted(
        occurrence.session_ids,
        key=lambda s: (s not in session_timestamps, -session_timestamps.get(s, 0.0), s),
    )[:MAX_EVIDENCE_SESSIONS]

    if parsed.type == PatternType.BASH_PATTERN:
        examples = [parsed.category or parsed.raw]
    else:
        examples = [" -> ".join(parsed.tools)]

    known = [session_timestamps[s] for s in occurrence.session_ids if s in session_timestamps]
    return PatternEvidence(
        projects=sorted(occurrence.project_slugs),
        sessions=sessions,
        total_occurrences=occurrence.total_count,
        example_invocations=examples,
        first_seen=_iso(min(known)) if known else "",
        last_seen=_iso(max(known)) if known else "",
    )


# =============================================================================
# Deduplication
# =============================================================================


class _Describable(Protocol):
    @property
    def suggested_name(self) -> str: ...

    @property
    def suggested_description(self) -> str: ...


C = TypeVar("C", bound=_Describable)


@dataclass
class DedupResult:
    filtered: list = field(default_factory=list)
    removed: list = field(default_factory=list)
    guarantee_applied: bool = False  # Everything matched; nothing was removed


def _matches_existing(candidate: _Describable, existing: Sequence[ExistingSkill], threshold: float) -> bool:
    name = candidate.suggested_name.lower()
    for skill in existing:
        if skill.name.lower() == name:
            return True
        if keyword_similarity(candidate.suggested_description, skill.description) >= threshold:
            return True
    return False


def deduplicate_against_existing(
    candidates: Sequence[C],
    existing: Sequence[ExistingSkill],
    threshold: float = DEFAULT_DEDUP_THRESHOLD,
) -> DedupResult:
    """Remove candidates that duplicate an existing skill.

    A candidate is a duplicate on a case-insensitive name match or when the
    keyword Jaccard similarity of the descriptions reaches ``threshold``.
    If that would remove every candidate, nothing is removed.
    """
    if not candidates or not existing:
        return DedupResult(filtered=list(candidates))

    filtered: list[C] = []
    removed: list[C] = []
    for candidate in candidates:
        (removed if _matches_existing(candidate, existing, threshold) else filtered).append(candidate)

    if not filtered:
        logger.debug("All %d candidates match existing skills; keeping them all", len(candidates))
        return DedupResult(filtered=list(candidates), guarantee_applied=True)
    return DedupResult(filtered=filtered, removed=removed)


# =============================================================================
# Ranking
# =============================================================================


@dataclass
class RankingOptions:
    max_candidates: int = DEFAULT_MAX_CANDIDATES
    existing_skills: Sequence[ExistingSkill] | None = None
    dedup_threshold: float = DEFAULT_DEDUP_THRESHOLD
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS
    now: float | None = None  # Epoch seconds; defaults to the current time


def build_candidate(
    pattern_key: str,
    occurrence: PatternOccurrence,
    total_projects: int,
    total_sessions: int,
    session_timestamps: Mapping[str, float],
    now: float,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
) -> RankedCandidate:
    parsed = parse_pattern_key(pattern_key)
    score, breakdown = score_pattern(
        occurrence, total_projects, total_sessions, session_timestamps, now, weights
    )
    return RankedCandidate(
        pattern_key=pattern_key,
        label=generate_label(parsed),
        type=parsed.type,
        score=score,
        score_breakdown=breakdown,
        evidence=assemble_evidence(pattern_key, occurrence, session_timestamps),
        suggested_name=generate_candidate_name(parsed),
        suggested_description=generate_description(parsed),
    )


def rank_candidates(
    patterns: Mapping[str, PatternOccurrence],
    total_projects: int,
    total_sessions: int,
    session_timestamps: Mapping[str, float],
    options: RankingOptions | None = None,
) -> list[RankedCandidate]:
    """Score every pattern, sort descending, dedup, and cap.

    Patterns whose key cannot be parsed are logged and left out.
    """
    options = options or RankingOptions()
    now = options.now if options.now is not None else time.time()

    candidates: list[RankedCandidate] = []
    for key, occurrence in patterns.items():
        try:
            candidates.append(
                build_candidate(
                    key, occurrence, total_projects, total_sessions,
                    session_timestamps, now, options.weights,
                )
            )  # fmt: skip
        except UnknownPatternKeyError as e:
            logger.warning("Skipping pattern: %s", e)

    candidates.sort(key=lambda c: (-c.score, c.pattern_key))

    if options.existing_skills:
        candidates = deduplicate_against_existing(
            candidates, options.existing_skills, options.dedup_threshold
        ).filtered

    return candidates[: max(0, options.max_candidates)]
