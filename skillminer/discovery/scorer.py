"""Pattern scorer — turn an aggregated occurrence into one explainable score.

Four normalized factors, each in [0, 1]:

* frequency    : ``min(1, log2(total + 1) / 10)``; 1000 hits don't drown out 10
* cross_project: fraction of scanned projects containing the pattern
* recency      : ``exp(-ln2 * days / half_life)`` from the newest session
* consistency  : fraction of scanned sessions containing the pattern

The weighted sum uses injected ``ScoringWeights``; the breakdown is returned
so the score can be reproduced from the occurrence alone.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from ..config import DEFAULT_SCORING_WEIGHTS, RECENCY_HALF_LIFE_DAYS, ScoringWeights
from .aggregator import BASH_PREFIX, BIGRAM_PREFIX, TRIGRAM_PREFIX
from .errors import UnknownPatternKeyError
from .extractors import NGRAM_SEPARATOR
from .models import ParsedPatternKey, PatternOccurrence, PatternType, ScoreBreakdown

SECONDS_PER_DAY = 24 * 60 * 60

# How a tool's role reads in a description, checked in order
_TOOL_VERBS: list[tuple[tuple[str, ...], str]] = [
    (("read",), "reading and analyzing"),
    (("edit", "write", "multiedit"), "editing and modifying"),
    (("bash",), "executing commands on"),
    (("glob", "grep"), "searching"),
]


# =============================================================================
# Keys, Names, Labels
# =============================================================================


def parse_pattern_key(key: str) -> ParsedPatternKey:
    if key.startswith(BIGRAM_PREFIX):
        raw = key[len(BIGRAM_PREFIX) :]
        return ParsedPatternKey(PatternType.TOOL_BIGRAM, raw, tools=raw.split(NGRAM_SEPARATOR))
    if key.startswith(TRIGRAM_PREFIX):
        raw = key[len(TRIGRAM_PREFIX) :]
        return ParsedPatternKey(PatternType.TOOL_TRIGRAM, raw, tools=raw.split(NGRAM_SEPARATOR))
    if key.startswith(BASH_PREFIX):
        raw = key[len(BASH_PREFIX) :]
        return ParsedPatternKey(PatternType.BASH_PATTERN, raw, category=raw)
    raise UnknownPatternKeyError(f"Unknown pattern key format: {key}")


def generate_candidate_name(parsed: ParsedPatternKey) -> str:
    """Machine-safe skill name: ``read-edit-workflow`` or ``git-workflow-patterns``."""
    if parsed.type == PatternType.BASH_PATTERN:
        return f"{parsed.category}-patterns"
    return "-".join(t.lower() for t in parsed.tools) + "-workflow"


def generate_label(parsed: ParsedPatternKey) -> str:
    if parsed.type == PatternType.BASH_PATTERN:
        category = parsed.category or ""
        return category[:1].upper() + category[1:] + " commands"
    return " -> ".join(parsed.tools) + " workflow"


def _verb_for(tools: list[str]) -> str:
    lowered = {t.lower() for t in tools}
    verbs = [verb for names, verb in _TOOL_VERBS if lowered.intersection(names)]
    return " and ".join(verbs) if verbs else "performing development operations on"


def generate_description(parsed: ParsedPatternKey) -> str:
    if parsed.type == PatternType.BASH_PATTERN:
        return (
            f"Guides {parsed.category} operations. "
            f"Use when running {parsed.category} commands."
        )
    return f"Guides {' -> '.join(parsed.tools)} workflow. Use when {_verb_for(parsed.tools)} files."


# =============================================================================
# Scoring
# =============================================================================


def most_recent_timestamp(session_ids: set[str], session_timestamps: Mapping[str, float]) -> float | None:
    known = [session_timestamps[s] for s in session_ids if s in session_timestamps]
    return max(known) if known else None


def recency_factor(timestamp: float | None, now: float, half_life_days: float = RECENCY_HALF_LIFE_DAYS) -> float:
    """Exponential decay with the given half-life; 0 when nothing is known."""
    if timestamp is None:
        return 0.0
    days = max(0.0, (now - timestamp) / SECONDS_PER_DAY)
    return math.exp(-math.log(2) * days / half_life_days)


def score_pattern(
    occurrence: PatternOccurrence,
    total_projects: int,
    total_sessions: int,
    session_timestamps: Mapping[str, float],
    now: float,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
) -> tuple[float, ScoreBreakdown]:
    """Score one pattern. Timestamps and ``now`` are epoch seconds."""
    frequency = min(1.0, math.log2(occurrence.total_count + 1) / 10)
    cross_project = occurrence.project_count / total_projects if total_projects > 0 else 0.0
    recency = recency_factor(most_recent_timestamp(occurrence.session_ids, session_timestamps), now)
    consistency = (
        min(1.0, occurrence.session_count / total_sessions) if total_sessions > 0 else 0.0
    )

    score = (
        weights.frequency * frequency
        + weights.cross_project * cross_project
        + weights.recency * recency
        + weights.consistency * consistency
    )
    return score, ScoreBreakdown(
        frequency=frequency,
        cross_project=cross_project,
        recency=recency,
        consistency=consistency,
    )
