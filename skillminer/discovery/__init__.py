"""Skill discovery — mine recurring agent behavior into skill candidates.

Reads Claude Code session transcripts, finds tool workflows, shell habits
and recurring request types, and proposes evidence-backed skills.

Architecture:
    Enumerator  →  Scanner (watermarks)  →  Processor  →  Aggregator
                        │                       │              │
                   SessionReader           PromptCollector  filter_noise
                   (parse_jsonl_line)           │              │
                                           Clusterer       Ranker (Scorer)
                                       (embeddings, DBSCAN)    │
                                                │              │
                                          ClusterScorer ──→ Drafter

Only the scan state and the prompt embedding cache persist between runs;
every aggregate is rebuilt from what the scan streams.
"""

from .aggregator import PatternAggregator
from .errors import CorruptStateError, DiscoveryError, UnknownPatternKeyError
from .models import (
    ClusterCandidate,
    ExistingSkill,
    PatternOccurrence,
    RankedCandidate,
    ScanResult,
    SkillDraft,
)
from .pipeline import DiscoveryPipeline, DiscoveryReport
from .scanner import CorpusScanner
from .state import ScanStateStore

__all__ = [
    "ClusterCandidate",
    "CorpusScanner",
    "CorruptStateError",
    "DiscoveryError",
    "DiscoveryPipeline",
    "DiscoveryReport",
    "ExistingSkill",
    "PatternAggregator",
    "PatternOccurrence",
    "RankedCandidate",
    "ScanResult",
    "ScanStateStore",
    "SkillDraft",
    "UnknownPatternKeyError",
]
