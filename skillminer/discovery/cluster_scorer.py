"""Cluster scorer — rank semantic prompt clusters as skill candidates.

Five factors, each in [0, 1]:

* size         : log-scaled member count, saturating at ``size_ceiling``
* cross_project: fraction of projects the cluster spans
* coherence    : mean similarity of members to the centroid
* recency      : 14-day half-life decay from the newest member prompt
* novelty      : ``1 - max`` keyword similarity to any existing skill
"""

from __future__ import annotations

import math
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from ..config import DEFAULT_CLUSTER_WEIGHTS, ClusterScoringWeights
from .models import ClusterCandidate, ClusterEvidence, ClusterScoreBreakdown, ExistingSkill, PromptCluster
from .ranker import DEFAULT_DEDUP_THRESHOLD, deduplicate_against_existing
from .scorer import recency_factor
from .text import extract_keywords, jaccard_similarity

# Clusters beyond this many members score no higher on size
DEFAULT_SIZE_CEILING = 50
MAX_NAME_WORDS = 5
MAX_DESCRIPTION_LABEL = 100


def score_cluster(
    cluster_size: int,
    total_prompts: int,
    project_count: int,
    total_projects: int,
    coherence: float,
    most_recent_timestamp: float,
    now: float,
    novelty: float = 1.0,
    weights: ClusterScoringWeights = DEFAULT_CLUSTER_WEIGHTS,
    size_ceiling: int = DEFAULT_SIZE_CEILING,
) -> tuple[float, ClusterScoreBreakdown]:
    """Score one cluster. Timestamps are epoch seconds; 0 means unknown."""
    ceiling = min(total_prompts, size_ceiling)
    if ceiling > 0:
        size = min(1.0, math.log2(cluster_size + 1) / math.log2(ceiling + 1))
    else:
        size = 0.0
    cross_project = project_count / total_projects if total_projects > 0 else 0.0
    coherence = max(0.0, min(1.0, coherence))
    recency = recency_factor(most_recent_timestamp if most_recent_timestamp > 0 else None, now)
    novelty = max(0.0, min(1.0, novelty))

    score = (
        weights.size * size
        + weights.cross_project * cross_project
        + weights.coherence * coherence
        + weights.recency * recency
        + weights.novelty * novelty
    )
    return score, ClusterScoreBreakdown(
        size=size,
        cross_project=cross_project,
        coherence=coherence,
        recency=recency,
        novelty=novelty,
    )


def compute_novelty(name: str, description: str, existing: Sequence[ExistingSkill]) -> float:
    """1 minus the best keyword overlap with any existing skill (1.0 for an empty catalog)."""
    keywords = set(extract_keywords(f"{name} {description}"))
    best = 0.0
    for skill in existing:
        other = set(extract_keywords(f"{skill.name} {skill.description}"))
        best = max(best, jaccard_similarity(keywords, other))
    return 1.0 - best


def generate_cluster_name(label: str) -> str:
    """Kebab-case name from the first few keywords of the cluster label."""
    words = extract_keywords(label)[:MAX_NAME_WORDS]
    return "-".join(words) if words else "prompt-cluster"


def generate_cluster_description(label: str) -> str:
    return f"Guides workflow when: {label[:MAX_DESCRIPTION_LABEL]}"


def rank_cluster_candidates(
    clusters: Sequence[PromptCluster],
    total_prompts: int,
    total_projects: int,
    existing_skills: Sequence[ExistingSkill] = (),
    now: float | None = None,
    weights: ClusterScoringWeights = DEFAULT_CLUSTER_WEIGHTS,
    dedup_threshold: float = DEFAULT_DEDUP_THRESHOLD,
) -> list[ClusterCandidate]:
    """Score, sort and deduplicate cluster candidates."""
    current = now if now is not None else time.time()
    candidates: list[ClusterCandidate] = []

    for cluster in clusters:
        most_recent = cluster.most_recent
        name = generate_cluster_name(cluster.label)
        description = generate_cluster_description(cluster.label)
        score, breakdown = score_cluster(
            cluster.member_count,
            total_prompts,
            len(cluster.project_slugs),
            total_projects,
            cluster.coherence,
            most_recent,
            current,
            novelty=compute_novelty(name, description, existing_skills),
            weights=weights,
        )
        last_seen = (
            datetime.fromtimestamp(most_recent, tz=timezone.utc).isoformat().replace("+00:00", "Z")
            if most_recent > 0
            else ""
        )
        candidates.append(
            ClusterCandidate(
                label=cluster.label,
                suggested_name=name,
                suggested_description=description,
                cluster_size=cluster.member_count,
                coherence=cluster.coherence,
                score=score,
                score_breakdown=breakdown,
                example_prompts=list(cluster.example_prompts),
                evidence=ClusterEvidence(
                    projects=sorted(cluster.project_slugs),
                    prompt_count=cluster.member_count,
                    last_seen=last_seen,
                ),
                method=cluster.method,
            )
        )

    candidates.sort(key=lambda c: -c.score)
    if existing_skills:
        candidates = deduplicate_against_existing(candidates, existing_skills, dedup_threshold).filtered
    return candidates
