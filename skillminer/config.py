"""Central configuration for skill discovery.

This is the single place where discovery defaults live: corpus location,
persisted state paths, embedding model, and the tunable scoring weights.

Usage:
    from skillminer.config import DISCOVERY_DEFAULTS

    state_path = DISCOVERY_DEFAULTS.state_path

    # Or use environment variables to override at runtime:
    # SKILLMINER_HOME=~/.skillminer
    # SKILLMINER_CLAUDE_DIR=~/.claude
    # SKILLMINER_EMBEDDING_MODEL=intfloat/e5-small-v2
    # SKILLMINER_SCAN_CONCURRENCY=8
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_path(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    return Path(value).expanduser() if value else default


# =============================================================================
# Scoring Weights
# =============================================================================


@dataclass(frozen=True)
class ScoringWeights:
    """Weights for the frequency-based pattern score.

    Attributes:
        frequency: Raw occurrence volume, log-scaled.
        cross_project: Fraction of scanned projects the pattern appears in.
        recency: Exponential decay since the newest contributing session.
        consistency: Fraction of scanned sessions the pattern appears in.
    """

    frequency: float = 0.25
    cross_project: float = 0.30
    recency: float = 0.25
    consistency: float = 0.20


@dataclass(frozen=True)
class ClusterScoringWeights:
    """Weights for the semantic-cluster score.

    Attributes:
        size: Member count, saturating above a ceiling.
        cross_project: Fraction of projects the cluster spans.
        coherence: Average intra-cluster similarity.
        recency: Exponential decay since the newest member prompt.
        novelty: Inverse similarity to the existing skill catalog.
    """

    size: float = 0.15
    cross_project: float = 0.25
    coherence: float = 0.25
    recency: float = 0.15
    novelty: float = 0.20


DEFAULT_SCORING_WEIGHTS = ScoringWeights()
DEFAULT_CLUSTER_WEIGHTS = ClusterScoringWeights()

# Half-life shared by both scorers
RECENCY_HALF_LIFE_DAYS = 14.0


# =============================================================================
# Discovery Configuration
# =============================================================================


@dataclass
class DiscoveryConfig:
    """Defaults for a discovery run.

    Environment variables can override:
    - SKILLMINER_HOME (where scan state and the embedding cache live)
    - SKILLMINER_CLAUDE_DIR (corpus root containing ``projects/``)
    - SKILLMINER_EMBEDDING_MODEL
    - SKILLMINER_SCAN_CONCURRENCY
    """

    home: Path = field(
        default_factory=lambda: _env_path("SKILLMINER_HOME", Path.home() / ".skillminer")
    )
    claude_dir: Path = field(
        default_factory=lambda: _env_path("SKILLMINER_CLAUDE_DIR", Path.home() / ".claude")
    )

    # Embeddings
    embedding_model: str = field(
        default_factory=lambda: os.environ.get("SKILLMINER_EMBEDDING_MODEL", "all-MiniLM-L6-v2")
    )
    embedding_dim: int = 384

    # Scanning
    scan_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("SKILLMINER_SCAN_CONCURRENCY", "4"))
    )

    # Aggregation / ranking
    noise_min_projects: int = 15
    noise_ratio: float = 0.8
    max_candidates: int = 20
    dedup_threshold: float = 0.5
    scoring_weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS

    # Clustering
    min_prompts_per_project: int = 10
    cluster_min_points: int = 3
    max_clusters: int = 10
    cluster_weights: ClusterScoringWeights = DEFAULT_CLUSTER_WEIGHTS

    @property
    def state_path(self) -> Path:
        return self.home / "scan-state.json"

    @property
    def embedding_cache_path(self) -> Path:
        return self.home / "prompt-embeddings.json"


# Singleton instance - import this to get defaults
DISCOVERY_DEFAULTS = DiscoveryConfig()


def get_default_embedding_model() -> str:
    """Get the default sentence transformer model name."""
    return DISCOVERY_DEFAULTS.embedding_model


def get_default_embedding_dim() -> int:
    """Get the default embedding dimension."""
    return DISCOVERY_DEFAULTS.embedding_dim
