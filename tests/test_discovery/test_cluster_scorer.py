"""Tests for cluster scoring, naming, novelty and ranking."""

from __future__ import annotations

import math

import pytest

from skillminer.discovery.cluster_scorer import (
    compute_novelty,
    generate_cluster_description,
    generate_cluster_name,
    rank_cluster_candidates,
    score_cluster,
)
from skillminer.discovery.models import ExistingSkill, PromptCluster
from skillminer.discovery.scorer import SECONDS_PER_DAY

NOW = 1_760_000_000.0


def _cluster(label: str, members: int, projects: list[str], coherence: float = 0.8, age_days: float = 0.0):
    return PromptCluster(
        label=label,
        example_prompts=[label],
        centroid=[1.0, 0.0],
        member_count=members,
        project_slugs=projects,
        timestamps=[NOW - age_days * SECONDS_PER_DAY],
        coherence=coherence,
    )


class TestScoreCluster:
    def test_all_factors_maxed(self):
        score, breakdown = score_cluster(7, 7, 2, 2, 1.0, NOW, NOW)
        assert breakdown.size == pytest.approx(1.0)
        assert breakdown.cross_project == 1.0
        assert breakdown.recency == pytest.approx(1.0)
        assert breakdown.novelty == 1.0
        assert score == pytest.approx(1.0)

    def test_size_saturates_at_ceiling(self):
        _, small = score_cluster(3, 1000, 1, 1, 0.5, NOW, NOW)
        assert small.size == pytest.approx(math.log2(4) / math.log2(51))
        _, big = score_cluster(80, 1000, 1, 1, 0.5, NOW, NOW)
        assert big.size == 1.0

    def test_unknown_timestamp_and_empty_corpus(self):
        score, breakdown = score_cluster(3, 0, 1, 0, 1.5, 0.0, NOW, novelty=-0.2)
        assert breakdown.size == 0.0
        assert breakdown.cross_project == 0.0
        assert breakdown.recency == 0.0
        assert breakdown.coherence == 1.0
        assert breakdown.novelty == 0.0
        assert score == pytest.approx(0.25)


class TestNaming:
    def test_name_from_keywords(self):
        assert generate_cluster_name("Please write unit tests for the parser module today") == (
            "write-unit-tests-parser-module"
        )

    def test_name_fallback(self):
        assert generate_cluster_name("ok do it") == "prompt-cluster"

    def test_description(self):
        label = "x" * 150
        assert generate_cluster_description(label) == "Guides workflow when: " + "x" * 100


class TestNovelty:
    def test_empty_catalog(self):
        assert compute_novelty("write-unit-tests", "Guides workflow when: write unit tests", []) == 1.0

    def test_overlap_reduces_novelty(self):
        existing = [ExistingSkill("unit-tests", "write unit tests")]
        novelty = compute_novelty("write-unit-tests", "write unit tests", existing)
        assert 0.0 <= novelty < 1.0
        assert compute_novelty("deploy-helm", "deploy helm charts", existing) == 1.0


class TestRankClusterCandidates:
    def test_sorted_with_evidence(self):
        clusters = [
            _cluster("tidy up the changelog entries", 3, ["a"], coherence=0.5, age_days=60),
            _cluster("write unit tests for the parser module", 12, ["a", "b"], coherence=0.9),
        ]
        ranked = rank_cluster_candidates(clusters, total_prompts=20, total_projects=2, now=NOW)
        assert [c.label for c in ranked] == [
            "write unit tests for the parser module",
            "tidy up the changelog entries",
        ]
        top = ranked[0]
        assert top.suggested_name == "write-unit-tests-parser-module"
        assert top.cluster_size == 12
        assert top.evidence.projects == ["a", "b"]
        assert top.evidence.prompt_count == 12
        assert top.evidence.last_seen.endswith("Z")

    def test_dedup_against_existing(self):
        clusters = [
            _cluster("write unit tests for the parser module", 12, ["a"]),
            _cluster("deploy the service with helm charts", 6, ["a"]),
        ]
        existing = [ExistingSkill("write-unit-tests-parser-module", "anything")]
        ranked = rank_cluster_candidates(clusters, 20, 1, existing, now=NOW)
        assert [c.suggested_name for c in ranked] == ["deploy-service-helm-charts"]
        assert ranked[0].score_breakdown.novelty == 1.0
