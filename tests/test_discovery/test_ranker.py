"""Tests for pattern scoring, evidence assembly, deduplication and ranking."""

from __future__ import annotations

import math

import pytest

from skillminer.config import ScoringWeights
from skillminer.discovery.aggregator import PatternAggregator
from skillminer.discovery.errors import UnknownPatternKeyError
from skillminer.discovery.extractors import extract_ngrams
from skillminer.discovery.models import (
    ExistingSkill,
    PatternOccurrence,
    PatternType,
    SessionPatterns,
)
from skillminer.discovery.ranker import (
    MAX_EVIDENCE_SESSIONS,
    RankingOptions,
    assemble_evidence,
    deduplicate_against_existing,
    rank_candidates,
)
from skillminer.discovery.scorer import (
    SECONDS_PER_DAY,
    generate_candidate_name,
    generate_description,
    generate_label,
    parse_pattern_key,
    recency_factor,
    score_pattern,
)

NOW = 1_760_000_000.0


def _occurrence(sessions: dict[str, tuple[str, int]]) -> PatternOccurrence:
    """Build from ``{session_id: (project, count)}``."""
    occ = PatternOccurrence()
    for sid, (project, count) in sessions.items():
        occ.merge(sid, project, count)
    return occ


class TestPatternKeys:
    def test_parse(self):
        bigram = parse_pattern_key("tool:bigram:Read->Edit")
        assert bigram.type == PatternType.TOOL_BIGRAM
        assert bigram.tools == ["Read", "Edit"]
        trigram = parse_pattern_key("tool:trigram:Grep->Read->Edit")
        assert trigram.type == PatternType.TOOL_TRIGRAM
        assert trigram.tools == ["Grep", "Read", "Edit"]
        bash = parse_pattern_key("bash:git-workflow")
        assert bash.type == PatternType.BASH_PATTERN
        assert bash.category == "git-workflow"

    def test_unknown_prefix(self):
        with pytest.raises(UnknownPatternKeyError):
            parse_pattern_key("mystery:thing")

    def test_names_labels_descriptions(self):
        tool = parse_pattern_key("tool:bigram:Read->Edit")
        assert generate_candidate_name(tool) == "read-edit-workflow"
        assert generate_label(tool) == "Read -> Edit workflow"
        assert generate_description(tool) == (
            "Guides Read -> Edit workflow. Use when reading and analyzing and editing and modifying files."
        )

        bash = parse_pattern_key("bash:git-workflow")
        assert generate_candidate_name(bash) == "git-workflow-patterns"
        assert generate_label(bash) == "Git-workflow commands"
        assert "git-workflow" in generate_description(bash)

    def test_unfamiliar_tools_get_generic_verb(self):
        parsed = parse_pattern_key("tool:bigram:WebFetch->TodoWrite")
        assert "performing development operations on" in generate_description(parsed)


class TestScoring:
    def test_recency_half_life(self):
        assert recency_factor(NOW, NOW) == pytest.approx(1.0)
        assert recency_factor(NOW - 14 * SECONDS_PER_DAY, NOW) == pytest.approx(0.5)
        assert recency_factor(None, NOW) == 0.0
        # Clock skew never yields more than 1
        assert recency_factor(NOW + SECONDS_PER_DAY, NOW) == pytest.approx(1.0)

    def test_score_components(self):
        occ = _occurrence({"s1": ("a", 2), "s2": ("b", 1)})
        score, breakdown = score_pattern(occ, 4, 6, {"s1": NOW, "s2": NOW - 28 * SECONDS_PER_DAY}, NOW)
        assert breakdown.frequency == pytest.approx(math.log2(4) / 10)
        assert breakdown.cross_project == pytest.approx(0.5)
        assert breakdown.recency == pytest.approx(1.0)
        assert breakdown.consistency == pytest.approx(2 / 6)
        expected = 0.25 * breakdown.frequency + 0.30 * 0.5 + 0.25 * 1.0 + 0.20 * (2 / 6)
        assert score == pytest.approx(expected)

    def test_frequency_saturates(self):
        occ = _occurrence({"s1": ("a", 5000)})
        _, breakdown = score_pattern(occ, 1, 1, {}, NOW)
        assert breakdown.frequency == 1.0
        assert breakdown.recency == 0.0

    def test_empty_corpus(self):
        _, breakdown = score_pattern(_occurrence({"s1": ("a", 1)}), 0, 0, {}, NOW)
        assert breakdown.cross_project == 0.0
        assert breakdown.consistency == 0.0

    def test_custom_weights(self):
        occ = _occurrence({"s1": ("a", 1)})
        weights = ScoringWeights(frequency=0.0, cross_project=1.0, recency=0.0, consistency=0.0)
        score, _ = score_pattern(occ, 2, 1, {}, NOW, weights)
        assert score == pytest.approx(0.5)


class TestEvidence:
    def test_newest_sessions_first_and_capped(self):
        sessions = {f"s{i:02d}": ("p", 1) for i in range(15)}
        timestamps = {f"s{i:02d}": NOW - i * SECONDS_PER_DAY for i in range(12)}
        evidence = assemble_evidence("tool:bigram:Read->Edit", _occurrence(sessions), timestamps)

        assert len(evidence.sessions) == MAX_EVIDENCE_SESSIONS
        assert evidence.sessions[:3] == ["s00", "s01", "s02"]
        assert evidence.total_occurrences == 15
        assert evidence.example_invocations == ["Read -> Edit"]
        assert evidence.last_seen.endswith("Z")
        assert evidence.first_seen < evidence.last_seen

    def test_unknown_timestamps_last(self):
        timestamps = {"b": NOW}
        evidence = assemble_evidence("bash:search", _occurrence({"a": ("p", 1), "b": ("q", 1)}), timestamps)
        assert evidence.sessions == ["b", "a"]
        assert evidence.projects == ["p", "q"]
        assert evidence.example_invocations == ["search"]

    def test_no_timestamps(self):
        evidence = assemble_evidence("bash:search", _occurrence({"a": ("p", 1)}), {})
        assert evidence.first_seen == ""
        assert evidence.last_seen == ""


class TestDeduplication:
    def _candidates(self):
        patterns = {
            "tool:bigram:Read->Edit": _occurrence({"s1": ("a", 3)}),
            "bash:git-workflow": _occurrence({"s1": ("a", 2)}),
        }
        return rank_candidates(patterns, 1, 1, {}, RankingOptions(now=NOW))

    def test_name_match_case_insensitive(self):
        existing = [ExistingSkill(name="Read-Edit-Workflow", description="unrelated")]
        result = deduplicate_against_existing(self._candidates(), existing)
        assert [c.suggested_name for c in result.filtered] == ["git-workflow-patterns"]
        assert [c.suggested_name for c in result.removed] == ["read-edit-workflow"]
        assert result.guarantee_applied is False

    def test_description_similarity(self):
        existing = [ExistingSkill(name="vcs", description="Running git-workflow commands and operations")]
        result = deduplicate_against_existing(self._candidates(), existing)
        assert [c.suggested_name for c in result.removed] == ["git-workflow-patterns"]

    def test_never_removes_everything(self):
        candidates = self._candidates()
        existing = [
            ExistingSkill(name="read-edit-workflow", description=""),
            ExistingSkill(name="git-workflow-patterns", description=""),
        ]
        result = deduplicate_against_existing(candidates, existing)
        assert result.filtered == candidates
        assert result.removed == []
        assert result.guarantee_applied is True

    def test_no_existing_skills(self):
        candidates = self._candidates()
        assert deduplicate_against_existing(candidates, []).filtered == candidates


class TestRankCandidates:
    def test_sorted_and_capped(self):
        patterns = {
            f"tool:bigram:T{i}->U": _occurrence({f"s{j}": ("p", 1) for j in range(i + 1)})
            for i in range(30)
        }
        ranked = rank_candidates(patterns, 1, 30, {}, RankingOptions(max_candidates=20, now=NOW))
        assert len(ranked) == 20
        scores = [c.score for c in ranked]
        assert scores == sorted(scores, reverse=True)
        assert ranked[0].pattern_key == "tool:bigram:T29->U"

    def test_unknown_keys_skipped(self):
        patterns = {"weird:key": _occurrence({"s1": ("p", 1)}), "bash:search": _occurrence({"s1": ("p", 1)})}
        ranked = rank_candidates(patterns, 1, 1, {}, RankingOptions(now=NOW))
        assert [c.pattern_key for c in ranked] == ["bash:search"]

    def test_read_edit_bash_across_sessions(self):
        aggregator = PatternAggregator()
        for sid, project in [("s1", "alpha"), ("s2", "alpha"), ("s3", "beta")]:
            sequence = ["Read", "Edit", "Bash"]
            aggregator.add_session_patterns(
                SessionPatterns(
                    session_id=sid,
                    project_slug=project,
                    tool_bigrams=extract_ngrams(sequence, 2),
                    tool_trigrams=extract_ngrams(sequence, 3),
                )
            )
        timestamps = {"s1": NOW, "s2": NOW, "s3": NOW}
        ranked = rank_candidates(
            aggregator.get_results(),
            aggregator.total_projects_tracked,
            aggregator.total_sessions_tracked,
            timestamps,
            RankingOptions(now=NOW),
        )
        by_key = {c.pattern_key: c for c in ranked}
        candidate = by_key["tool:bigram:Read->Edit"]
        assert candidate.evidence.total_occurrences == 3
        assert len(candidate.evidence.sessions) == 3
        assert candidate.evidence.projects == ["alpha", "beta"]
        assert candidate.score == pytest.approx(0.25 * 0.2 + 0.30 + 0.25 + 0.20)
        assert "tool:trigram:Read->Edit->Bash" in by_key
