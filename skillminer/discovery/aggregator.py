"""Pattern aggregator — merge per-session counts into corpus-wide occurrences."""

from __future__ import annotations

import logging

from .models import PatternOccurrence, SessionPatterns

logger = logging.getLogger(__name__)

# Key prefixes keep pattern kinds from colliding
BIGRAM_PREFIX = "tool:bigram:"
TRIGRAM_PREFIX = "tool:trigram:"
BASH_PREFIX = "bash:"

DEFAULT_NOISE_MIN_PROJECTS = 15
DEFAULT_NOISE_RATIO = 0.8


class PatternAggregator:
    """Sole owner of the corpus-wide ``PatternOccurrence`` map.

    Callers only ever see copies (``get_results``); mutation goes through
    ``add_session_patterns`` and ``filter_noise``.
    """

    def __init__(self) -> None:
        self._patterns: dict[str, PatternOccurrence] = {}
        self._sessions: set[str] = set()
        self._projects: set[str] = set()

    def _merge_all(self, prefix: str, counts: dict[str, int], session_id: str, project: str) -> None:
        for key, count in counts.items():
            if count <= 0:
                continue
            full_key = prefix + key
            occurrence = self._patterns.get(full_key)
            if occurrence is None:
                occurrence = self._patterns[full_key] = PatternOccurrence()
            occurrence.merge(session_id, project, count)

    def add_session_patterns(self, patterns: SessionPatterns) -> None:
        sid, project = patterns.session_id, patterns.project_slug
        self._sessions.add(sid)
        self._projects.add(project)
        self._merge_all(BIGRAM_PREFIX, patterns.tool_bigrams, sid, project)
        self._merge_all(TRIGRAM_PREFIX, patterns.tool_trigrams, sid, project)
        self._merge_all(BASH_PREFIX, patterns.bash_patterns, sid, project)

    def filter_noise(
        self,
        total_projects: int,
        min_project_threshold: int = DEFAULT_NOISE_MIN_PROJECTS,
        ratio: float = DEFAULT_NOISE_RATIO,
    ) -> list[str]:
        """Drop patterns present almost everywhere; return the removed keys.

        A pattern is noise iff its project count is at least
        ``min_project_threshold`` AND at least ``ratio`` of ``total_projects``.
        """
        if total_projects <= 0:
            return []
        removed = [
            key
            for key, occ in self._patterns.items()
            if occ.project_count >= min_project_threshold
            and occ.project_count / total_projects >= ratio
        ]
        for key in removed:
            del self._patterns[key]
        if removed:
            logger.debug("Filtered %d noise patterns across %d projects", len(removed), total_projects)
        return removed

    def get_results(self) -> dict[str, PatternOccurrence]:
        """Deep copy of the current patterns."""
        return {key: occ.copy() for key, occ in self._patterns.items()}

    @property
    def total_projects_tracked(self) -> int:
        return len(self._projects)

    @property
    def total_sessions_tracked(self) -> int:
        return len(self._sessions)

    def __len__(self) -> int:
        return len(self._patterns)
