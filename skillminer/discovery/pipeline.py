"""Discovery pipeline — scan → aggregate → filter → rank → cluster → draft.

One run produces fresh candidates from whatever the scan streamed: new and
appended transcript content by default, the whole corpus with
``force_rescan``. Clustering failures degrade to "no cluster candidates"
instead of failing the run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..config import DISCOVERY_DEFAULTS, DiscoveryConfig
from .aggregator import PatternAggregator
from .cluster_scorer import rank_cluster_candidates
from .clusterer import ClusterOptions, cluster_prompts
from .drafter import generate_cluster_draft, generate_skill_draft
from .embedding_cache import PromptEmbeddingCache
from .embeddings import EmbeddingService
from .models import ClusterCandidate, ExistingSkill, RankedCandidate, ScanResult, SkillDraft
from .processor import PromptCollector, create_prompt_collecting_processor
from .ranker import RankingOptions, rank_candidates
from .scanner import CorpusScanner
from .state import ScanStateStore

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryReport:
    scan: ScanResult
    candidates: list[RankedCandidate] = field(default_factory=list)
    cluster_candidates: list[ClusterCandidate] = field(default_factory=list)
    drafts: list[SkillDraft] = field(default_factory=list)
    removed_noise: list[str] = field(default_factory=list)
    skipped_cluster_projects: list[str] = field(default_factory=list)
    clustering_method: str = ""  # "" when clustering did not run


class DiscoveryPipeline:
    """Wire the discovery stages together for one corpus root.

    Args:
        config: Paths, thresholds and weights.
        existing_skills: Catalog used for deduplication and novelty.
        embedding_service: Injected for tests; built from ``config`` otherwise.
    """

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        existing_skills: Sequence[ExistingSkill] = (),
        embedding_service: EmbeddingService | None = None,
    ) -> None:
        self.config = config or DISCOVERY_DEFAULTS
        self.existing_skills = list(existing_skills)
        self._embedding_service = embedding_service

    @property
    def embedding_service(self) -> EmbeddingService:
        if self._embedding_service is None:
            self._embedding_service = EmbeddingService(
                self.config.embedding_model, self.config.embedding_dim
            )
        return self._embedding_service

    async def _cluster(
        self, collector: PromptCollector, total_projects: int, now: float, report: DiscoveryReport
    ) -> None:
        service = self.embedding_service
        cache = PromptEmbeddingCache(self.config.embedding_cache_path, service.model_version)
        cache.load()
        result = await cluster_prompts(
            collector.prompts,
            service,
            cache,
            ClusterOptions(
                min_prompts_per_project=self.config.min_prompts_per_project,
                min_points=self.config.cluster_min_points,
                max_clusters=self.config.max_clusters,
            ),
        )
        report.clustering_method = result.method
        report.skipped_cluster_projects = result.skipped_projects
        report.cluster_candidates = rank_cluster_candidates(
            result.clusters,
            collector.total,
            total_projects,
            self.existing_skills,
            now=now,
            weights=self.config.cluster_weights,
            dedup_threshold=self.config.dedup_threshold,
        )

    async def run(
        self,
        force_rescan: bool = False,
        dry_run: bool = False,
        exclude_projects: Iterable[str] = (),
        allow_projects: Iterable[str] | None = None,
        include_clusters: bool = True,
        max_sessions: int | None = None,
        now: float | None = None,
    ) -> DiscoveryReport:
        now = now if now is not None else time.time()
        aggregator = PatternAggregator()
        collector = PromptCollector()
        session_timestamps: dict[str, float] = {}

        scanner = CorpusScanner(
            self.config.claude_dir,
            ScanStateStore(self.config.state_path),
            exclude_projects=exclude_projects,
            allow_projects=allow_projects,
            force_rescan=force_rescan,
            dry_run=dry_run,
            concurrency=self.config.scan_concurrency,
            max_sessions=max_sessions,
        )
        scan = await scanner.scan(
            create_prompt_collecting_processor(aggregator, collector, session_timestamps)
        )
        report = DiscoveryReport(scan=scan)
        if dry_run:
            return report

        total_projects = aggregator.total_projects_tracked
        report.removed_noise = aggregator.filter_noise(
            total_projects, self.config.noise_min_projects, self.config.noise_ratio
        )
        report.candidates = rank_candidates(
            aggregator.get_results(),
            total_projects,
            aggregator.total_sessions_tracked,
            session_timestamps,
            RankingOptions(
                max_candidates=self.config.max_candidates,
                existing_skills=self.existing_skills,
                dedup_threshold=self.config.dedup_threshold,
                weights=self.config.scoring_weights,
                now=now,
            ),
        )

        if include_clusters and collector.total:
            try:
                await self._cluster(collector, total_projects, now, report)
            except Exception:  # clustering is optional; pattern candidates still stand
                logger.warning("Prompt clustering failed; continuing without clusters", exc_info=True)
                report.cluster_candidates = []

        report.drafts = [generate_skill_draft(c) for c in report.candidates]
        report.drafts += [generate_cluster_draft(c) for c in report.cluster_candidates]
        logger.info(
            "Discovery found %d pattern and %d cluster candidates",
            len(report.candidates),
            len(report.cluster_candidates),
        )
        return report
