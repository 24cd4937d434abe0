"""Prompt clusterer — semantic clusters of user prompts.

Pipeline:
    1. Per project: truncate → embed (cached) → tune epsilon → DBSCAN → label
    2. Across projects: greedily merge clusters whose centroids are similar
    3. Sort by member count, keep the largest

Projects with too few prompts are skipped rather than clustered on noise.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np

from .clustering import cosine_distance, dbscan, pairwise_cosine_distances, tune_epsilon
from .embedding_cache import PromptEmbeddingCache
from .embeddings import METHOD_HEURISTIC, METHOD_MODEL, EmbeddingService
from .models import CollectedPrompt, PromptCluster

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 100
MAX_EXAMPLE_PROMPTS = 3
MAX_PROMPT_WORDS = 200


@dataclass
class ClusterOptions:
    min_prompts_per_project: int = 10
    min_points: int = 3
    merge_similarity_threshold: float = 0.8
    max_clusters: int = 10
    batch_size: int = 64


@dataclass
class ClusterResult:
    clusters: list[PromptCluster] = field(default_factory=list)
    skipped_projects: list[str] = field(default_factory=list)
    method: str = METHOD_MODEL


def truncate_to_words(text: str, max_words: int = MAX_PROMPT_WORDS) -> str:
    words = text.split()
    if len(words) <= max_words:
        return text
    return " ".join(words[:max_words])


async def _embed_all(
    texts: list[str],
    service: EmbeddingService,
    cache: PromptEmbeddingCache | None,
    batch_size: int,
) -> tuple[list[list[float]], str]:
    """Embeddings for ``texts`` in order, computing only cache misses.

    All vectors of one call come from the same method: if the service falls
    back to heuristics midway, everything is re-embedded heuristically.
    """
    version = service.model_version
    if cache is not None:
        embeddings, missing = cache.get_all(texts, version)
    else:
        embeddings, missing = {}, list(dict.fromkeys(texts))

    computed: dict[str, list[float]] = {}
    for start in range(0, len(missing), batch_size):
        batch = missing[start : start + batch_size]
        for text, result in zip(batch, await service.embed_batch(batch)):
            computed[text] = result.embedding

    if service.model_version != version:
        unique = list(dict.fromkeys(texts))
        results = await service.embed_batch(unique)
        embeddings = {}
        computed = {text: r.embedding for text, r in zip(unique, results)}

    embeddings.update(computed)
    if cache is not None:
        cache.set_batch(list(computed.items()), service.model_version)
    return [embeddings[t] for t in texts], service.method


def _build_cluster(
    indices: list[int],
    prompts: Sequence[CollectedPrompt],
    texts: list[str],
    vectors: np.ndarray,
    method: str,
) -> PromptCluster:
    members = vectors[indices]
    centroid = members.mean(axis=0)
    distances = np.array([cosine_distance(m, centroid) for m in members])

    # Nearest to the centroid first; ties by input order
    order = sorted(range(len(indices)), key=lambda k: (float(distances[k]), indices[k]))
    nearest = texts[indices[order[0]]]
    label = nearest if len(nearest) <= MAX_LABEL_LENGTH else nearest[: MAX_LABEL_LENGTH - 3] + "..."

    return PromptCluster(
        label=label,
        example_prompts=[prompts[indices[k]].text for k in order[:MAX_EXAMPLE_PROMPTS]],
        centroid=centroid.tolist(),
        member_count=len(indices),
        project_slugs=sorted({prompts[i].project_slug for i in indices}),
        timestamps=[prompts[i].timestamp for i in indices],
        coherence=float(max(0.0, min(1.0, 1.0 - float(np.mean(distances))))),
        method=method,
    )


def _comparable(a: PromptCluster, b: PromptCluster) -> bool:
    # Model and heuristic vectors live in different spaces, possibly of different size
    return a.method == b.method and len(a.centroid) == len(b.centroid)


def _centroid_similarity(a: PromptCluster, b: PromptCluster) -> float:
    va, vb = np.asarray(a.centroid), np.asarray(b.centroid)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    return float(np.dot(va, vb) / denom) if denom > 0 else 0.0


def _merge_pair(a: PromptCluster, b: PromptCluster) -> PromptCluster:
    total = a.member_count + b.member_count
    label_source = a if a.member_count >= b.member_count else b
    centroid = (
        np.asarray(a.centroid) * a.member_count + np.asarray(b.centroid) * b.member_count
    ) / total
    return PromptCluster(
        label=label_source.label,
        example_prompts=list(label_source.example_prompts),
        centroid=centroid.tolist(),
        member_count=total,
        project_slugs=sorted(set(a.project_slugs) | set(b.project_slugs)),
        timestamps=a.timestamps + b.timestamps,
        coherence=(a.coherence * a.member_count + b.coherence * b.member_count) / total,
        method=a.method,
    )


def merge_cross_project(clusters: list[PromptCluster], threshold: float) -> list[PromptCluster]:
    """Repeatedly merge the most similar pair of clusters while it clears ``threshold``.

    Clusters embedded by different methods are never merged.
    """
    working = list(clusters)
    while len(working) > 1:
        best = (-1.0, -1, -1)
        for i in range(len(working)):
            for j in range(i + 1, len(working)):
                if not _comparable(working[i], working[j]):
                    continue
                sim = _centroid_similarity(working[i], working[j])
                if sim >= threshold and sim > best[0]:
                    best = (sim, i, j)
        _, i, j = best
        if i < 0:
            break
        working[i] = _merge_pair(working[i], working[j])
        del working[j]
    return working


async def cluster_prompts(
    prompts_by_project: Mapping[str, Sequence[CollectedPrompt]],
    service: EmbeddingService,
    cache: PromptEmbeddingCache | None = None,
    options: ClusterOptions | None = None,
) -> ClusterResult:
    """Cluster collected prompts per project, then merge across projects."""
    options = options or ClusterOptions()
    result = ClusterResult(method=service.method)
    clusters: list[PromptCluster] = []
    methods: set[str] = set()

    for slug in sorted(prompts_by_project):
        prompts = list(prompts_by_project[slug])
        if len(prompts) < options.min_prompts_per_project:
            result.skipped_projects.append(slug)
            continue

        texts = [truncate_to_words(p.text) for p in prompts]
        embeddings, method = await _embed_all(texts, service, cache, options.batch_size)
        methods.add(method)

        vectors = np.asarray(embeddings, dtype=np.float64)
        distances = pairwise_cosine_distances(vectors)
        epsilon = tune_epsilon(vectors, options.min_points, distances)
        found = dbscan(vectors, epsilon, options.min_points, distances)
        logger.debug(
            "Project %s: %d prompts, epsilon=%.4f, %d clusters, %d noise",
            slug, len(prompts), epsilon, found.n_clusters, len(found.noise),
        )  # fmt: skip

        for indices in found.clusters:
            clusters.append(_build_cluster(indices, prompts, texts, vectors, method))

    if cache is not None:
        cache.save()

    merged = merge_cross_project(clusters, options.merge_similarity_threshold)
    merged.sort(key=lambda c: -c.member_count)
    result.clusters = merged[: options.max_clusters]
    if METHOD_HEURISTIC in methods:
        result.method = METHOD_HEURISTIC
    return result
