"""Embedding service — prompt vectors from a sentence-transformer model.

The model is loaded lazily on first use. If ``sentence-transformers`` is not
installed, the model cannot be loaded, or encoding fails, the service
switches to a deterministic hashed bag-of-words embedder for the rest of
its lifetime. Every result records which method produced it.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

import numpy as np

from ..config import get_default_embedding_dim, get_default_embedding_model

logger = logging.getLogger(__name__)

METHOD_MODEL = "model"
METHOD_HEURISTIC = "heuristic"

_WORD = re.compile(r"[a-z0-9_]+")


@dataclass
class EmbeddingResult:
    embedding: list[float]
    from_cache: bool
    method: str  # METHOD_MODEL or METHOD_HEURISTIC


class HeuristicEmbedder:
    """Signed feature hashing of words and word bigrams, L2-normalized.

    Prompts sharing vocabulary land close in cosine space, which is enough
    for density clustering when no model is available.
    """

    def __init__(self, dimension: int = 384) -> None:
        self.dimension = dimension

    def _bucket(self, feature: str) -> tuple[int, float]:
        digest = hashlib.sha256(feature.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "big") % self.dimension
        sign = 1.0 if digest[4] & 1 else -1.0
        return index, sign

    def embed(self, text: str) -> list[float]:
        words = _WORD.findall(text.lower())
        counts: dict[str, float] = {}
        for word in words:
            counts[word] = counts.get(word, 0.0) + 1.0
        for a, b in zip(words, words[1:]):
            key = f"{a} {b}"
            counts[key] = counts.get(key, 0.0) + 0.5

        vector = np.zeros(self.dimension, dtype=np.float64)
        for feature, count in counts.items():
            index, sign = self._bucket(feature)
            # Sublinear term frequency; a lone bigram keeps its half weight
            weight = 1.0 + math.log(count) if count >= 1 else count
            vector[index] += sign * weight
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]


class EmbeddingService:
    """Produce prompt embeddings, preferring the configured model.

    Args:
        model_name: sentence-transformers model identifier.
        dimension: Vector size of the heuristic fallback. Matches the
            default model's output so cached vectors stay comparable.
        enabled: False forces heuristic mode (tests, offline runs).
    """

    def __init__(
        self,
        model_name: str | None = None,
        dimension: int | None = None,
        enabled: bool = True,
    ) -> None:
        self.model_name = model_name or get_default_embedding_model()
        self.dimension = dimension or get_default_embedding_dim()
        self._enabled = enabled
        self._model: Any = None
        self._heuristic = HeuristicEmbedder(self.dimension)

    @property
    def method(self) -> str:
        return METHOD_MODEL if self._enabled else METHOD_HEURISTIC

    @property
    def model_version(self) -> str:
        """Cache key namespace: vectors from different methods never mix."""
        if self._enabled:
            return self.model_name
        return f"heuristic-{self.dimension}"

    def _fall_back(self, reason: str) -> None:
        logger.warning("Embedding model %s unavailable (%s); using heuristic embeddings", self.model_name, reason)
        self._enabled = False
        self._model = None

    def _load(self) -> Any:
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _encode(self, texts: list[str]) -> tuple[list[list[float]], str]:
        if self._enabled:
            try:
                model = self._load()
                vectors = model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
                return [list(map(float, v)) for v in vectors], METHOD_MODEL
            except ImportError:
                self._fall_back("sentence-transformers not installed")
            except Exception as e:  # model download/load/encode errors vary by backend
                self._fall_back(f"{type(e).__name__}: {e}")
        return self._heuristic.embed_batch(texts), METHOD_HEURISTIC

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Embed ``texts`` in a worker thread; never raises on model failure."""
        if not texts:
            return []
        vectors, method = await asyncio.to_thread(self._encode, list(texts))
        return [EmbeddingResult(embedding=v, from_cache=False, method=method) for v in vectors]

    async def embed(self, text: str) -> EmbeddingResult:
        return (await self.embed_batch([text]))[0]
