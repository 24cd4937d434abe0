"""Prompt embedding cache — at most one embedding per distinct prompt text.

Entries are keyed by a content hash of the whitespace-normalized prompt and
tagged with the model version that produced them; a lookup under a
different model version is a miss. Saved atomically, and only when changed.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .state import atomic_write_json

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"

_WHITESPACE = re.compile(r"\s+")


def content_hash(text: str) -> str:
    """SHA-256 of the normalized text, truncated to 16 hex chars."""
    normalized = _WHITESPACE.sub(" ", text).strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


class PromptEmbeddingCache:
    """Persistent ``content hash -> embedding`` map.

    Args:
        path: JSON cache file.
        model_version: Default version tag for lookups and stores.
    """

    def __init__(self, path: Path, model_version: str) -> None:
        self.path = Path(path)
        self.model_version = model_version
        self._entries: dict[str, dict[str, Any]] = {}
        self._dirty = False
        self._lock = threading.Lock()

    @property
    def dirty(self) -> bool:
        return self._dirty

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> None:
        """Load from disk. A missing, corrupt or unreadable file yields an empty cache."""
        with self._lock:
            self._entries = {}
            self._dirty = False
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Failed to load embedding cache from %s: %s", self.path, e)
                return
            if (
                not isinstance(data, dict)
                or not isinstance(data.get("version"), str)
                or not isinstance(data.get("entries"), dict)
            ):
                logger.warning("Ignoring malformed embedding cache at %s", self.path)
                return
            self._entries = {
                key: entry
                for key, entry in data["entries"].items()
                if isinstance(entry, dict) and isinstance(entry.get("embedding"), list)
            }

    def save(self) -> None:
        with self._lock:
            if not self._dirty:
                return
            payload = {
                "version": CACHE_VERSION,
                "modelVersion": self.model_version,
                "entries": self._entries,
            }
            atomic_write_json(self.path, payload, prefix=".prompt-embeddings_")
            self._dirty = False

    def get(self, text: str, model_version: str | None = None) -> list[float] | None:
        version = model_version or self.model_version
        with self._lock:
            entry = self._entries.get(content_hash(text))
        if entry is None or entry.get("modelVersion") != version:
            return None
        return entry["embedding"]

    def has(self, text: str, model_version: str | None = None) -> bool:
        return self.get(text, model_version) is not None

    def set(self, text: str, embedding: list[float], model_version: str | None = None) -> None:
        entry = {
            "embedding": list(embedding),
            "modelVersion": model_version or self.model_version,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._entries[content_hash(text)] = entry
            self._dirty = True

    def set_batch(self, items: list[tuple[str, list[float]]], model_version: str | None = None) -> None:
        for text, embedding in items:
            self.set(text, embedding, model_version)

    def get_all(
        self, texts: list[str], model_version: str | None = None
    ) -> tuple[dict[str, list[float]], list[str]]:
        """Split ``texts`` into cached embeddings and the texts still missing."""
        found: dict[str, list[float]] = {}
        missing: dict[str, None] = {}
        for text in texts:
            embedding = self.get(text, model_version)
            if embedding is None:
                missing.setdefault(text, None)
            else:
                found[text] = embedding
        return found, list(missing)
