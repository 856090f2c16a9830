# =============================================================================
# Embedding Service — Batch Vector Generation with a Disk Cache
# =============================================================================
#
# Generates vector embeddings using any OpenAI-compatible embedding API,
# and caches corpus embeddings on disk so an archive is embedded once
# rather than on every search.
#
# DESIGN DECISION: OpenAI SDK with configurable base_url.
# Most providers expose OpenAI-compatible embedding endpoints. By making
# base_url configurable, we support all of them with zero code changes.
#
# DESIGN DECISION: Sync API, called through asyncio.to_thread() from async
# code. The OpenAI sync client is thread-safe and keeps the cache logic
# simple.
#
# DESIGN DECISION: Cache keyed by (cache_key, text).
# The cache key names a corpus + model combination (e.g.
# "emails-text-embedding-3-small"). Within a key, texts map to vectors, so
# adding documents to a corpus only embeds the new ones.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
from openai import OpenAI

from agentlab.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# API key resolution order:
#   1. OPENAI_API_KEY (explicit embedding key)
#   2. LLM_API_KEY (shared key)
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int | None = None,
) -> list[list[float]]:
    """
    Generate embeddings for a batch of texts.

    Processes texts in sub-batches to respect API token limits.
    Returns embeddings in the SAME ORDER as the input texts.

    Raises:
        ValueError: If no embedding API key is configured.
        openai.APIError: If the API call fails.
    """
    if not texts:
        return []

    client = _get_client()
    _batch_size = batch_size or settings.embedding_batch_size

    all_embeddings: list[list[float]] = [[] for _ in texts]

    for i in range(0, len(texts), _batch_size):
        batch = list(texts[i : i + _batch_size])
        logger.info(
            "Embedding batch %d–%d of %d texts (model=%s)",
            i + 1,
            min(i + _batch_size, len(texts)),
            len(texts),
            settings.embedding_model,
        )

        create_kwargs: dict = {
            "model": settings.embedding_model,
            "input": batch,
        }
        if settings.embedding_dimensions:
            create_kwargs["dimensions"] = settings.embedding_dimensions

        response = client.embeddings.create(**create_kwargs)

        # Items carry their input index; place each one explicitly
        for item in sorted(response.data, key=lambda x: x.index):
            all_embeddings[i + item.index] = item.embedding

    logger.info(
        "Generated %d embeddings (model=%s)",
        len(texts), settings.embedding_model,
    )
    return all_embeddings


def embed_query(text: str) -> list[float]:
    """Generate an embedding for a single query string."""
    return embed_batch([text], batch_size=1)[0]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, in [-1, 1].

    Returns 0.0 when either vector has zero norm.
    """
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


# ---------------------------------------------------------------------------
# Embedding Cache
# ---------------------------------------------------------------------------


class EmbeddingCache:
    """
    JSON-file cache of text → embedding for one cache key.

    Files live at <cache_dir>/<cache_key>.json. The file is read lazily on
    first access and rewritten whenever new embeddings are added.
    """

    def __init__(self, cache_key: str, cache_dir: str | Path | None = None) -> None:
        self.cache_key = cache_key
        self._path = Path(cache_dir or settings.embedding_cache_dir) / f"{cache_key}.json"
        self._entries: dict[str, list[float]] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, list[float]]:
        if self._entries is None:
            if self._path.exists():
                with open(self._path, encoding="utf-8") as f:
                    self._entries = json.load(f)
                logger.info(
                    "Loaded %d cached embeddings from %s",
                    len(self._entries), self._path,
                )
            else:
                self._entries = {}
        return self._entries

    def get(self, text: str) -> list[float] | None:
        return self._load().get(text)

    def __contains__(self, text: str) -> bool:
        return text in self._load()

    def __len__(self) -> int:
        return len(self._load())

    def put_many(self, items: dict[str, list[float]]) -> None:
        entries = self._load()
        entries.update(items)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(entries, f)


def embedding_cache_key(corpus: str) -> str:
    """Cache key for a corpus under the configured embedding model."""
    model = settings.embedding_model.replace("/", "_")
    return f"{corpus}-{model}"


def embed_with_cache(
    texts: Sequence[str],
    cache_key: str,
    cache_dir: str | Path | None = None,
) -> list[list[float]]:
    """
    Embed texts, reusing cached vectors and embedding only the misses.

    Returns embeddings in the same order as `texts`.
    """
    cache = EmbeddingCache(cache_key, cache_dir)

    # dict.fromkeys keeps first-seen order and drops duplicates
    missing = [t for t in dict.fromkeys(texts) if t not in cache]
    if missing:
        logger.info(
            "Embedding cache '%s': %d hits, %d misses",
            cache_key, len(texts) - len(missing), len(missing),
        )
        vectors = embed_batch(missing)
        cache.put_many(dict(zip(missing, vectors, strict=True)))

    return [cache.get(t) for t in texts]
