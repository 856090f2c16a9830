# =============================================================================
# Vector Store — Semantic Search over Embeddings
# =============================================================================
#
# Two ways to rank documents by embedding similarity:
#
#   ChromaVectorStore   — persistent/in-process ChromaDB collection with
#                         per-corpus filtering, for corpora you add once
#                         and query many times
#   rank_by_embedding() — brute-force cosine ranking in memory, for the
#                         small corpora (an email archive, one book) where
#                         hybrid search needs a score for EVERY document
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Any class with add_chunks()/search() can stand in for the store, which
# keeps test doubles trivial.
#
# DESIGN DECISION: Mixed sync/async interface.
# - add_chunks() is sync → called once while indexing
# - search() is async → called from FastAPI handlers during queries
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import chromadb

from agentlab.config import settings
from agentlab.services.embedder import cosine_similarity

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class VectorSearchResult:
    """
    A single result from vector similarity search.

    chunk_id is the caller-supplied identifier of the stored text.
    """

    chunk_id: str
    content: str
    similarity_score: float  # cosine similarity, higher = more relevant
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VectorStore(Protocol):
    """Protocol defining the vector store interface."""

    def add_chunks(
        self,
        corpus_id: str,
        ids: list[str],
        contents: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict],
    ) -> list[str]:
        """Store texts with their embeddings. Returns the stored ids."""
        ...

    async def search(
        self,
        query_embedding: list[float],
        top_k: int = 5,
        corpus_id: str | None = None,
    ) -> list[VectorSearchResult]:
        """Find the most similar texts, highest similarity first."""
        ...


# ---------------------------------------------------------------------------
# Implementation: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVectorStore:
    """
    ChromaDB-backed vector store.

    DESIGN DECISION: Single collection, per-corpus filtering via metadata.
    Emails and book chunks can share one collection and still be searched
    separately with a `corpus_id` where clause.

    ChromaDB supports both in-process and client/server modes:
    - In-process (default): no extra infra
    - Client/server: set CHROMA_URL
    """

    def __init__(self, collection_name: str | None = None) -> None:
        if settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )

    def add_chunks(
        self,
        corpus_id: str,
        ids: list[str],
        contents: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict],
    ) -> list[str]:
        """Store texts in ChromaDB with corpus_id in metadata for filtering."""
        if not ids:
            return []

        # Ids are namespaced so two corpora can reuse the same local ids
        chroma_ids = [f"{corpus_id}:{chunk_id}" for chunk_id in ids]

        sanitised_metadatas = [
            _sanitise_chroma_metadata(
                {**meta, "corpus_id": corpus_id, "chunk_id": chunk_id}
            )
            for chunk_id, meta in zip(ids, metadatas, strict=True)
        ]

        # upsert() so re-indexing a corpus replaces rather than duplicates
        self._collection.upsert(
            ids=chroma_ids,
            documents=contents,
            embeddings=embeddings,
            metadatas=sanitised_metadatas,
        )

        logger.info(
            "Stored %d chunks for corpus '%s' in ChromaDB",
            len(ids), corpus_id,
        )
        return list(ids)

    async def search(
        self,
        query_embedding: list[float],
        top_k: int = 5,
        corpus_id: str | None = None,
    ) -> list[VectorSearchResult]:
        """
        Similarity search in ChromaDB.

        ChromaDB's Python client is synchronous, so the query runs in a
        worker thread to keep the event loop free.
        """

        def _sync_search() -> list[VectorSearchResult]:
            where_filter = (
                {"corpus_id": corpus_id} if corpus_id is not None else None
            )

            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=top_k,
                where=where_filter,
                include=["documents", "metadatas", "distances"],
            )

            search_results: list[VectorSearchResult] = []
            if results and results["ids"] and results["ids"][0]:
                for i, chroma_id in enumerate(results["ids"][0]):
                    distance = (
                        results["distances"][0][i]
                        if results["distances"]
                        else 0.0
                    )
                    metadata = (
                        results["metadatas"][0][i]
                        if results["metadatas"]
                        else {}
                    )
                    content = (
                        results["documents"][0][i]
                        if results["documents"]
                        else ""
                    )
                    search_results.append(VectorSearchResult(
                        chunk_id=str(metadata.get("chunk_id", chroma_id)),
                        content=content,
                        # Cosine distance is in [0, 2]; convert to similarity
                        similarity_score=round(1.0 - distance, 4),
                        metadata=metadata,
                    ))

            return search_results

        return await asyncio.to_thread(_sync_search)


# ---------------------------------------------------------------------------
# In-Memory Ranking
# ---------------------------------------------------------------------------


def rank_by_embedding(
    query_embedding: Sequence[float],
    items: Sequence[tuple[str, Sequence[float]]],
) -> list[tuple[str, float]]:
    """
    Rank (id, vector) pairs by cosine similarity to the query.

    Returns every item as (id, similarity), highest first.
    """
    scored = [
        (item_id, cosine_similarity(query_embedding, vector))
        for item_id, vector in items
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _sanitise_chroma_metadata(metadata: dict) -> dict:
    """
    Sanitise metadata for ChromaDB compatibility.

    ChromaDB requires all metadata values to be str, int, float, or bool:
    - list → comma-separated string
    - None → empty string
    """
    sanitised = {}
    for key, value in metadata.items():
        if value is None:
            sanitised[key] = ""
        elif isinstance(value, list):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
