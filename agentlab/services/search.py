# =============================================================================
# Hybrid Search — BM25 + Embeddings, Fused with Reciprocal Rank Fusion
# =============================================================================
#
# Each query is answered by two retrievers that fail differently:
#
#   BM25        — exact keywords ("Chorlton", "pre-approval"); misses
#                 paraphrases
#   Embeddings  — meaning ("buying a house" ≈ "property offer"); blurs
#                 rare names and numbers
#
# Both rank EVERY document; reciprocal rank fusion merges the two rankings.
# Every result keeps all three scores so callers (and the /chunks API) can
# re-order by any of them and see why a document ranked where it did.
#
# FLOW:
#   keywords ──▶ BM25 ranking ─────────┐
#                                      ├──▶ RRF ──▶ ChunkWithScores[]
#   query ──▶ embed ──▶ cosine ranking ┘
#
# DESIGN DECISION: Keywords and embedding query are separate inputs.
# A query rewriter produces both: a keyword list for BM25 and a
# natural-language query for embeddings. Using one string for both
# weakens each retriever.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from agentlab.services.bm25 import search_bm25
from agentlab.services.corpus import Email, email_to_text
from agentlab.services.embedder import embed_query, embed_with_cache
from agentlab.services.fusion import reciprocal_rank_fusion
from agentlab.services.vectorstore import VectorStore, rank_by_embedding

logger = logging.getLogger(__name__)

ORDER_BY_OPTIONS = ("rrf", "bm25", "semantic")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class IndexedDocument:
    """A document in a hybrid index."""

    id: str
    content: str
    metadata: dict = field(default_factory=dict)


@dataclass
class ChunkWithScores:
    """A document with its BM25, embedding and fused scores."""

    id: str
    content: str
    bm25_score: float = 0.0
    embedding_score: float = 0.0
    rrf_score: float = 0.0
    metadata: dict = field(default_factory=dict)


@dataclass
class PageStats:
    total: int
    avg_chars: int
    page_count: int
    current_page: int
    min_score: float
    max_score: float


@dataclass
class SearchPage:
    """One page of results; `index` is each result's position overall."""

    items: list[tuple[int, ChunkWithScores]]
    stats: PageStats


@dataclass
class EmailSearchResult:
    email: Email
    score: float  # fused RRF score
    bm25_score: float
    embedding_score: float


# ---------------------------------------------------------------------------
# Hybrid Index
# ---------------------------------------------------------------------------


class HybridIndex:
    """
    Documents plus their embeddings, searchable with BM25 + embeddings.

    Semantic ranking uses brute-force cosine similarity in memory, or a
    VectorStore when one is supplied (the corpus must already be added to
    it under `corpus_id`).
    """

    def __init__(
        self,
        documents: Sequence[IndexedDocument],
        embeddings: Sequence[Sequence[float]],
        store: VectorStore | None = None,
        corpus_id: str = "default",
    ) -> None:
        if len(documents) != len(embeddings):
            raise ValueError(
                f"Got {len(documents)} documents but {len(embeddings)} embeddings"
            )
        ids = [doc.id for doc in documents]
        if len(set(ids)) != len(ids):
            raise ValueError("Document ids must be unique")

        self.documents = list(documents)
        self.embeddings = [list(e) for e in embeddings]
        self.store = store
        self.corpus_id = corpus_id
        self._by_id = {doc.id: doc for doc in self.documents}

    @classmethod
    def build(
        cls,
        documents: Sequence[IndexedDocument],
        cache_key: str,
        store: VectorStore | None = None,
        corpus_id: str | None = None,
    ) -> HybridIndex:
        """
        Embed documents (through the embedding cache) and build an index.

        When a store is given the documents are also added to it.
        """
        embeddings = embed_with_cache([d.content for d in documents], cache_key)
        corpus = corpus_id or cache_key
        if store is not None:
            store.add_chunks(
                corpus_id=corpus,
                ids=[d.id for d in documents],
                contents=[d.content for d in documents],
                embeddings=embeddings,
                metadatas=[d.metadata for d in documents],
            )
        return cls(documents, embeddings, store=store, corpus_id=corpus)

    def __len__(self) -> int:
        return len(self.documents)

    def get(self, doc_id: str) -> IndexedDocument | None:
        return self._by_id.get(doc_id)

    def all_documents(self) -> list[ChunkWithScores]:
        """Every document with zero scores, in index order."""
        return [
            ChunkWithScores(id=d.id, content=d.content, metadata=d.metadata)
            for d in self.documents
        ]

    async def search(
        self,
        keywords: Sequence[str],
        embeddings_query: str,
        query_embedding: Sequence[float] | None = None,
    ) -> list[ChunkWithScores]:
        """
        Score every document and return them sorted by fused RRF score.

        Args:
            keywords: Keywords for BM25.
            embeddings_query: Natural-language query to embed.
            query_embedding: Pre-computed embedding of the query (skips
                the embedding call).
        """
        if not self.documents:
            return []

        bm25_results = search_bm25(
            [d.content for d in self.documents], keywords,
        )
        bm25_ranking = [self.documents[r.index].id for r in bm25_results]
        bm25_scores = {
            self.documents[r.index].id: r.score for r in bm25_results
        }

        if query_embedding is None:
            query_embedding = await asyncio.to_thread(
                embed_query, embeddings_query,
            )
        semantic = await self._semantic_ranking(query_embedding)
        semantic_ranking = [doc_id for doc_id, _ in semantic]
        semantic_scores = dict(semantic)

        fused = reciprocal_rank_fusion(
            [bm25_ranking, semantic_ranking], key=lambda doc_id: doc_id,
        )

        results = [
            ChunkWithScores(
                id=doc_id,
                content=self._by_id[doc_id].content,
                bm25_score=bm25_scores.get(doc_id, 0.0),
                embedding_score=semantic_scores.get(doc_id, 0.0),
                rrf_score=score,
                metadata=self._by_id[doc_id].metadata,
            )
            for doc_id, score in fused
        ]

        logger.info(
            "Hybrid search: keywords=%s query='%s' → %d results (top rrf=%.4f)",
            list(keywords), embeddings_query[:80], len(results),
            results[0].rrf_score if results else 0.0,
        )
        return results

    async def _semantic_ranking(
        self,
        query_embedding: Sequence[float],
    ) -> list[tuple[str, float]]:
        if self.store is None:
            return rank_by_embedding(
                query_embedding,
                [
                    (d.id, e)
                    for d, e in zip(self.documents, self.embeddings, strict=True)
                ],
            )

        hits = await self.store.search(
            query_embedding=list(query_embedding),
            top_k=len(self.documents),
            corpus_id=self.corpus_id,
        )
        return [
            (hit.chunk_id, hit.similarity_score)
            for hit in hits
            if hit.chunk_id in self._by_id
        ]


# ---------------------------------------------------------------------------
# Ordering & Pagination
# ---------------------------------------------------------------------------


def order_results(
    results: Sequence[ChunkWithScores],
    order_by: str = "rrf",
) -> list[ChunkWithScores]:
    """
    Sort by one score, highest first. Unknown order_by falls back to rrf.
    """
    attr = {
        "bm25": "bm25_score",
        "semantic": "embedding_score",
    }.get(order_by, "rrf_score")
    return sorted(results, key=lambda r: getattr(r, attr), reverse=True)


def paginate(
    results: Sequence[ChunkWithScores],
    page: int = 1,
    page_size: int = 20,
) -> SearchPage:
    """
    Slice one page out of the results and compute page statistics.

    The score range covers the RRF scores on the returned page only.

    Raises:
        ValueError: If page < 1 or page_size < 1.
    """
    if page < 1 or page_size < 1:
        raise ValueError("page and page_size must be >= 1")

    total = len(results)
    start = (page - 1) * page_size
    page_items = list(results[start : start + page_size])
    page_scores = [r.rrf_score for r in page_items]

    stats = PageStats(
        total=total,
        avg_chars=(
            round(sum(len(r.content) for r in results) / total) if total else 0
        ),
        page_count=math.ceil(total / page_size),
        current_page=page,
        min_score=min(page_scores) if page_scores else 0.0,
        max_score=max(page_scores) if page_scores else 0.0,
    )
    return SearchPage(
        items=[(start + i, item) for i, item in enumerate(page_items)],
        stats=stats,
    )


# ---------------------------------------------------------------------------
# Email Search
# ---------------------------------------------------------------------------


def email_documents(emails: Sequence[Email]) -> list[IndexedDocument]:
    """Index documents for an email archive (subject + body)."""
    return [
        IndexedDocument(
            id=email.id,
            content=email_to_text(email),
            metadata={"subject": email.subject, "from": email.sender},
        )
        for email in emails
    ]


async def search_emails(
    index: HybridIndex,
    emails: Sequence[Email],
    keywords: Sequence[str],
    embeddings_query: str,
) -> list[EmailSearchResult]:
    """Hybrid search over an email archive indexed with email_documents()."""
    by_id = {email.id: email for email in emails}
    results = await index.search(keywords, embeddings_query)
    return [
        EmailSearchResult(
            email=by_id[r.id],
            score=r.rrf_score,
            bm25_score=r.bm25_score,
            embedding_score=r.embedding_score,
        )
        for r in results
        if r.id in by_id
    ]
