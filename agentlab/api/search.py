# =============================================================================
# Search API — Book Chunks and Email Archive
# =============================================================================
#
#   GET  /chunks          — hybrid search over the chunked book, paginated,
#                           orderable by rrf / bm25 / semantic
#   POST /search/emails   — rewrite the conversation into keywords + query,
#                           hybrid-search the email archive, optionally
#                           answer with cited sources
#
# Both endpoints are thin: validation, error mapping and response shaping.
# The retrieval logic lives in services/search.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from agentlab.agents.assistant import answer_with_sources
from agentlab.agents.query_rewriter import rewrite_query
from agentlab.api.deps import (
    EmailCorpus,
    get_book_index,
    get_email_corpus,
    get_llm,
    to_http_error,
)
from agentlab.models.requests import EmailSearchRequest
from agentlab.models.responses import (
    ChunksResponse,
    ChunkStatsResponse,
    EmailHit,
    EmailSearchResponse,
    ScoredChunk,
)
from agentlab.services.bm25 import tokenize
from agentlab.services.llm import LLMProvider
from agentlab.services.search import (
    ORDER_BY_OPTIONS,
    HybridIndex,
    order_results,
    paginate,
    search_emails,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Search"])


# ---------------------------------------------------------------------------
# GET /chunks — Search the chunked book
# ---------------------------------------------------------------------------


@router.get(
    "/chunks",
    response_model=ChunksResponse,
    summary="Search book chunks",
    description=(
        "Hybrid (BM25 + embeddings, fused with RRF) search over the "
        "structurally chunked book. Without a search term every chunk is "
        "returned in document order with zero scores. An unrecognised "
        "order_by falls back to rrf."
    ),
)
async def chunks_endpoint(
    search: str | None = Query(default=None, max_length=500),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    order_by: str = Query(default="rrf"),
    index: HybridIndex = Depends(get_book_index),
) -> ChunksResponse:
    if order_by not in ORDER_BY_OPTIONS:
        logger.debug("Unknown order_by %r, using rrf", order_by)
        order_by = "rrf"

    if search and search.strip():
        try:
            results = await index.search(tokenize(search), search)
        except Exception as e:
            raise to_http_error(e) from e
        results = order_results(results, order_by)
    else:
        results = index.all_documents()

    result_page = paginate(results, page=page, page_size=page_size)
    logger.info(
        "Chunks request: search=%r page=%d/%d order_by=%s",
        search, page, result_page.stats.page_count, order_by,
    )

    return ChunksResponse(
        chunks=[
            ScoredChunk(
                index=i,
                id=chunk.id,
                content=chunk.content,
                bm25_score=chunk.bm25_score,
                embedding_score=chunk.embedding_score,
                rrf_score=chunk.rrf_score,
                metadata=chunk.metadata,
            )
            for i, chunk in result_page.items
        ],
        stats=ChunkStatsResponse(**vars(result_page.stats)),
        order_by=order_by,
    )


# ---------------------------------------------------------------------------
# POST /search/emails — Search (and answer from) the email archive
# ---------------------------------------------------------------------------


@router.post(
    "/search/emails",
    response_model=EmailSearchResponse,
    summary="Search the email archive",
)
async def search_emails_endpoint(
    request: EmailSearchRequest,
    llm: LLMProvider = Depends(get_llm),
    corpus: EmailCorpus = Depends(get_email_corpus),
) -> EmailSearchResponse:
    messages = [m.model_dump() for m in request.messages]

    try:
        plan = await rewrite_query(llm, messages)
        results = await search_emails(
            corpus.index, corpus.emails, plan.keywords, plan.search_query,
        )
        answer = (
            await answer_with_sources(llm, messages, results)
            if request.answer else None
        )
    except Exception as e:
        raise to_http_error(e) from e

    return EmailSearchResponse(
        keywords=plan.keywords,
        search_query=plan.search_query,
        results=[
            EmailHit(
                id=r.email.id,
                subject=r.email.subject,
                sender=r.email.sender,
                to=r.email.to,
                timestamp=r.email.timestamp,
                snippet=r.email.body[:300],
                score=r.score,
                bm25_score=r.bm25_score,
                embedding_score=r.embedding_score,
            )
            for r in results[:request.limit]
        ],
        answer=answer.answer if answer else None,
        model=answer.model if answer else None,
    )
