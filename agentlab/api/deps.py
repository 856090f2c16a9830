# =============================================================================
# API Dependencies — Providers, Stores and Lazily Built Indexes
# =============================================================================
#
# FastAPI dependencies shared by the routers:
#
#   get_llm()            — the configured LLM provider (503 if misconfigured)
#   get_memory_store()   — long-term memory JSON store
#   get_email_service()  — HITL outbox
#   get_email_corpus()   — email archive + hybrid index
#   get_book_index()     — structurally chunked book + hybrid index
#
# DESIGN DECISION: Indexes are built on first use, not at startup.
# Embedding a corpus calls the embeddings API (cached on disk afterwards).
# Building lazily keeps /health and the chat endpoints available even when
# the datasets or the embeddings key are missing.
#
# DESIGN DECISION: Book chunks go through the Chroma vector store.
# The email archive is small enough for in-memory cosine ranking; the book
# index exercises the persistent vector store path instead.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from fastapi import HTTPException

from agentlab.agents.hitl import HITLError
from agentlab.config import settings
from agentlab.services.chunker import chunk_text_structurally
from agentlab.services.corpus import Email, load_emails, load_text
from agentlab.services.email_service import EmailService
from agentlab.services.embedder import embedding_cache_key
from agentlab.services.llm import LLMProvider, get_llm_provider
from agentlab.services.memory import MemoryStore
from agentlab.services.search import HybridIndex, IndexedDocument, email_documents
from agentlab.services.vectorstore import ChromaVectorStore

logger = logging.getLogger(__name__)


@dataclass
class EmailCorpus:
    emails: list[Email]
    index: HybridIndex


_email_corpus: EmailCorpus | None = None
_book_index: HybridIndex | None = None
_build_lock = asyncio.Lock()


# ---------------------------------------------------------------------------
# Error Mapping
# ---------------------------------------------------------------------------


def to_http_error(e: Exception) -> HTTPException:
    """
    Map an exception from the service layer to an HTTP error.

    HITLError → its own status; ValueError (configuration) → 503;
    FileNotFoundError (missing dataset) → 503; anything else → 502.
    """
    if isinstance(e, HITLError):
        return HTTPException(status_code=e.status, detail=e.message)
    if isinstance(e, (ValueError, FileNotFoundError)):
        logger.error("Configuration error: %s", e)
        return HTTPException(
            status_code=503, detail=f"Service configuration error: {e}",
        )
    logger.exception("Upstream service failed: %s", e)
    return HTTPException(status_code=502, detail=f"LLM service error: {e}")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_llm() -> LLMProvider:
    try:
        return get_llm_provider()
    except ValueError as e:
        raise to_http_error(e) from e


def get_memory_store() -> MemoryStore:
    return MemoryStore()


def get_email_service() -> EmailService:
    return EmailService()


async def get_email_corpus() -> EmailCorpus:
    global _email_corpus
    async with _build_lock:
        if _email_corpus is None:
            try:
                emails = load_emails(settings.emails_path)
                index = await asyncio.to_thread(
                    HybridIndex.build,
                    email_documents(emails),
                    embedding_cache_key("emails"),
                )
            except (ValueError, FileNotFoundError) as e:
                raise to_http_error(e) from e
            logger.info("Email index built: %d emails", len(emails))
            _email_corpus = EmailCorpus(emails=emails, index=index)
    return _email_corpus


async def get_book_index() -> HybridIndex:
    global _book_index
    async with _build_lock:
        if _book_index is None:
            try:
                chunks = chunk_text_structurally(
                    load_text(settings.book_path),
                    chunk_size=settings.structural_chunk_size,
                    chunk_overlap=settings.structural_chunk_overlap,
                )
                documents = [
                    IndexedDocument(
                        id=chunk.chunk_id,
                        content=chunk.content,
                        metadata={
                            **chunk.metadata,
                            "start_char": chunk.start_char,
                            "token_count": chunk.token_count,
                        },
                    )
                    for chunk in chunks
                ]
                _book_index = await asyncio.to_thread(
                    HybridIndex.build,
                    documents,
                    embedding_cache_key("book-structural"),
                    ChromaVectorStore(),
                )
            except (ValueError, FileNotFoundError) as e:
                raise to_http_error(e) from e
            logger.info("Book index built: %d chunks", len(_book_index))
    return _book_index
