# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API. They are
# the contract with clients and keep internal fields (embeddings, raw
# transcripts) off the wire.
#
# DESIGN DECISION: Every score is exposed.
# Search responses carry BM25, embedding and fused RRF scores side by side
# so a client can see why a result ranked where it did.
# =============================================================================

from pydantic import BaseModel, Field

from agentlab.agents.hitl import ApprovalEndPart, ApprovalRequestPart, TextPart


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class ScoredChunk(BaseModel):
    index: int = Field(description="Position in the full ordered result list")
    id: str
    content: str
    bm25_score: float
    embedding_score: float
    rrf_score: float
    metadata: dict = Field(default_factory=dict)


class ChunkStatsResponse(BaseModel):
    total: int
    avg_chars: int
    page_count: int
    current_page: int
    min_score: float
    max_score: float


class ChunksResponse(BaseModel):
    """Response for GET /chunks."""

    chunks: list[ScoredChunk]
    stats: ChunkStatsResponse
    order_by: str


class EmailHit(BaseModel):
    id: str
    subject: str
    sender: str
    to: str
    timestamp: str
    snippet: str
    score: float
    bm25_score: float
    embedding_score: float


class EmailSearchResponse(BaseModel):
    """Response for POST /search/emails."""

    keywords: list[str]
    search_query: str
    results: list[EmailHit]
    answer: str | None = None
    model: str | None = None


class MemoryChatResponse(BaseModel):
    """Response for POST /chat/memory."""

    answer: str | None
    tool_calls: list[dict] = Field(default_factory=list)
    memory_count: int


class HITLChatResponse(BaseModel):
    """
    Response for POST /chat/hitl.

    `end_parts` belong on the user's last message (outcomes of the
    decisions it carried); `parts` form the new assistant message.
    """

    end_parts: list[ApprovalEndPart]
    parts: list[TextPart | ApprovalRequestPart]
