# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - pricing.py: Token usage accounting and cost estimates
#   - corpus.py: Email archive and book loading
#   - chunker.py: Token and structural (markdown-aware) chunking
#   - embedder.py: OpenAI embeddings with an on-disk cache
#   - bm25.py / fusion.py / search.py: Hybrid retrieval with RRF
#   - vectorstore.py: Chroma vector store
#   - persistence.py: Locked JSON file stores
#   - memory.py / email_service.py: Memory store and HITL outbox
#   - eval_metrics.py / eval_runner.py: Offline evaluation
# =============================================================================
