# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# DESIGN DECISION: We use Pydantic V2's `BaseSettings` for configuration.
# Every component (retrieval, memory, HITL, orchestrator, evals) reads its
# knobs from this single object, so a deployment is described entirely by
# environment variables or a .env file.
#
# HOW IT WORKS:
# Pydantic Settings loads values in this priority order (highest first):
#   1. Environment variables (e.g., `LLM_MODEL=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from agentlab.config import settings
#   print(settings.rrf_k)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults suitable for local development. Only the
    API keys have to be supplied before LLM-backed features work.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Agentic RAG Lab"
    app_version: str = "0.1.0"
    debug: bool = True

    # -------------------------------------------------------------------------
    # API Keys — External Services
    # -------------------------------------------------------------------------
    # ANTHROPIC_API_KEY: For Claude (planning, subagents, answers)
    # OPENAI_API_KEY: For embeddings, and for OpenAI-compatible LLMs
    # -------------------------------------------------------------------------
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider
    # -------------------------------------------------------------------------
    # Switching providers is a single .env change:
    #   Claude:    provider=anthropic, model=claude-sonnet-4-6
    #   DeepSeek:  provider=openai_compatible,
    #              base_url=https://api.deepseek.com/v1, model=deepseek-chat
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 4096

    # -------------------------------------------------------------------------
    # Embedding Configuration
    # -------------------------------------------------------------------------
    # Corpus embeddings are cached on disk under embedding_cache_dir, one
    # JSON file per cache key, so a corpus is only embedded once.
    # -------------------------------------------------------------------------
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_batch_size: int = 100  # Texts per embeddings API call
    embedding_base_url: str | None = None
    embedding_cache_dir: str = "data/embeddings"

    # -------------------------------------------------------------------------
    # Vector Store Configuration — ChromaDB
    # -------------------------------------------------------------------------
    # In-process by default. Set CHROMA_URL for client/server mode.
    # -------------------------------------------------------------------------
    chroma_url: str | None = None
    chroma_collection: str = "agentlab_chunks"

    # -------------------------------------------------------------------------
    # Chunking Configuration
    # -------------------------------------------------------------------------
    # The book index uses structural chunks: a recursive split along
    # markdown structure, sizes in characters.
    # -------------------------------------------------------------------------
    structural_chunk_size: int = 2000
    structural_chunk_overlap: int = 200

    # -------------------------------------------------------------------------
    # Retrieval Configuration
    # -------------------------------------------------------------------------
    # rrf_k: Reciprocal Rank Fusion constant. 60 is the value from the
    # original RRF paper and damps the influence of top ranks.
    # retrieval_top_k: Number of fused results handed to the answering LLM.
    # -------------------------------------------------------------------------
    rrf_k: int = 60
    retrieval_top_k: int = 5

    # -------------------------------------------------------------------------
    # Datasets & Persistence
    # -------------------------------------------------------------------------
    # JSON files are the persistence layer: memories, todos, student notes,
    # the calendar and the outbox of sent emails all live under data_dir.
    # -------------------------------------------------------------------------
    data_dir: str = "data"
    emails_path: str = "datasets/emails.json"
    book_path: str = "datasets/book.md"

    # -------------------------------------------------------------------------
    # Agent Loop Bounds
    # -------------------------------------------------------------------------
    # orchestrator_max_steps: planning loop bound — prevents runaway costs.
    # subagent_max_steps: tool-call steps per subagent invocation.
    # memory_max_steps / hitl_max_steps: tool-call steps per chat turn.
    # -------------------------------------------------------------------------
    orchestrator_max_steps: int = 10
    subagent_max_steps: int = 10
    memory_max_steps: int = 5
    hitl_max_steps: int = 10

    # -------------------------------------------------------------------------
    # Evaluation Configuration
    # -------------------------------------------------------------------------
    # Golden datasets are JSON files tracked in git. eval_judge_model is the
    # LLM DeepEval uses as an LLM-as-judge.
    # -------------------------------------------------------------------------
    eval_dataset_dir: str = "data/eval/datasets"
    eval_judge_model: str = "gpt-4.1"
    eval_default_threshold: float = 0.7

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    Tests patch attributes on the shared `settings` instance:
        monkeypatch.setattr(settings, "data_dir", str(tmp_path))
    """
    return Settings()


# ---------------------------------------------------------------------------
# Module-level convenience instance
# ---------------------------------------------------------------------------
settings = get_settings()
