# =============================================================================
# Text Chunkers — Fixed-Size Token Windows and Structural Splitting
# =============================================================================
#
# Long documents have to be split before they can be searched: BM25 favours
# short texts, embedding models have input limits, and the answering LLM
# only needs the relevant passage. Two strategies are provided so they can
# be compared on the same corpus:
#
# 1. TOKEN CHUNKS (chunk_text_by_tokens)
#    Fixed windows of `chunk_size` tiktoken tokens, each overlapping the
#    previous one by `chunk_overlap` tokens. Sizes are exact, but windows
#    cut straight through headings, code blocks and sentences.
#
# 2. STRUCTURAL CHUNKS (chunk_text_structurally)
#    Recursive splitting that prefers markdown boundaries: chapter markers,
#    then headings (## → ######), ends of code fences, horizontal rules,
#    paragraphs, lines, words and finally characters. Chunks follow the
#    document's own structure; sizes are in characters and vary.
#
# DESIGN DECISION: tiktoken cl100k_base for token counts.
# It is the encoding of text-embedding-3-small, so token counts match what
# the embedding model actually sees.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import tiktoken
from langchain_text_splitters import RecursiveCharacterTextSplitter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ChunkResult:
    """
    A single chunk ready for indexing.

    start_char/end_char locate the chunk in the source text so a search hit
    can be traced back to its position in the document.
    """

    content: str
    chunk_index: int  # 0-indexed position within the document
    token_count: int
    start_char: int
    end_char: int
    metadata: dict = field(default_factory=dict)

    @property
    def chunk_id(self) -> str:
        return f"chunk-{self.chunk_index}"


@dataclass
class ChunkStats:
    """Summary numbers for a list of chunks."""

    total: int
    avg_chars: int
    avg_tokens: int


# Markdown-aware separators, tried in order
STRUCTURAL_SEPARATORS: list[str] = [
    "\n--- CHAPTER ---\n",
    "\n## ",
    "\n### ",
    "\n#### ",
    "\n##### ",
    "\n###### ",
    # End of code block
    "```\n\n",
    # Horizontal lines
    "\n\n***\n\n",
    "\n\n---\n\n",
    "\n\n___\n\n",
    "\n\n",
    "\n",
    " ",
    "",
]


# ---------------------------------------------------------------------------
# Tiktoken Encoder — Cached Singleton
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def count_tokens(text: str) -> int:
    return len(_get_encoder().encode(text))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def chunk_text_by_tokens(
    text: str,
    chunk_size: int = 300,
    chunk_overlap: int = 50,
) -> list[ChunkResult]:
    """
    Split text into fixed-size token windows with overlap.

    Args:
        text: The document text.
        chunk_size: Maximum tokens per chunk.
        chunk_overlap: Tokens shared by consecutive chunks.

    Returns:
        List of ChunkResult in document order. Whitespace-only windows
        are skipped; indices stay sequential.

    Raises:
        ValueError: If chunk_size <= 0 or chunk_overlap is not in
            [0, chunk_size).
    """
    _validate_sizes(chunk_size, chunk_overlap)

    encoder = _get_encoder()
    all_tokens = encoder.encode(text)
    total_tokens = len(all_tokens)

    if total_tokens == 0:
        logger.warning("No tokens to chunk")
        return []

    logger.info(
        "Token chunking: %d tokens total, chunk_size=%d, overlap=%d",
        total_tokens, chunk_size, chunk_overlap,
    )

    token_char_offsets = _build_token_offsets(encoder, all_tokens)

    chunks: list[ChunkResult] = []
    step = chunk_size - chunk_overlap

    for start in range(0, total_tokens, step):
        end = min(start + chunk_size, total_tokens)
        token_window = all_tokens[start:end]

        chunk_text = encoder.decode(token_window).strip()
        if chunk_text:
            chunks.append(ChunkResult(
                content=chunk_text,
                chunk_index=len(chunks),
                token_count=len(token_window),
                start_char=token_char_offsets[start],
                end_char=token_char_offsets[end],
                metadata={"strategy": "tokens"},
            ))

        if end >= total_tokens:
            break

    logger.info(
        "Token chunking produced %d chunks (avg %d tokens/chunk)",
        len(chunks), total_tokens // max(len(chunks), 1),
    )
    return chunks


def chunk_text_structurally(
    text: str,
    chunk_size: int = 2000,
    chunk_overlap: int = 200,
    separators: Sequence[str] | None = None,
) -> list[ChunkResult]:
    """
    Split text recursively along markdown structure.

    Args:
        text: The document text (markdown).
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters shared by consecutive chunks.
        separators: Override the separator priority list.

    Raises:
        ValueError: If chunk_size <= 0 or chunk_overlap is not in
            [0, chunk_size).
    """
    _validate_sizes(chunk_size, chunk_overlap)

    if not text.strip():
        logger.warning("No text to chunk")
        return []

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        separators=list(separators or STRUCTURAL_SEPARATORS),
        add_start_index=True,
    )
    documents = splitter.create_documents([text])

    chunks: list[ChunkResult] = []
    for doc in documents:
        content = doc.page_content
        if not content.strip():
            continue
        start = doc.metadata.get("start_index", -1)
        chunks.append(ChunkResult(
            content=content,
            chunk_index=len(chunks),
            token_count=count_tokens(content),
            start_char=start,
            end_char=start + len(content) if start >= 0 else -1,
            metadata={
                "strategy": "structural",
                "heading": _first_heading(content),
            },
        ))

    logger.info(
        "Structural chunking produced %d chunks (chunk_size=%d chars)",
        len(chunks), chunk_size,
    )
    return chunks


def chunk_stats(chunks: Sequence[ChunkResult]) -> ChunkStats:
    """Total count and average size; zeros for an empty list."""
    if not chunks:
        return ChunkStats(total=0, avg_chars=0, avg_tokens=0)
    return ChunkStats(
        total=len(chunks),
        avg_chars=round(sum(len(c.content) for c in chunks) / len(chunks)),
        avg_tokens=round(sum(c.token_count for c in chunks) / len(chunks)),
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _validate_sizes(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError(
            f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap}"
        )


def _first_heading(content: str) -> str | None:
    """The first markdown heading line in a chunk, without the #'s."""
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("#"):
            return stripped.lstrip("#").strip() or None
    return None


def _build_token_offsets(
    encoder: tiktoken.Encoding,
    tokens: list[int],
) -> list[int]:
    """
    Build a mapping from token index to character offset in the text.

    For each token position i, offsets[i] is the character index where that
    token starts, avoiding the O(n^2) cost of decoding prefixes inside the
    chunking loop.

    Returns:
        List of character offsets, one per token, plus a sentinel at the end.
    """
    offsets: list[int] = []
    char_pos = 0

    for token in tokens:
        offsets.append(char_pos)
        char_pos += len(encoder.decode([token]))

    offsets.append(char_pos)
    return offsets
