# =============================================================================
# Query Rewriting — One Conversation, Two Retriever Inputs
# =============================================================================
#
# Hybrid search needs two different inputs:
#
#   keywords      — exact terms for BM25 ("Chorlton", "mortgage", "offer")
#   search_query  — a self-contained natural-language query for embeddings
#                   ("status of the mortgage offer on the Chorlton house")
#
# Raw chat history is a poor input for both: follow-ups like "and what did
# she say after that?" contain no searchable terms. The LLM reads the whole
# conversation and produces both inputs in one structured call.
#
# DESIGN DECISION: Degrade instead of failing.
# If the structured reply cannot be parsed, the search still runs using
# the last user message's words as keywords and the history as the query.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from pydantic import BaseModel, Field

from agentlab.services.bm25 import tokenize
from agentlab.services.llm import LLMProvider, generate_object

logger = logging.getLogger(__name__)


class SearchPlan(BaseModel):
    keywords: list[str] = Field(
        description=(
            "Exact terms (names, places, specific nouns) to search emails "
            "with keyword matching"
        ),
    )
    search_query: str = Field(
        description=(
            "A standalone natural-language search query capturing what "
            "the user is looking for"
        ),
    )


_SYSTEM_PROMPT = """You are a helpful email assistant, able to search emails \
for information.
Your job is to generate:
- a list of keywords which will be used to search the emails with BM25
- a rewritten search query which will be used to search the emails with \
embeddings. It must make sense on its own, without the conversation."""

_STOPWORDS = frozenset(
    "a an and are did do does for from how i in is it me my of on or she he "
    "that the they this to was what when where who why with you".split()
)


def format_message_history(messages: Sequence[Mapping[str, str]]) -> str:
    """`role: content` lines, one per message."""
    return "\n".join(f"{m['role']}: {m['content']}" for m in messages)


async def rewrite_query(
    llm: LLMProvider,
    messages: Sequence[Mapping[str, str]],
) -> SearchPlan:
    """
    Turn a conversation into BM25 keywords and an embedding query.

    Falls back to a heuristic plan if the LLM reply is unusable.
    """
    history = format_message_history(messages)
    try:
        plan, _ = await generate_object(
            llm,
            SearchPlan,
            messages=[{
                "role": "user",
                "content": f"Conversation history:\n{history}",
            }],
            system=_SYSTEM_PROMPT,
        )
    except ValueError as e:
        logger.warning("Query rewriting failed: %s. Using fallback plan.", e)
        return _fallback_plan(messages, history)

    logger.info(
        "Rewrote query: keywords=%s search_query='%s'",
        plan.keywords, plan.search_query[:80],
    )
    return plan


def _fallback_plan(
    messages: Sequence[Mapping[str, str]],
    history: str,
) -> SearchPlan:
    last_user = next(
        (m["content"] for m in reversed(messages) if m["role"] == "user"), "",
    )
    keywords = [t for t in tokenize(last_user) if t not in _STOPWORDS]
    return SearchPlan(keywords=keywords, search_query=history)
