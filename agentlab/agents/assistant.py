# =============================================================================
# Email Assistant — Grounded Answers with Cited Sources
# =============================================================================
#
# Answers questions about an email archive:
#
#   conversation ──▶ rewrite_query ──▶ hybrid search ──▶ top N emails
#                                                          │
#                      streamed answer ◀── LLM ◀── prompt ─┘
#
# DESIGN DECISION: Cite by email subject.
# Each snippet is headed by its subject rendered as a markdown link; the
# model is told to cite those. Subjects are what a user recognises in their
# inbox, unlike opaque ids or snippet numbers.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field

from agentlab.agents.query_rewriter import (
    SearchPlan,
    format_message_history,
    rewrite_query,
)
from agentlab.config import settings
from agentlab.services.corpus import Email
from agentlab.services.llm import LLMProvider, stream_text
from agentlab.services.search import EmailSearchResult, HybridIndex, search_emails

logger = logging.getLogger(__name__)


@dataclass
class AnswerResult:
    """Result from the email assistant."""

    answer: str
    sources: list[EmailSearchResult]
    model: str
    input_tokens: int
    output_tokens: int
    plan: SearchPlan | None = None
    subjects: list[str] = field(default_factory=list)


_SYSTEM_PROMPT = """You are a helpful email assistant that answers questions \
based on email content.
You should use the provided emails to answer questions accurately.
ALWAYS cite sources using markdown formatting with the email subject as the \
source.
Be concise but thorough in your explanations."""


def _anchor(subject: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", subject)


def format_email_snippets(results: Sequence[EmailSearchResult]) -> str:
    sections = []
    for i, result in enumerate(results, 1):
        email = result.email
        subject = email.subject or f"email-{i}"
        sections.append("\n\n".join([
            f"### Email {i}: [{subject}](#{_anchor(subject)})",
            f"**From:** {email.sender or 'unknown'}",
            f"**To:** {email.to or 'unknown'}",
            f"**Relevance Score:** {result.score:.3f}",
            email.body,
            "---",
        ]))
    return "\n\n".join(sections)


async def answer_with_sources(
    llm: LLMProvider,
    messages: Sequence[Mapping[str, str]],
    results: Sequence[EmailSearchResult],
    top_n: int = 5,
    on_delta: Callable[[str], Awaitable[None] | None] | None = None,
) -> AnswerResult:
    """
    Stream an answer grounded in the top `top_n` search results.

    Args:
        llm: Provider to call.
        messages: Conversation as role/content dicts.
        results: Search results, best first.
        top_n: How many emails to include in the prompt.
        on_delta: Optional callback receiving each streamed text delta.
    """
    top = list(results[:top_n])
    prompt = "\n\n".join([
        "## Conversation History",
        format_message_history(messages),
        "## Email Snippets",
        format_email_snippets(top),
        "## Instructions",
        "Based on the emails above, please answer the user's question. "
        "Always cite your sources using the email subject in markdown format.",
    ])

    logger.info(
        "Answering with %d email(s): %s",
        len(top), [r.email.subject for r in top],
    )

    response = await stream_text(
        llm,
        messages=[{"role": "user", "content": prompt}],
        system=_SYSTEM_PROMPT,
        on_delta=on_delta,
    )
    return AnswerResult(
        answer=response.content,
        sources=top,
        model=response.model,
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
        subjects=[r.email.subject for r in top],
    )


async def ask(
    messages: Sequence[Mapping[str, str]],
    emails: Sequence[Email],
    index: HybridIndex,
    llm: LLMProvider,
    on_delta: Callable[[str], Awaitable[None] | None] | None = None,
) -> AnswerResult:
    """Rewrite the conversation into a search, retrieve emails, answer."""
    plan = await rewrite_query(llm, messages)
    results = await search_emails(
        index, emails, plan.keywords, plan.search_query,
    )
    answer = await answer_with_sources(
        llm, messages, results, top_n=settings.retrieval_top_k,
        on_delta=on_delta,
    )
    answer.plan = plan
    return answer
