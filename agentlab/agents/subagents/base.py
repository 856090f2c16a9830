"""Shared plumbing for subagents."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from agentlab.agents.tool_loop import Tool, format_transcript, run_tool_loop
from agentlab.config import settings
from agentlab.services.llm import LLMProvider
from agentlab.services.pricing import TokenUsage

logger = logging.getLogger(__name__)


@dataclass
class SubagentResult:
    output: str  # formatted transcript of tool calls and the final answer
    usage: TokenUsage


SubagentFn = Callable[[LLMProvider, str], Awaitable[SubagentResult]]


@dataclass
class Subagent:
    name: str
    description: str
    run: SubagentFn


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


async def run_subagent(
    name: str,
    llm: LLMProvider,
    system: str,
    prompt: str,
    tools: Sequence[Tool],
) -> SubagentResult:
    """
    Run a subagent's tool loop on a single task prompt.

    The subagent only ever sees its own task, never the user's
    conversation.
    """
    logger.info("Subagent %s started: %s", name, prompt[:120])
    result = await run_tool_loop(
        llm,
        system=system,
        prompt=prompt,
        tools=tools,
        max_steps=settings.subagent_max_steps,
    )
    logger.info(
        "Subagent %s finished after %d tool call(s)", name, len(result.steps),
    )
    return SubagentResult(output=format_transcript(result), usage=result.usage)
