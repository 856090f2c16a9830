# =============================================================================
# Memory Chat Agent — Memory as a Tool Call
# =============================================================================
#
# A chat assistant that sees every stored memory in its system prompt and
# decides for itself when to change them through a single manageMemories
# tool (batched updates, deletions and additions).
#
# FLOW:
#   load memories ──▶ system prompt ──▶ tool loop (≤ 5 steps) ──▶ answer
#                                          │
#                                          └──▶ manageMemories ──▶ store
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from agentlab.agents.tool_loop import Tool, ToolLoopResult, run_tool_loop
from agentlab.config import settings
from agentlab.services.llm import LLMProvider
from agentlab.services.memory import (
    MemoryStore,
    MemoryUpdate,
    format_memory,
    manage_memories,
)

logger = logging.getLogger(__name__)


class ManageMemoriesInput(BaseModel):
    updates: list[MemoryUpdate] = Field(
        default_factory=list,
        description=(
            "Array of existing memories that need to be updated with new "
            "information"
        ),
    )
    deletions: list[str] = Field(
        default_factory=list,
        description=(
            "Array of memory IDs that should be deleted (outdated, "
            "incorrect, or no longer relevant)"
        ),
    )
    additions: list[str] = Field(
        default_factory=list,
        description="Array of new memory strings to add to the user's permanent memory",
    )


_SYSTEM_PROMPT = """You are a helpful assistant that can answer questions \
and help with tasks.

The date is {date}.

You have access to the following memories:

<memories>
{memories}
</memories>

When users share new personal information, contradict previous information, \
or ask you to remember/forget things, use the manageMemories tool to update \
the memory system.

Guidelines for using the manageMemories tool:
- CALL IT when: User shares personal details, preferences, facts that should be remembered long-term
- CALL IT when: User contradicts previous information (use updates field)
- CALL IT when: User explicitly asks to remember or forget something
- SKIP IT when: Conversation is casual small talk with no personal information
- SKIP IT when: User asks temporary/situational questions

You can batch multiple conversation turns before calling the tool if appropriate."""


def build_memory_tool(store: MemoryStore) -> Tool:
    async def _execute(tool_input: ManageMemoriesInput) -> dict:
        result = await manage_memories(
            store,
            updates=tool_input.updates,
            deletions=tool_input.deletions,
            additions=tool_input.additions,
        )
        return {"success": result.success, "message": result.message}

    return Tool(
        name="manageMemories",
        description=(
            "Manage user memories by adding new ones, updating existing "
            "ones, or deleting outdated/incorrect ones. Call this when the "
            "user shares personal information, contradicts previous "
            "statements, or explicitly asks to remember/forget something."
        ),
        input_model=ManageMemoriesInput,
        execute=_execute,
    )


async def chat_with_memory(
    llm: LLMProvider,
    messages: list[dict[str, str]],
    store: MemoryStore,
) -> ToolLoopResult:
    """Answer the conversation, updating long-term memory when warranted."""
    memories = await store.load_memories()
    system = _SYSTEM_PROMPT.format(
        date=datetime.now(UTC).date().isoformat(),
        memories="\n\n".join(format_memory(m) for m in memories),
    )
    logger.info("Memory chat with %d stored memories", len(memories))

    return await run_tool_loop(
        llm,
        system=system,
        prompt=messages,
        tools=[build_memory_tool(store)],
        max_steps=settings.memory_max_steps,
    )
