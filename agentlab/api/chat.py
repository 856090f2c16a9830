# =============================================================================
# Chat API — Memory Chat and Human-in-the-Loop Email Assistant
# =============================================================================
#
#   POST /chat/memory  — chat that can remember facts about the user
#   POST /chat/hitl    — email assistant whose sends need user approval
#
# Error handling follows the service mapping in deps.to_http_error():
# HITLError → its status (400), configuration errors → 503, LLM errors → 502.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from agentlab.agents.hitl import run_hitl_turn
from agentlab.agents.memory_agent import chat_with_memory
from agentlab.api.deps import (
    get_email_service,
    get_llm,
    get_memory_store,
    to_http_error,
)
from agentlab.models.requests import HITLChatRequest, MemoryChatRequest
from agentlab.models.responses import HITLChatResponse, MemoryChatResponse
from agentlab.services.email_service import EmailService
from agentlab.services.llm import LLMProvider
from agentlab.services.memory import MemoryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.post(
    "/memory",
    response_model=MemoryChatResponse,
    summary="Chat with long-term memory",
)
async def memory_chat_endpoint(
    request: MemoryChatRequest,
    llm: LLMProvider = Depends(get_llm),
    store: MemoryStore = Depends(get_memory_store),
) -> MemoryChatResponse:
    try:
        result = await chat_with_memory(
            llm, [m.model_dump() for m in request.messages], store,
        )
        memories = await store.load_memories()
    except Exception as e:
        raise to_http_error(e) from e

    return MemoryChatResponse(
        answer=result.answer,
        tool_calls=[
            {"tool": step.call.name, "input": step.call.input,
             "output": step.result.output}
            for step in result.steps
        ],
        memory_count=len(memories),
    )


@router.post(
    "/hitl",
    response_model=HITLChatResponse,
    summary="Email assistant with approval before sending",
    description=(
        "Processes the user's approval decisions for pending emails, then "
        "lets the assistant respond. Any email the assistant wants to send "
        "comes back as an approval-request part."
    ),
)
async def hitl_chat_endpoint(
    request: HITLChatRequest,
    llm: LLMProvider = Depends(get_llm),
    email_service: EmailService = Depends(get_email_service),
) -> HITLChatResponse:
    try:
        result = await run_hitl_turn(llm, request.messages, email_service)
    except Exception as e:
        raise to_http_error(e) from e

    return HITLChatResponse(end_parts=result.end_parts, parts=result.parts)
