# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
# FastAPI uses them for request validation (automatic 422 errors), OpenAPI
# docs at /docs, and editor type hints in route handlers.
#
# DESIGN DECISION: Chat endpoints take the whole conversation.
# The server keeps no per-conversation session state: clients resend the
# message history on every turn, as chat UIs already do. Long-term state
# (memories, todos, calendar) lives in the JSON stores, not in requests.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from agentlab.agents.hitl import ChatMessage
from agentlab.agents.orchestrator import ConversationMessage


class Message(BaseModel):
    """A plain chat message."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=20000)


class EmailSearchRequest(BaseModel):
    """
    Request body for POST /search/emails.

    Example:
        {"messages": [{"role": "user", "content": "When is the house survey?"}]}
    """

    messages: list[Message] = Field(..., min_length=1)
    answer: bool = Field(
        default=True,
        description="Generate a cited answer as well as returning the results",
    )
    limit: int = Field(default=10, ge=1, le=100)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "messages": [
                        {"role": "user", "content": "When is the house survey?"},
                    ],
                    "answer": True,
                    "limit": 10,
                },
            ]
        }
    )


class MemoryChatRequest(BaseModel):
    """Request body for POST /chat/memory."""

    messages: list[Message] = Field(..., min_length=1)


class HITLChatRequest(BaseModel):
    """
    Request body for POST /chat/hitl.

    Messages carry typed parts; a user message answering an approval
    request includes an approval-decision part for each pending tool id.
    """

    messages: list[ChatMessage]


class OrchestrateRequest(BaseModel):
    """Request body for POST /orchestrate."""

    messages: list[ConversationMessage] = Field(..., min_length=1)
    max_steps: int | None = Field(
        default=None,
        ge=1,
        le=25,
        description="Maximum task rounds (defaults to ORCHESTRATOR_MAX_STEPS)",
    )
