# =============================================================================
# Human-in-the-Loop Approval — Email Drafting Assistant
# =============================================================================
#
# The assistant can draft emails but never sends one on its own. Instead the
# sendEmail tool emits an approval request and ends the turn; the user
# approves or rejects it on their next message, and only then is the email
# actually sent (or the rejection reason recorded).
#
# TURN LIFECYCLE:
#   1. validate_messages()          — last message must come from the user
#   2. find_decisions_to_process()  — pair each pending request in the last
#                                     assistant message with the user's
#                                     decision (missing decision → 400)
#   3. execute_decisions()          — send / skip, append ApprovalEndParts
#   4. get_diary()                  — render the whole conversation as text
#   5. tool loop with sendEmail     — may emit new ApprovalRequestParts
#
# DESIGN DECISION: The model sees a diary, not raw messages.
# Approval requests, decisions and outcomes are data parts, not chat text.
# Rendering them into a markdown diary lets any provider understand what
# happened without vendor-specific tool-message formats.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from agentlab.agents.tool_loop import Tool, run_tool_loop
from agentlab.config import settings
from agentlab.services.email_service import EmailService
from agentlab.services.llm import LLMProvider
from agentlab.services.pricing import TokenUsage

logger = logging.getLogger(__name__)


class HITLError(Exception):
    """A request that cannot be processed, with an HTTP-style status."""

    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


# ---------------------------------------------------------------------------
# Message Model
# ---------------------------------------------------------------------------


class ToolRequiringApproval(BaseModel):
    id: str
    type: Literal["send-email"] = "send-email"
    to: str
    subject: str
    content: str


class ApproveDecision(BaseModel):
    type: Literal["approve"] = "approve"


class RejectDecision(BaseModel):
    type: Literal["reject"] = "reject"
    reason: str


ApprovalDecision = Annotated[
    ApproveDecision | RejectDecision, Field(discriminator="type")
]


class ToolOutput(BaseModel):
    type: Literal["send-email"] = "send-email"
    message: str


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ApprovalRequestPart(BaseModel):
    type: Literal["approval-request"] = "approval-request"
    tool: ToolRequiringApproval


class ApprovalDecisionPart(BaseModel):
    type: Literal["approval-decision"] = "approval-decision"
    tool_id: str
    decision: ApprovalDecision


class ApprovalEndPart(BaseModel):
    type: Literal["approval-end"] = "approval-end"
    tool_id: str
    output: ToolOutput


MessagePart = Annotated[
    TextPart | ApprovalRequestPart | ApprovalDecisionPart | ApprovalEndPart,
    Field(discriminator="type"),
]


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    parts: list[MessagePart] = Field(default_factory=list)


@dataclass
class DecisionToProcess:
    tool: ToolRequiringApproval
    decision: ApproveDecision | RejectDecision


@dataclass
class HITLTurnResult:
    """
    Parts produced by one turn.

    `end_parts` were appended to the user's message; `parts` form the new
    assistant message.
    """

    end_parts: list[ApprovalEndPart] = field(default_factory=list)
    parts: list[TextPart | ApprovalRequestPart] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


# ---------------------------------------------------------------------------
# Decision Processing
# ---------------------------------------------------------------------------


def validate_messages(messages: list[ChatMessage]) -> ChatMessage:
    """
    Check the conversation can be processed; returns the last message.

    Raises:
        HITLError: If messages is empty or the last message is not
            from the user.
    """
    if not messages:
        raise HITLError("Messages array cannot be empty", 400)
    if messages[-1].role != "user":
        raise HITLError("Last message must be a user message", 400)
    return messages[-1]


def find_decisions_to_process(
    most_recent_user_message: ChatMessage,
    most_recent_assistant_message: ChatMessage | None,
) -> list[DecisionToProcess]:
    """
    Pair every approval request with the user's decision for it.

    Raises:
        HITLError: If any request in the assistant message has no
            decision in the user message.
    """
    if most_recent_assistant_message is None:
        return []

    tools = [
        part.tool
        for part in most_recent_assistant_message.parts
        if isinstance(part, ApprovalRequestPart)
    ]
    decisions = {
        part.tool_id: part.decision
        for part in most_recent_user_message.parts
        if isinstance(part, ApprovalDecisionPart)
    }

    to_process: list[DecisionToProcess] = []
    for tool in tools:
        decision = decisions.get(tool.id)
        if decision is None:
            raise HITLError(f"No decision found for tool {tool.id}", 400)
        to_process.append(DecisionToProcess(tool=tool, decision=decision))
    return to_process


async def execute_decisions(
    decisions: list[DecisionToProcess],
    messages: list[ChatMessage],
    email_service: EmailService,
) -> list[ApprovalEndPart]:
    """Carry out approved tools and record every outcome on the last message."""
    end_parts: list[ApprovalEndPart] = []

    for item in decisions:
        if isinstance(item.decision, ApproveDecision):
            await email_service.send_email(
                to=item.tool.to,
                subject=item.tool.subject,
                content=item.tool.content,
            )
            message = "Email sent"
        else:
            logger.info(
                "User rejected tool %s: %s", item.tool.id, item.decision.reason,
            )
            message = f"Email not sent: {item.decision.reason}"

        part = ApprovalEndPart(
            tool_id=item.tool.id, output=ToolOutput(message=message),
        )
        messages[-1].parts.append(part)
        end_parts.append(part)

    return end_parts


# ---------------------------------------------------------------------------
# Diary
# ---------------------------------------------------------------------------


def _render_part(part: MessagePart) -> str:
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, ApprovalRequestPart):
        return "\n".join([
            "The assistant requested to send an email:",
            f"To: {part.tool.to}",
            f"Subject: {part.tool.subject}",
            f"Content: {part.tool.content}",
        ])
    if isinstance(part, ApprovalDecisionPart):
        if isinstance(part.decision, ApproveDecision):
            return "The user approved the tool."
        return f"The user rejected the tool: {part.decision.reason}"
    return f"The tool was performed: {part.output.message}"


def get_diary(messages: list[ChatMessage]) -> str:
    """Render the conversation, including approval activity, as markdown."""
    sections = []
    for message in messages:
        heading = (
            "## User Message" if message.role == "user"
            else "## Assistant Message"
        )
        body = "\n\n".join(_render_part(part) for part in message.parts)
        sections.append(f"{heading}\n\n{body}")
    return "\n\n".join(sections)


# ---------------------------------------------------------------------------
# Turn
# ---------------------------------------------------------------------------


class SendEmailInput(BaseModel):
    to: str
    subject: str
    content: str


_SYSTEM_PROMPT = """You are a helpful assistant that can send emails.
You will be given a diary of the conversation so far.
The user's name is "{user_name}"."""


async def run_hitl_turn(
    llm: LLMProvider,
    messages: list[ChatMessage],
    email_service: EmailService,
    user_name: str = "John Doe",
) -> HITLTurnResult:
    """
    Process pending approvals, then let the assistant respond.

    Raises:
        HITLError: If the conversation is invalid or a decision is missing.
    """
    last_user_message = validate_messages(messages)
    last_assistant_message = next(
        (m for m in reversed(messages) if m.role == "assistant"), None,
    )

    decisions = find_decisions_to_process(
        last_user_message, last_assistant_message,
    )
    result = HITLTurnResult()
    result.end_parts = await execute_decisions(
        decisions, messages, email_service,
    )

    async def _request_approval(tool_input: SendEmailInput) -> str:
        request = ApprovalRequestPart(
            tool=ToolRequiringApproval(
                id=str(uuid.uuid4()),
                to=tool_input.to,
                subject=tool_input.subject,
                content=tool_input.content,
            )
        )
        result.parts.append(request)
        logger.info("Requesting approval for email to %s", tool_input.to)
        return "Approval requested"

    send_email_tool = Tool(
        name="sendEmail",
        description="Send an email",
        input_model=SendEmailInput,
        execute=_request_approval,
    )

    loop = await run_tool_loop(
        llm,
        system=_SYSTEM_PROMPT.format(user_name=user_name),
        prompt=get_diary(messages),
        tools=[send_email_tool],
        max_steps=settings.hitl_max_steps,
        stop_on=["sendEmail"],
    )
    if loop.answer:
        result.parts.append(TextPart(text=loop.answer))
    result.usage = loop.usage
    return result
