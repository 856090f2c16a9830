# =============================================================================
# Tool Loop — Multi-Step Tool Calling Over Any Provider
# =============================================================================
#
# Memory chat, HITL email drafting and every subagent follow the same shape:
# the model looks at the task, calls a tool, reads the result, calls another
# tool, and finally answers. This module runs that loop.
#
# PROTOCOL (one JSON object per model turn):
#   {"tool": "createTodos", "input": {"todos": [{"title": "Buy milk"}]}}
#   {"answer": "I've added 'Buy milk' to your list."}
#
# FLOW:
#   prompt ──▶ LLM ──▶ action ──▶ tool? ──yes──▶ validate ──▶ execute ──┐
#               ▲                  │                                    │
#               │                  no (answer) ──▶ return               │
#               └───────────── "Tool result: …" ◀───────────────────────┘
#
# DESIGN DECISION: JSON action protocol instead of vendor tool-calling APIs.
# Anthropic and OpenAI encode tool calls differently. Asking for a JSON
# action through complete() works identically on both providers and keeps
# test doubles to a list of canned replies.
#
# DESIGN DECISION: Mistakes are fed back, not raised.
# Invalid JSON, unknown tools and inputs that fail validation are reported
# to the model as a tool error so it can correct itself on the next step.
# Each such turn still counts towards max_steps.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from agentlab.services.llm import LLMProvider, parse_json_reply
from agentlab.services.pricing import TokenUsage

logger = logging.getLogger(__name__)


class ToolLoopError(Exception):
    """Raised when a tool loop is configured incorrectly."""


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class Tool:
    """
    A tool the model can call.

    `execute` receives the validated input model and returns anything
    JSON-serialisable (strings, dicts, Pydantic models).
    """

    name: str
    description: str
    input_model: type[BaseModel]
    execute: Callable[[Any], Awaitable[Any]]


@dataclass
class ToolCall:
    name: str
    input: dict


@dataclass
class ToolResult:
    name: str
    output: Any
    is_error: bool = False


@dataclass
class ToolStep:
    """One executed (or rejected) tool call."""

    call: ToolCall
    result: ToolResult


@dataclass
class ToolLoopResult:
    """
    Outcome of a tool loop.

    `answer` is None when the loop ended without a final answer, either
    because a stop_on tool was called or max_steps was reached.
    `stopped_on` names the stop_on tool that ended the loop, if any.
    """

    answer: str | None
    steps: list[ToolStep] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    stopped_on: str | None = None


# ---------------------------------------------------------------------------
# Prompt Construction
# ---------------------------------------------------------------------------

_PROTOCOL_PROMPT = """

You can use the following tools:

{tools}

On every turn respond with ONLY one JSON object (no markdown, no \
explanation), either a tool call:
{{"tool": "<tool name>", "input": {{...}}}}
or, when you are done, your final answer to the user:
{{"answer": "<your reply>"}}

Call one tool per turn. Tool results will be sent back to you."""


def _describe_tools(tools: Sequence[Tool]) -> str:
    blocks = []
    for tool in tools:
        schema = json.dumps(tool.input_model.model_json_schema())
        blocks.append(
            f"- {tool.name}: {tool.description}\n  Input schema: {schema}"
        )
    return "\n".join(blocks)


def _to_json(value: Any) -> str:
    return json.dumps(to_jsonable_python(value))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_tool_loop(
    llm: LLMProvider,
    system: str,
    prompt: str | list[dict[str, str]],
    tools: Sequence[Tool],
    max_steps: int,
    stop_on: Sequence[str] = (),
) -> ToolLoopResult:
    """
    Let the model call tools until it answers or runs out of steps.

    Args:
        llm: Provider to call.
        system: Task-specific system prompt; the tool list and protocol
            are appended.
        prompt: A single user prompt, or a full conversation as
            role/content messages.
        tools: Tools available to the model.
        max_steps: Maximum number of model turns.
        stop_on: Tool names that end the loop once executed.

    Raises:
        ToolLoopError: If max_steps < 1 or tool names are not unique.
    """
    if max_steps < 1:
        raise ToolLoopError(f"max_steps must be >= 1, got {max_steps}")
    by_name = {tool.name: tool for tool in tools}
    if len(by_name) != len(tools):
        raise ToolLoopError("Tool names must be unique")

    full_system = system + _PROTOCOL_PROMPT.format(tools=_describe_tools(tools))
    messages: list[dict[str, str]] = (
        [{"role": "user", "content": prompt}]
        if isinstance(prompt, str) else list(prompt)
    )
    result = ToolLoopResult(answer=None)

    for step in range(1, max_steps + 1):
        response = await llm.complete(messages=messages, system=full_system)
        result.usage.add(response)
        messages.append({"role": "assistant", "content": response.content})

        action = _parse_action(response.content)
        if isinstance(action, str):
            logger.info("Tool loop answered after %d step(s)", step)
            result.answer = action
            return result

        if isinstance(action, ToolResult):
            # Unparseable reply: no call to record, only the error
            logger.warning("Step %d: %s", step, action.output)
            messages.append({
                "role": "user",
                "content": f"Tool error\nOutput: {_to_json(action.output)}",
            })
            continue

        tool_result = await _execute(by_name, action)
        result.steps.append(ToolStep(call=action, result=tool_result))
        messages.append({
            "role": "user",
            "content": (
                f"Tool result: {tool_result.name}\n"
                f"Output: {_to_json(tool_result.output)}"
            ),
        })

        if not tool_result.is_error and action.name in stop_on:
            logger.info("Tool loop stopped on %s", action.name)
            result.stopped_on = action.name
            return result

    logger.warning("Tool loop hit max_steps=%d without an answer", max_steps)
    return result


def format_transcript(result: ToolLoopResult) -> str:
    """
    Render a loop's tool calls, results and final answer as plain text.

    Used as a subagent's raw output for the orchestrator to summarise.
    """
    blocks: list[str] = []
    for step in result.steps:
        blocks.append(
            f"Tool call: {step.call.name}\nInput: {_to_json(step.call.input)}"
        )
        blocks.append(
            f"Tool result: {step.result.name}\n"
            f"Output: {_to_json(step.result.output)}"
        )
    if result.answer:
        blocks.append(result.answer)
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _parse_action(content: str) -> str | ToolCall | ToolResult:
    """
    Parse a model turn into an answer, a tool call, or an error result.
    """
    try:
        raw = parse_json_reply(content)
    except json.JSONDecodeError:
        return ToolResult(
            name="error",
            output="Reply was not valid JSON. Respond with one JSON object.",
            is_error=True,
        )

    if isinstance(raw, dict) and isinstance(raw.get("answer"), str):
        return raw["answer"]
    if isinstance(raw, dict) and isinstance(raw.get("tool"), str):
        tool_input = raw.get("input") or {}
        if isinstance(tool_input, dict):
            return ToolCall(name=raw["tool"], input=tool_input)

    return ToolResult(
        name="error",
        output=(
            'Expected {"tool": ..., "input": {...}} or {"answer": ...}.'
        ),
        is_error=True,
    )


async def _execute(by_name: dict[str, Tool], call: ToolCall) -> ToolResult:
    tool = by_name.get(call.name)
    if tool is None:
        return ToolResult(
            name=call.name,
            output=(
                f"Unknown tool '{call.name}'. "
                f"Available tools: {sorted(by_name)}"
            ),
            is_error=True,
        )

    try:
        tool_input = tool.input_model.model_validate(call.input)
    except ValidationError as e:
        return ToolResult(
            name=call.name, output=f"Invalid input: {e}", is_error=True,
        )

    logger.info("Executing tool %s", call.name)
    output = await tool.execute(tool_input)
    return ToolResult(name=call.name, output=output)
