# =============================================================================
# LangGraph Orchestrator — Planning Multi-Agent Loop
# =============================================================================
#
# Turns one user request ("move Sarah's lesson to Friday and add a todo to
# send her the new song") into work for specialised subagents:
#
# 1. PLAN — stream a plain-English, ordered plan (shown as reasoning)
# 2. NEXT TASKS — pick the next batch of tasks that can run in parallel
# 3. RUN TASKS — run every task's subagent concurrently, summarise each
#    transcript, record the outcomes in the diary
# 4. Repeat 2–3 until the model returns no tasks or the step limit is hit
# 5. SUMMARIZE — stream the final answer from conversation + diary
#
# GRAPH TOPOLOGY:
#   START ──▶ plan ──▶ next_tasks ──(tasks)──▶ run_tasks ──┐
#                        ▲    │                            │
#                        │    └──(none / limit)──▶ summarize ──▶ END
#                        └─────────────────────────────────┘
#
# DESIGN DECISION: The diary is the only memory between steps.
# Each next_tasks call sees the conversation plus a growing text diary
# (plan, tasks, summarised outputs, failures). Subagent transcripts are
# summarised before they enter the diary so it stays readable.
#
# DESIGN DECISION: A failing subagent never aborts the step.
# Its error is written to the diary and streamed as the task output, so
# the planner can route around it. An unknown subagent name, however, is a
# planner bug. The task-list schema only admits registered names, so the
# reply fails validation; run_tasks also raises UnknownSubagentError for
# any pending task it cannot route, before any task runs.
#
# DESIGN DECISION: Graph compiled once at module level.
# The LLM provider and the event callback travel in the state, so one
# compiled graph serves every request.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel, Field, create_model
from typing_extensions import TypedDict

from agentlab.agents.subagents import SUBAGENTS
from agentlab.config import settings
from agentlab.services.llm import (
    LLMProvider,
    LLMResponse,
    generate_object,
    get_llm_provider,
    stream_text,
)
from agentlab.services.pricing import TokenUsage

logger = logging.getLogger(__name__)


class UnknownSubagentError(Exception):
    """The planner delegated a task to a subagent that does not exist."""


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class TaskRecord(BaseModel):
    """A delegated task; `output` is the subagent's summarised output."""

    id: str
    subagent: str
    task: str
    output: str = ""


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    text: str = ""
    tasks: list[TaskRecord] = Field(default_factory=list)


class PlannedTask(BaseModel):
    subagent: str = Field(description="The subagent to use")
    task: str = Field(description="A detailed description of the task to perform")


class TaskList(BaseModel):
    tasks: list[PlannedTask]


@lru_cache(maxsize=8)
def _task_list_model(names: tuple[str, ...]) -> type[TaskList]:
    planned = create_model(
        "PlannedTask",
        __base__=PlannedTask,
        subagent=(Literal[names], Field(description="The subagent to use")),
    )
    return create_model("TaskList", __base__=TaskList, tasks=(list[planned], ...))


def task_list_model() -> type[TaskList]:
    """TaskList whose tasks may only name currently registered subagents."""
    return _task_list_model(tuple(SUBAGENTS))


@dataclass
class OrchestratorEvent:
    """
    A streamed event.

    type is one of:
      reasoning-delta — data {"delta"}: a piece of the plan
      task            — data {"id", "subagent", "task", "output"}: a task
                        was created (empty output) or its output grew
                        (output holds the new delta)
      text-delta      — data {"delta"}: a piece of the final answer
    """

    type: str
    id: str
    data: dict[str, Any]


EventCallback = Callable[[OrchestratorEvent], Awaitable[None] | None]


@dataclass
class OrchestratorResult:
    answer: str
    diary: str
    steps: int
    tasks: list[TaskRecord] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    estimated_cost_usd: float | None = None


class OrchestratorState(TypedDict, total=False):
    """
    State that flows through the graph.

    total=False so nodes only return the keys they update.
    """

    # --- Input ---
    conversation: str  # formatted message history
    llm: LLMProvider
    on_event: EventCallback | None
    max_steps: int

    # --- Loop state ---
    diary: str
    step: int
    pending: list[TaskRecord]
    tasks: list[TaskRecord]
    usage: TokenUsage

    # --- Output ---
    answer: str


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def _subagent_list() -> str:
    return "\n".join(
        f"- {agent.name}: {agent.description}" for agent in SUBAGENTS.values()
    )


_PLAN_SYSTEM = """You are a helpful assistant that manages a multi-agent system.

This multi-agent system is designed to help singing teachers manage their \
students.

You will be given a conversation history and the user's initial prompt.
You will need to generate a plan for the next steps.

The current date is {now}.

This plan should be in multiple steps.

You have access to these subagents:

{subagents}

You will describe in plain English what steps the system should take in \
order to achieve the user's goal.

This should be in the form of an ordered list of steps, like a todo list.

1. Do the first thing
2. Do the second thing
3. Do the third thing, which requires the output of the first thing
4. Do the fourth thing, which requires the output of the second thing

Multiple agents can be run in parallel.

If you are asked about a student, fetch their notes before performing any \
other tasks."""

_TASKS_SYSTEM = """You are a helpful assistant that manages a multi-agent system.
You will be given a conversation history and the user's initial prompt.
You will also be given a plan to follow.

The current date is {now}.

You must follow the plan exactly, and generate the _next_ step only.

If the plan is complete, return an empty list of tasks.

You have access to these subagents:

{subagents}

You will return a list of tasks to delegate to the subagents.
These tasks will be executed in parallel.

Subagents can handle complicated tasks, so don't be afraid to delegate \
large tasks to them.

This means that inter-dependent tasks (like finding X and using X to create \
Y) should be split into two tasks.

Think step-by-step - first decide what tasks need to be performed, then \
decide which subagent to use for each task."""

_SUMMARIZE_SYSTEM = """The current date and time is {now}.

You are a helpful assistant that summarizes the results of a multi-agent \
system.

You will be given a diary of the work performed so far and the user's \
initial prompt.

You should provide a summary of the tasks performed and provide the \
results to the user."""

_AGENT_OUTPUT_SYSTEM = """You are a helpful assistant that summarizes a \
subagent's output.
You will be given an agent's thought process and results, and you will \
need to summarize the results.
You will also be given the initial prompt so you can understand the \
context of the output.
Provide a summary that is relevant to the initial prompt.
Reply as if you are the subagent.
The user will ONLY see the summary, not the thought process or results - \
so make it good!"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _work_prompt(conversation: str, diary: str) -> str:
    return (
        f"Initial prompt:\n\n{conversation}\n\n"
        f"The diary of the work performed so far:\n\n{diary}"
    )


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_task_entry(task: TaskRecord, failed: bool = False) -> str:
    """A diary entry for a task and (if any) its output."""
    lines = [
        f"The {task.subagent} subagent was asked to perform the following task:",
        "<task>",
        task.task,
        "</task>",
    ]
    if task.output:
        lines += [
            "The subagent failed to perform the task:" if failed
            else "The subagent provided the following output:",
            "<output>",
            task.output,
            "</output>",
        ]
    return "\n".join(lines)


def format_message_history(messages: Sequence[ConversationMessage]) -> str:
    """Render the conversation, including earlier tasks, as plain text."""
    blocks = []
    for message in messages:
        parts = [message.text] if message.text else []
        parts += [format_task_entry(task) for task in message.tasks]
        heading = "## User" if message.role == "user" else "## Assistant"
        blocks.append("\n".join([heading, *parts]))
    return "\n".join(blocks)


def _append(diary: str, entry: str) -> str:
    return "\n".join([diary, "", entry]).strip()


async def _emit(
    on_event: EventCallback | None,
    type_: str,
    event_id: str,
    data: dict[str, Any],
) -> None:
    if on_event is None:
        return
    result = on_event(OrchestratorEvent(type=type_, id=event_id, data=data))
    if result is not None:
        await result


# ---------------------------------------------------------------------------
# Subagent Output Summary
# ---------------------------------------------------------------------------


async def summarize_agent_output(
    llm: LLMProvider,
    initial_prompt: str,
    agent_output: str,
    on_summary_delta: Callable[[str], Awaitable[None] | None] | None = None,
) -> LLMResponse:
    """Stream a user-facing summary of a subagent transcript."""
    prompt = (
        f"Initial prompt:\n\n{initial_prompt}\n\n"
        f"Agent output:\n\n{agent_output}"
    )
    return await stream_text(
        llm,
        messages=[{"role": "user", "content": prompt}],
        system=_AGENT_OUTPUT_SYSTEM,
        on_delta=on_summary_delta,
    )


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def plan_node(state: OrchestratorState) -> dict:
    """Stream the plan as reasoning and seed the diary with it."""
    reasoning_id = str(uuid.uuid4())
    on_event = state.get("on_event")

    async def _on_delta(delta: str) -> None:
        await _emit(on_event, "reasoning-delta", reasoning_id, {"delta": delta})

    response = await stream_text(
        state["llm"],
        messages=[{"role": "user", "content": state["conversation"]}],
        system=_PLAN_SYSTEM.format(now=_now(), subagents=_subagent_list()),
        on_delta=_on_delta,
    )
    state["usage"].add(response)

    logger.info("Plan generated (%d chars)", len(response.content))
    return {
        "diary": _append(
            state.get("diary", ""), f"A plan was generated:\n{response.content}",
        ),
        "usage": state["usage"],
    }


async def next_tasks_node(state: OrchestratorState) -> dict:
    """Ask for the next batch of parallel tasks, unless the step limit is hit."""
    if state["step"] >= state["max_steps"]:
        logger.warning(
            "Orchestrator reached max_steps=%d, summarising", state["max_steps"],
        )
        return {"pending": []}

    task_list, response = await generate_object(
        state["llm"],
        task_list_model(),
        messages=[{
            "role": "user",
            "content": _work_prompt(state["conversation"], state["diary"]),
        }],
        system=_TASKS_SYSTEM.format(now=_now(), subagents=_subagent_list()),
    )
    state["usage"].add(response)

    pending = [
        TaskRecord(id=str(uuid.uuid4()), subagent=t.subagent, task=t.task)
        for t in task_list.tasks
    ]
    for task in pending:
        await _emit(state.get("on_event"), "task", task.id, task.model_dump())

    logger.info(
        "Step %d: %d task(s) %s",
        state["step"] + 1, len(pending), [t.subagent for t in pending],
    )
    return {"pending": pending, "usage": state["usage"]}


async def run_tasks_node(state: OrchestratorState) -> dict:
    """
    Run all pending tasks in parallel and record their outcomes.

    Raises:
        UnknownSubagentError: If a task names a subagent that does not
            exist. Checked before any task starts.
    """
    pending = state["pending"]
    for task in pending:
        if task.subagent not in SUBAGENTS:
            raise UnknownSubagentError(f"Unknown subagent: {task.subagent}")

    llm = state["llm"]
    on_event = state.get("on_event")
    usage = state["usage"]

    async def _run(task: TaskRecord) -> tuple[TaskRecord, bool]:
        try:
            result = await SUBAGENTS[task.subagent].run(llm, task.task)
            usage.merge(result.usage)

            async def _on_delta(delta: str) -> None:
                await _emit(
                    on_event, "task", task.id,
                    {**task.model_dump(), "output": delta},
                )

            summary = await summarize_agent_output(
                llm, state["conversation"], result.output, _on_delta,
            )
            usage.add(summary)
            return task.model_copy(update={"output": summary.content}), False
        except Exception as e:
            logger.exception("Subagent %s failed", task.subagent)
            failed = task.model_copy(update={"output": f"Error: {e}"})
            await _emit(on_event, "task", task.id, failed.model_dump())
            return failed, True

    outcomes = await asyncio.gather(*(_run(task) for task in pending))

    diary = state["diary"]
    for task, failed in outcomes:
        diary = _append(diary, format_task_entry(task, failed=failed))

    return {
        "diary": diary,
        "step": state["step"] + 1,
        "pending": [],
        "tasks": [*state.get("tasks", []), *(task for task, _ in outcomes)],
        "usage": usage,
    }


async def summarize_node(state: OrchestratorState) -> dict:
    """Stream the final answer to the user."""
    text_id = str(uuid.uuid4())
    on_event = state.get("on_event")

    async def _on_delta(delta: str) -> None:
        await _emit(on_event, "text-delta", text_id, {"delta": delta})

    response = await stream_text(
        state["llm"],
        messages=[{
            "role": "user",
            "content": _work_prompt(state["conversation"], state["diary"]),
        }],
        system=_SUMMARIZE_SYSTEM.format(now=_now()),
        on_delta=_on_delta,
    )
    state["usage"].add(response)
    return {"answer": response.content, "usage": state["usage"]}


def _route_after_next_tasks(state: OrchestratorState) -> str:
    return "run_tasks" if state.get("pending") else "summarize"


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(OrchestratorState)
_builder.add_node("plan", plan_node)
_builder.add_node("next_tasks", next_tasks_node)
_builder.add_node("run_tasks", run_tasks_node)
_builder.add_node("summarize", summarize_node)

_builder.add_edge(START, "plan")
_builder.add_edge("plan", "next_tasks")
_builder.add_conditional_edges(
    "next_tasks",
    _route_after_next_tasks,
    {"run_tasks": "run_tasks", "summarize": "summarize"},
)
_builder.add_edge("run_tasks", "next_tasks")
_builder.add_edge("summarize", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_orchestrator(
    messages: Sequence[ConversationMessage],
    on_event: EventCallback | None = None,
    llm: LLMProvider | None = None,
    max_steps: int | None = None,
) -> OrchestratorResult:
    """
    Run the planning loop over a conversation.

    Args:
        messages: The conversation so far; the last message is usually
            the user's request.
        on_event: Optional callback (sync or async) receiving streamed
            OrchestratorEvents.
        llm: Provider override (defaults to the configured singleton).
        max_steps: Maximum task rounds (defaults to
            settings.orchestrator_max_steps).

    Raises:
        ValueError: If the task list reply cannot be parsed or names an
            unregistered subagent.
        UnknownSubagentError: If a pending task names an unknown subagent.
    """
    max_steps = settings.orchestrator_max_steps if max_steps is None else max_steps
    initial_state: OrchestratorState = {
        "conversation": format_message_history(messages),
        "llm": llm or get_llm_provider(),
        "on_event": on_event,
        "max_steps": max_steps,
        "diary": "",
        "step": 0,
        "pending": [],
        "tasks": [],
        "usage": TokenUsage(),
    }

    logger.info(
        "Invoking orchestrator: %d message(s), max_steps=%d",
        len(messages), max_steps,
    )

    # Each round is two graph steps (next_tasks + run_tasks)
    final = await graph.ainvoke(
        initial_state, config={"recursion_limit": 2 * max_steps + 10},
    )

    usage: TokenUsage = final["usage"]
    result = OrchestratorResult(
        answer=final.get("answer", ""),
        diary=final["diary"],
        steps=final["step"],
        tasks=final.get("tasks", []),
        usage=usage,
        estimated_cost_usd=usage.estimated_cost(
            settings.llm_provider, settings.llm_model,
        ),
    )
    logger.info(
        "Orchestrator complete: %d step(s), %d task(s), %d LLM call(s)",
        result.steps, len(result.tasks), usage.calls,
    )
    return result
