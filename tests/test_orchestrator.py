# =============================================================================
# Unit Tests — LangGraph Orchestrator
# =============================================================================
#
# Runs the compiled graph with a scripted model. Where tasks run in
# parallel, the subagent registry is patched with fakes so the order of
# model calls stays deterministic.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from agentlab.agents import orchestrator
from agentlab.agents.orchestrator import (
    ConversationMessage,
    TaskRecord,
    UnknownSubagentError,
    format_message_history,
    format_task_entry,
    run_orchestrator,
)
from agentlab.agents.subagents import Subagent, SubagentResult
from agentlab.agents.subagents import todos_agent as todos
from agentlab.services.pricing import TokenUsage


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _tasks(*pairs: tuple[str, str]) -> str:
    return json.dumps({
        "tasks": [{"subagent": s, "task": t} for s, t in pairs],
    })


def _user(text: str) -> list[ConversationMessage]:
    return [ConversationMessage(role="user", text=text)]


def _fake_subagent(name: str, output: str | None = None, error: str | None = None) -> Subagent:
    async def _run_agent(llm, prompt: str) -> SubagentResult:
        if error:
            raise RuntimeError(error)
        return SubagentResult(output=output or f"{name} did: {prompt}", usage=TokenUsage())

    return Subagent(name=name, description=f"{name} for tests", run=_run_agent)


# ---------------------------------------------------------------------------
# Test: Formatting
# ---------------------------------------------------------------------------


class TestFormatting:
    def test_task_entry_with_output(self):
        task = TaskRecord(id="1", subagent="todos-agent", task="Add milk", output="Added.")
        assert format_task_entry(task) == (
            "The todos-agent subagent was asked to perform the following task:\n"
            "<task>\nAdd milk\n</task>\n"
            "The subagent provided the following output:\n"
            "<output>\nAdded.\n</output>"
        )

    def test_task_entry_failed(self):
        task = TaskRecord(id="1", subagent="todos-agent", task="x", output="Error: boom")
        assert "The subagent failed to perform the task:" in format_task_entry(task, failed=True)

    def test_task_entry_without_output(self):
        task = TaskRecord(id="1", subagent="todos-agent", task="x")
        assert "<output>" not in format_task_entry(task)

    def test_message_history_includes_tasks(self):
        history = format_message_history([
            ConversationMessage(role="user", text="Add milk"),
            ConversationMessage(
                role="assistant",
                text="Done",
                tasks=[TaskRecord(id="1", subagent="todos-agent", task="Add milk", output="ok")],
            ),
        ])
        assert history.startswith("## User\nAdd milk\n## Assistant\nDone\n")
        assert "The todos-agent subagent was asked" in history


# ---------------------------------------------------------------------------
# Test: Full runs
# ---------------------------------------------------------------------------


class TestRunOrchestrator:
    def test_single_task_end_to_end(self, fake_llm):
        llm = fake_llm(
            replies=[
                _tasks(("todos-agent", "Add a todo: buy milk")),
                '{"tool": "createTodos", "input": {"todos": [{"title": "Buy milk"}]}}',
                '{"answer": "Added buy milk."}',
                _tasks(),
            ],
            stream_replies=[
                "1. Ask the todos agent to add the todo",
                "I added buy milk to your list.",
                "Your todo has been added.",
            ],
        )
        events: list = []

        result = _run(run_orchestrator(
            _user("Remind me to buy milk"), on_event=events.append, llm=llm,
        ))

        assert result.answer == "Your todo has been added."
        assert result.steps == 1
        assert [t.output for t in result.tasks] == ["I added buy milk to your list."]
        assert result.diary.startswith(
            "A plan was generated:\n1. Ask the todos agent to add the todo"
        )
        assert "<output>\nI added buy milk to your list.\n</output>" in result.diary

        # The subagent really wrote to its store
        stored = _run(todos.todos_db().load())
        assert [t.title for t in stored.todos.values()] == ["Buy milk"]

        types = [e.type for e in events]
        assert types[0] == "reasoning-delta"
        assert "task" in types
        assert types[-1] == "text-delta"
        answer = "".join(e.data["delta"] for e in events if e.type == "text-delta")
        assert answer == "Your todo has been added."

        # plan + 2 next_tasks + 2 subagent turns + summary + final answer
        assert result.usage.calls == 7

    def test_no_tasks_goes_straight_to_summary(self, fake_llm):
        llm = fake_llm(replies=[_tasks()], stream_replies=["Nothing to do.", "Hello!"])
        result = _run(run_orchestrator(_user("hi"), llm=llm))
        assert result.answer == "Hello!"
        assert result.steps == 0
        assert result.tasks == []

    def test_parallel_tasks_recorded_in_task_order(self, fake_llm):
        registry = {
            "a-agent": _fake_subagent("a-agent"),
            "b-agent": _fake_subagent("b-agent"),
        }
        llm = fake_llm(
            replies=[_tasks(("a-agent", "first"), ("b-agent", "second")), _tasks()],
            stream_replies=["plan", "summary one", "summary two", "final"],
        )

        with patch.dict(orchestrator.SUBAGENTS, registry, clear=True):
            result = _run(run_orchestrator(_user("do both"), llm=llm))

        assert [t.subagent for t in result.tasks] == ["a-agent", "b-agent"]
        assert result.diary.index("<task>\nfirst") < result.diary.index("<task>\nsecond")

    def test_failing_subagent_recorded_not_raised(self, fake_llm):
        registry = {"broken-agent": _fake_subagent("broken-agent", error="store offline")}
        llm = fake_llm(
            replies=[_tasks(("broken-agent", "do it")), _tasks()],
            stream_replies=["plan", "It failed, sorry."],
        )
        events: list = []

        with patch.dict(orchestrator.SUBAGENTS, registry, clear=True):
            result = _run(run_orchestrator(_user("x"), on_event=events.append, llm=llm))

        assert result.tasks[0].output == "Error: store offline"
        assert "The subagent failed to perform the task:" in result.diary
        task_events = [e for e in events if e.type == "task"]
        assert task_events[-1].data["output"] == "Error: store offline"

    def test_unknown_subagent_rejected_by_task_schema(self, fake_llm):
        llm = fake_llm(replies=[_tasks(("ghost-agent", "boo"))], stream_replies=["plan"])
        with pytest.raises(ValueError, match="ghost-agent"):
            _run(run_orchestrator(_user("x"), llm=llm))

    def test_task_schema_lists_registered_subagents(self, fake_llm):
        llm = fake_llm(replies=[_tasks()], stream_replies=["plan", "done"])
        _run(run_orchestrator(_user("x"), llm=llm))

        system = next(c["system"] for c in llm.calls if c["kind"] == "complete")
        for name in ("todos-agent", "student-notes-agent", "scheduler-agent"):
            assert f'"{name}"' in system
        assert '"enum"' in system

    def test_task_schema_follows_registry(self):
        registry = {"a-agent": _fake_subagent("a-agent")}
        with patch.dict(orchestrator.SUBAGENTS, registry, clear=True):
            model = orchestrator.task_list_model()
            assert model.model_validate(json.loads(_tasks(("a-agent", "x")))).tasks[0].subagent == "a-agent"
            with pytest.raises(ValidationError):
                model.model_validate(json.loads(_tasks(("todos-agent", "x"))))

    def test_run_tasks_refuses_unknown_subagent(self):
        pending = [TaskRecord(id="1", subagent="ghost-agent", task="boo")]
        with pytest.raises(UnknownSubagentError, match="ghost-agent"):
            _run(orchestrator.run_tasks_node({"pending": pending}))

    def test_step_limit_forces_summary(self, fake_llm):
        registry = {"a-agent": _fake_subagent("a-agent")}
        llm = fake_llm(
            replies=[_tasks(("a-agent", "again"))] * 2,
            stream_replies=["plan", "s1", "s2", "final"],
        )

        with patch.dict(orchestrator.SUBAGENTS, registry, clear=True):
            result = _run(run_orchestrator(_user("loop"), llm=llm, max_steps=2))

        assert result.steps == 2
        assert result.answer == "final"
        # The third next_tasks round is skipped without calling the model
        assert sum(1 for c in llm.calls if c["kind"] == "complete") == 2

    def test_async_event_callback(self, fake_llm):
        llm = fake_llm(replies=[_tasks()], stream_replies=["p", "done"])
        seen: list[str] = []

        async def on_event(event) -> None:
            seen.append(event.type)

        _run(run_orchestrator(_user("hi"), on_event=on_event, llm=llm))
        assert seen == ["reasoning-delta", "text-delta"]

    def test_invalid_task_list_raises_value_error(self, fake_llm):
        llm = fake_llm(replies=["not json"], stream_replies=["plan"])
        with pytest.raises(ValueError):
            _run(run_orchestrator(_user("x"), llm=llm))
