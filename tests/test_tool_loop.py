# =============================================================================
# Unit Tests — Tool Loop
# =============================================================================
#
# Drives run_tool_loop() with scripted model replies and checks what the
# model sees back after each tool call.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from agentlab.agents.tool_loop import (
    Tool,
    ToolLoopError,
    format_transcript,
    run_tool_loop,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class _AddInput(BaseModel):
    a: int
    b: int


class _FinishInput(BaseModel):
    pass


def _tools(log: list | None = None) -> list[Tool]:
    async def add(tool_input: _AddInput) -> dict:
        if log is not None:
            log.append((tool_input.a, tool_input.b))
        return {"sum": tool_input.a + tool_input.b}

    async def finish(tool_input: _FinishInput) -> str:
        return "done"

    return [
        Tool("add", "Add two integers", _AddInput, add),
        Tool("finish", "Stop working", _FinishInput, finish),
    ]


class TestRunToolLoop:
    """Tests for run_tool_loop()."""

    def test_immediate_answer(self, fake_llm):
        llm = fake_llm(replies=['{"answer": "Hello"}'])
        result = _run(run_tool_loop(llm, "sys", "hi", _tools(), max_steps=3))
        assert result.answer == "Hello"
        assert result.steps == []
        assert result.usage.calls == 1

    def test_tool_call_then_answer(self, fake_llm):
        log: list = []
        llm = fake_llm(replies=[
            '{"tool": "add", "input": {"a": 2, "b": 3}}',
            '{"answer": "It is 5"}',
        ])

        result = _run(run_tool_loop(llm, "sys", "2+3?", _tools(log), max_steps=3))

        assert result.answer == "It is 5"
        assert log == [(2, 3)]
        assert result.steps[0].result.output == {"sum": 5}
        # The second turn sees the tool result
        last = llm.calls[1]["messages"][-1]
        assert last["role"] == "user"
        assert last["content"] == 'Tool result: add\nOutput: {"sum": 5}'

    def test_system_prompt_lists_tools(self, fake_llm):
        llm = fake_llm(replies=['{"answer": "ok"}'])
        _run(run_tool_loop(llm, "Base prompt.", "hi", _tools(), max_steps=1))
        system = llm.calls[0]["system"]
        assert system.startswith("Base prompt.")
        assert "- add: Add two integers" in system
        assert "- finish: Stop working" in system
        assert '"answer"' in system

    def test_tool_without_arguments(self, fake_llm):
        llm = fake_llm(replies=[
            '{"tool": "finish", "input": {}}',
            '{"answer": "Finished"}',
        ])

        result = _run(run_tool_loop(llm, "sys", "stop", _tools(), max_steps=3))

        assert result.answer == "Finished"
        assert result.steps[0].result.output == "done"

    def test_conversation_prompt_used_as_messages(self, fake_llm):
        llm = fake_llm(replies=['{"answer": "ok"}'])
        conversation = [
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": "two"},
            {"role": "user", "content": "three"},
        ]
        _run(run_tool_loop(llm, "sys", conversation, _tools(), max_steps=1))
        assert llm.calls[0]["messages"] == conversation

    def test_unknown_tool_fed_back_as_error(self, fake_llm):
        llm = fake_llm(replies=[
            '{"tool": "multiply", "input": {}}',
            '{"answer": "sorry"}',
        ])
        result = _run(run_tool_loop(llm, "sys", "x", _tools(), max_steps=3))
        step = result.steps[0]
        assert step.result.is_error is True
        assert "Unknown tool 'multiply'" in step.result.output

    def test_invalid_input_fed_back_as_error(self, fake_llm):
        llm = fake_llm(replies=[
            '{"tool": "add", "input": {"a": "two"}}',
            '{"answer": "sorry"}',
        ])
        result = _run(run_tool_loop(llm, "sys", "x", _tools(), max_steps=3))
        assert result.steps[0].result.is_error is True
        assert result.steps[0].result.output.startswith("Invalid input")

    def test_unparseable_reply_not_recorded_as_step(self, fake_llm):
        llm = fake_llm(replies=["I will add them now.", '{"answer": "5"}'])
        result = _run(run_tool_loop(llm, "sys", "x", _tools(), max_steps=3))
        assert result.answer == "5"
        assert result.steps == []
        assert llm.calls[1]["messages"][-1]["content"].startswith("Tool error")

    def test_stops_on_named_tool(self, fake_llm):
        llm = fake_llm(replies=['{"tool": "finish", "input": {}}'])
        result = _run(run_tool_loop(
            llm, "sys", "x", _tools(), max_steps=5, stop_on=["finish"],
        ))
        assert result.answer is None
        assert result.stopped_on == "finish"
        assert len(llm.calls) == 1

    def test_max_steps_without_answer(self, fake_llm):
        llm = fake_llm(replies=['{"tool": "add", "input": {"a": 1, "b": 1}}'] * 2)
        result = _run(run_tool_loop(llm, "sys", "x", _tools(), max_steps=2))
        assert result.answer is None
        assert len(result.steps) == 2
        assert result.usage.calls == 2

    def test_invalid_configuration(self, fake_llm):
        with pytest.raises(ToolLoopError):
            _run(run_tool_loop(fake_llm(), "sys", "x", _tools(), max_steps=0))
        duplicated = _tools() + _tools()
        with pytest.raises(ToolLoopError):
            _run(run_tool_loop(fake_llm(), "sys", "x", duplicated, max_steps=1))


class TestFormatTranscript:
    def test_renders_calls_results_and_answer(self, fake_llm):
        llm = fake_llm(replies=[
            '{"tool": "add", "input": {"a": 1, "b": 2}}',
            '{"answer": "Three"}',
        ])
        result = _run(run_tool_loop(llm, "sys", "x", _tools(), max_steps=3))

        assert format_transcript(result) == (
            'Tool call: add\nInput: {"a": 1, "b": 2}\n\n'
            'Tool result: add\nOutput: {"sum": 3}\n\n'
            "Three"
        )
