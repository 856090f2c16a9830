# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# FakeLLM replays canned replies through the LLMProvider interface so agent
# code runs end to end without API keys. Every JSON store is redirected to
# a per-test temporary directory.
# =============================================================================

from __future__ import annotations

import pytest

from agentlab.config import settings
from agentlab.services.llm import LLMResponse, StreamChunk


class FakeLLM:
    """
    Scripted LLMProvider.

    `replies` are returned by complete() in order; `stream_replies` are
    streamed word by word by stream(). Every call is recorded in `calls`.
    """

    def __init__(
        self,
        replies: list[str] | None = None,
        stream_replies: list[str] | None = None,
        model: str = "fake-model",
    ) -> None:
        self.replies = list(replies or [])
        self.stream_replies = list(stream_replies or [])
        self.model = model
        self.calls: list[dict] = []

    async def complete(self, messages, system=None, temperature=None, max_tokens=None):
        self.calls.append({
            "kind": "complete",
            "messages": [dict(m) for m in messages],
            "system": system,
        })
        if not self.replies:
            raise AssertionError("FakeLLM ran out of complete() replies")
        return LLMResponse(
            content=self.replies.pop(0),
            model=self.model,
            input_tokens=10,
            output_tokens=5,
        )

    async def stream(self, messages, system=None, temperature=None, max_tokens=None):
        self.calls.append({
            "kind": "stream",
            "messages": [dict(m) for m in messages],
            "system": system,
        })
        if not self.stream_replies:
            raise AssertionError("FakeLLM ran out of stream() replies")
        text = self.stream_replies.pop(0)
        words = text.split(" ")
        for i, word in enumerate(words):
            yield StreamChunk(delta=word if i == 0 else " " + word)
        yield StreamChunk(response=LLMResponse(
            content=text, model=self.model, input_tokens=10, output_tokens=5,
        ))


@pytest.fixture
def fake_llm():
    """The FakeLLM class, for tests to script their own replies."""
    return FakeLLM


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Point every JSON store at a fresh temporary directory."""
    monkeypatch.setattr(settings, "data_dir", str(tmp_path))
    return tmp_path
