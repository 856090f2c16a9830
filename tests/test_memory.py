# =============================================================================
# Unit Tests — JSON Persistence, Memory Store and Memory Chat
# =============================================================================
#
# All stores write under the per-test tmp_path (see conftest.py).
# =============================================================================

from __future__ import annotations

import asyncio
import json

from pydantic import BaseModel, Field

from agentlab.agents.memory_agent import build_memory_tool, chat_with_memory
from agentlab.services.memory import (
    MemoryItem,
    MemoryStore,
    MemoryUpdate,
    format_memory,
    manage_memories,
)
from agentlab.services.persistence import JsonPersistence


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class _Counter(BaseModel):
    values: list[int] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Test: JsonPersistence
# ---------------------------------------------------------------------------


class TestJsonPersistence:
    def test_load_creates_file_with_defaults(self, tmp_path):
        path = tmp_path / "nested" / "counter.json"
        data = _run(JsonPersistence(path, _Counter).load())
        assert data.values == []
        assert json.loads(path.read_text()) == {"values": []}

    def test_save_then_load(self, tmp_path):
        db = JsonPersistence(tmp_path / "c.json", _Counter)
        _run(db.save(_Counter(values=[1, 2])))
        assert _run(db.load()).values == [1, 2]

    def test_written_with_indent(self, tmp_path):
        path = tmp_path / "c.json"
        _run(JsonPersistence(path, _Counter).save(_Counter(values=[1])))
        assert "\n  " in path.read_text()

    def test_concurrent_updates_not_lost(self, tmp_path):
        path = tmp_path / "c.json"

        async def _many():
            # Separate instances for the same file share one lock
            await asyncio.gather(*[
                JsonPersistence(path, _Counter).update(
                    lambda data, i=i: data.values.append(i)
                )
                for i in range(20)
            ])

        _run(_many())
        assert sorted(_run(JsonPersistence(path, _Counter).load()).values) == list(range(20))

    def test_no_temp_file_left_behind(self, tmp_path):
        _run(JsonPersistence(tmp_path / "c.json", _Counter).save(_Counter()))
        assert [p.name for p in tmp_path.iterdir()] == ["c.json"]


# ---------------------------------------------------------------------------
# Test: MemoryStore & manage_memories
# ---------------------------------------------------------------------------


def _seed(store: MemoryStore, *texts: str) -> list[MemoryItem]:
    items = [
        MemoryItem(id=f"m{i}", memory=text, created_at="2024-01-01T00:00:00+00:00")
        for i, text in enumerate(texts)
    ]
    _run(store.save_memories(items))
    return items


class TestMemoryStore:
    def test_default_path_under_data_dir(self, isolated_data_dir):
        store = MemoryStore()
        _seed(store, "Likes tea")
        assert (isolated_data_dir / "memories.json").exists()

    def test_save_appends(self):
        store = MemoryStore()
        _seed(store, "a")
        _run(store.save_memories([MemoryItem(id="x", memory="b", created_at="t")]))
        assert [m.memory for m in _run(store.load_memories())] == ["a", "b"]

    def test_update_refreshes_timestamp(self):
        store = MemoryStore()
        _seed(store, "Lives in Leeds")
        assert _run(store.update_memory("m0", "Lives in Manchester")) is True
        item = _run(store.load_memories())[0]
        assert item.memory == "Lives in Manchester"
        assert item.created_at != "2024-01-01T00:00:00+00:00"

    def test_update_missing_returns_false(self):
        assert _run(MemoryStore().update_memory("nope", "x")) is False

    def test_delete(self):
        store = MemoryStore()
        _seed(store, "a", "b")
        assert _run(store.delete_memory("m0")) is True
        assert _run(store.delete_memory("m0")) is False
        assert [m.id for m in _run(store.load_memories())] == ["m1"]

    def test_format_memory(self):
        item = MemoryItem(id="abc", memory="Plays guitar", created_at="2024-05-01")
        assert format_memory(item) == (
            "Memory: Plays guitar\nID: abc\nCreated At: 2024-05-01"
        )


class TestManageMemories:
    def test_applies_all_changes(self):
        store = MemoryStore()
        _seed(store, "Has a cat", "Works at Acme", "Likes jazz")

        result = _run(manage_memories(
            store,
            updates=[MemoryUpdate(id="m1", memory="Works at Globex")],
            deletions=["m0"],
            additions=["Is learning Spanish"],
        ))

        memories = {m.memory for m in _run(store.load_memories())}
        assert memories == {"Works at Globex", "Likes jazz", "Is learning Spanish"}
        assert result.success is True
        assert result.message == (
            "Updated 1 memories, deleted 1 memories, added 1 new memories."
        )

    def test_update_wins_over_deletion_of_same_id(self):
        store = MemoryStore()
        _seed(store, "Old fact")

        result = _run(manage_memories(
            store,
            updates=[MemoryUpdate(id="m0", memory="New fact")],
            deletions=["m0"],
            additions=[],
        ))

        assert [m.memory for m in _run(store.load_memories())] == ["New fact"]
        assert result.deleted == 0

    def test_empty_batch(self):
        result = _run(manage_memories(MemoryStore(), [], [], []))
        assert (result.updated, result.deleted, result.added) == (0, 0, 0)


# ---------------------------------------------------------------------------
# Test: Memory chat
# ---------------------------------------------------------------------------


class TestChatWithMemory:
    def test_tool_output_shape(self):
        tool = build_memory_tool(MemoryStore())
        output = _run(tool.execute(tool.input_model(additions=["Has two kids"])))
        assert output == {
            "success": True,
            "message": "Updated 0 memories, deleted 0 memories, added 1 new memories.",
        }

    def test_remembers_then_answers(self, fake_llm):
        store = MemoryStore()
        llm = fake_llm(replies=[
            '{"tool": "manageMemories", "input": {"additions": ["Name is Sam"]}}',
            '{"answer": "Nice to meet you, Sam!"}',
        ])

        result = _run(chat_with_memory(
            llm, [{"role": "user", "content": "Hi, I'm Sam"}], store,
        ))

        assert result.answer == "Nice to meet you, Sam!"
        assert [s.call.name for s in result.steps] == ["manageMemories"]
        assert [m.memory for m in _run(store.load_memories())] == ["Name is Sam"]

    def test_existing_memories_in_system_prompt(self, fake_llm):
        store = MemoryStore()
        _seed(store, "Prefers mornings")
        llm = fake_llm(replies=['{"answer": "Morning it is."}'])

        _run(chat_with_memory(llm, [{"role": "user", "content": "When?"}], store))

        system = llm.calls[0]["system"]
        assert "Memory: Prefers mornings" in system
        assert "ID: m0" in system
        assert "manageMemories" in system
