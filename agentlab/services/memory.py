# =============================================================================
# Long-Term Memory Store
# =============================================================================
#
# Persists facts about the user ("lives in Manchester", "prefers morning
# lessons") across conversations. The chat agent decides WHAT to remember
# through the manageMemories tool; this module only stores and applies the
# changes.
#
# DESIGN DECISION: One batched operation for all changes.
# manage_memories() takes updates, deletions and additions together, so a
# model that learns a contradicting fact can update one memory and drop
# another in a single tool call.
#
# DESIGN DECISION: Updates win over deletions.
# If the model lists the same id under both, the deletion is ignored and
# the memory is updated. Losing a fact the model just rewrote would be the
# worse failure.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from agentlab.config import settings
from agentlab.services.persistence import JsonPersistence

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class MemoryItem(BaseModel):
    id: str
    memory: str
    created_at: str


class MemoryDB(BaseModel):
    memories: list[MemoryItem] = Field(default_factory=list)


class MemoryUpdate(BaseModel):
    id: str = Field(description="The ID of the existing memory to update")
    memory: str = Field(description="The updated memory content")


@dataclass
class ManageMemoriesResult:
    success: bool
    message: str
    updated: int
    deleted: int
    added: int


def _now() -> str:
    return datetime.now(UTC).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class MemoryStore:
    """Memories persisted to a JSON file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._db = JsonPersistence(
            path or Path(settings.data_dir) / "memories.json", MemoryDB,
        )

    async def load_memories(self) -> list[MemoryItem]:
        return (await self._db.load()).memories

    async def save_memories(self, items: Sequence[MemoryItem]) -> None:
        """Append new memories."""
        if not items:
            return
        await self._db.update(lambda db: db.memories.extend(items))

    async def update_memory(self, memory_id: str, memory: str) -> bool:
        """Rewrite a memory's content and refresh its timestamp."""
        found = False

        def _mutate(db: MemoryDB) -> None:
            nonlocal found
            for item in db.memories:
                if item.id == memory_id:
                    item.memory = memory
                    item.created_at = _now()
                    found = True

        await self._db.update(_mutate)
        if not found:
            logger.warning("Memory %s not found for update", memory_id)
        return found

    async def delete_memory(self, memory_id: str) -> bool:
        removed = False

        def _mutate(db: MemoryDB) -> None:
            nonlocal removed
            before = len(db.memories)
            db.memories = [m for m in db.memories if m.id != memory_id]
            removed = len(db.memories) < before

        await self._db.update(_mutate)
        return removed


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def format_memory(item: MemoryItem) -> str:
    return "\n".join([
        f"Memory: {item.memory}",
        f"ID: {item.id}",
        f"Created At: {item.created_at}",
    ])


async def manage_memories(
    store: MemoryStore,
    updates: Sequence[MemoryUpdate],
    deletions: Sequence[str],
    additions: Sequence[str],
) -> ManageMemoriesResult:
    """
    Apply a batch of memory changes.

    Deletions naming an id that is also being updated are dropped.
    """
    updated_ids = {u.id for u in updates}
    filtered_deletions = [d for d in deletions if d not in updated_ids]

    logger.info(
        "Managing memories: %d updates, %d deletions (%d after filtering), "
        "%d additions",
        len(updates), len(deletions), len(filtered_deletions), len(additions),
    )

    for update in updates:
        await store.update_memory(update.id, update.memory)

    for memory_id in filtered_deletions:
        await store.delete_memory(memory_id)

    await store.save_memories([
        MemoryItem(id=new_id(), memory=addition, created_at=_now())
        for addition in additions
    ])

    return ManageMemoriesResult(
        success=True,
        message=(
            f"Updated {len(updates)} memories, deleted "
            f"{len(filtered_deletions)} memories, added "
            f"{len(additions)} new memories."
        ),
        updated=len(updates),
        deleted=len(filtered_deletions),
        added=len(additions),
    )
