# =============================================================================
# JSON Persistence Layer
# =============================================================================
#
# Memories, todos, student notes, calendar events and the email outbox are
# each stored as one JSON document on disk. JsonPersistence wraps one such
# file with a Pydantic model describing its shape:
#
#   load()            — read (creating the file from defaults if missing)
#   save(data)        — overwrite
#   update(mutator)   — load → mutate in place → save, atomically w.r.t.
#                       other coroutines using the same file
#
# DESIGN DECISION: One asyncio.Lock per resolved file path.
# The orchestrator runs subagents in parallel; two tasks for the same agent
# (e.g. two todos-agent tasks) would otherwise interleave read-modify-write
# cycles and lose updates. Locks are shared by path, so separately
# constructed JsonPersistence objects for the same file still serialise.
#
# DESIGN DECISION: Write to a temp file then replace.
# A crash mid-write leaves the previous version intact instead of a
# truncated JSON file.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_locks: dict[Path, asyncio.Lock] = {}


def _lock_for(path: Path) -> asyncio.Lock:
    lock = _locks.get(path)
    if lock is None:
        lock = _locks[path] = asyncio.Lock()
    return lock


class JsonPersistence(Generic[M]):
    """A JSON file holding one Pydantic model instance."""

    def __init__(self, path: str | Path, model: type[M]) -> None:
        self.path = Path(path).resolve()
        self.model = model

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            logger.info("Creating %s with default contents", self.path)
            self._write(self.model())

    def _read(self) -> M:
        self._ensure_exists()
        return self.model.model_validate_json(
            self.path.read_text(encoding="utf-8")
        )

    def _write(self, data: M) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(data.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def load(self) -> M:
        async with _lock_for(self.path):
            return self._read()

    async def save(self, data: M) -> None:
        async with _lock_for(self.path):
            self._ensure_exists()
            self._write(data)

    async def update(self, mutator: Callable[[M], None]) -> M:
        """Apply `mutator` to the stored data and persist the result."""
        async with _lock_for(self.path):
            data = self._read()
            mutator(data)
            self._write(data)
            return data
