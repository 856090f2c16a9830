# =============================================================================
# Orchestrate API — Streamed Multi-Agent Runs
# =============================================================================
#
#   POST /orchestrate — plan, delegate to subagents, summarise; every
#                       orchestrator event is streamed as one JSON line
#
# Response body (application/x-ndjson), one object per line:
#   {"type": "reasoning-delta", "id": ..., "data": {"delta": ...}}
#   {"type": "task", "id": ..., "data": {"id", "subagent", "task", "output"}}
#   {"type": "text-delta", "id": ..., "data": {"delta": ...}}
#   {"type": "done", "data": {"answer", "steps", "estimated_cost_usd"}}
#     or
#   {"type": "error", "data": {"detail": ...}}
#
# DESIGN DECISION: Errors after the first byte are streamed, not raised.
# Once the 200 status line is sent the status code cannot change, so a
# failure mid-run ends the stream with an "error" line instead.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic_core import to_jsonable_python

from agentlab.agents.orchestrator import (
    OrchestratorEvent,
    OrchestratorResult,
    run_orchestrator,
)
from agentlab.api.deps import get_llm
from agentlab.models.requests import OrchestrateRequest
from agentlab.services.llm import LLMProvider

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Orchestrator"])

_DONE = object()


def _line(payload: dict) -> str:
    return json.dumps(to_jsonable_python(payload)) + "\n"


async def _event_stream(
    request: OrchestrateRequest,
    llm: LLMProvider,
) -> AsyncIterator[str]:
    queue: asyncio.Queue = asyncio.Queue()

    async def on_event(event: OrchestratorEvent) -> None:
        await queue.put(event)

    async def run() -> OrchestratorResult:
        try:
            return await run_orchestrator(
                request.messages,
                on_event=on_event,
                llm=llm,
                max_steps=request.max_steps,
            )
        finally:
            await queue.put(_DONE)

    task = asyncio.create_task(run())
    try:
        while True:
            item = await queue.get()
            if item is _DONE:
                break
            yield _line({"type": item.type, "id": item.id, "data": item.data})

        try:
            result = await task
        except Exception as e:
            logger.exception("Orchestrator run failed: %s", e)
            yield _line({"type": "error", "data": {"detail": str(e)}})
            return

        yield _line({
            "type": "done",
            "data": {
                "answer": result.answer,
                "steps": result.steps,
                "estimated_cost_usd": result.estimated_cost_usd,
            },
        })
    finally:
        # Client disconnected mid-stream
        if not task.done():
            task.cancel()


@router.post(
    "/orchestrate",
    summary="Run the multi-agent orchestrator",
    description=(
        "Plans the request, delegates tasks to the todos, student notes "
        "and scheduler subagents, and streams progress as NDJSON."
    ),
    response_class=StreamingResponse,
)
async def orchestrate_endpoint(
    request: OrchestrateRequest,
    llm: LLMProvider = Depends(get_llm),
) -> StreamingResponse:
    logger.info(
        "Orchestrate request: %d message(s), max_steps=%s",
        len(request.messages), request.max_steps,
    )
    return StreamingResponse(
        _event_stream(request, llm), media_type="application/x-ndjson",
    )
