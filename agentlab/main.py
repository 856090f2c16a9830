# =============================================================================
# FastAPI Application Entry Point
# =============================================================================
#
# Run with:
#   uvicorn agentlab.main:app --reload
#
# Routers:
#   /health                     — liveness
#   /chunks, /search/emails     — hybrid retrieval (api/search.py)
#   /chat/memory, /chat/hitl    — tool-using chats (api/chat.py)
#   /orchestrate                — streamed multi-agent runs (api/orchestrate.py)
# =============================================================================

import logging

from fastapi import FastAPI

from agentlab.api import chat, orchestrate, search
from agentlab.config import settings
from agentlab.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# httpx logs every LLM/embedding request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Hybrid retrieval, tool-using agents, human-in-the-loop approval "
        "and a multi-agent orchestrator."
    ),
)

app.include_router(search.router)
app.include_router(chat.router)
app.include_router(orchestrate.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(
        version=settings.app_version, service=settings.app_name,
    )


logger.info("%s %s ready", settings.app_name, settings.app_version)
