# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for one feature area:
#   - search.py: Book chunk search and email archive search
#   - chat.py: Memory chat and human-in-the-loop email assistant
#   - orchestrate.py: Streamed multi-agent orchestrator runs
#   - deps.py: Shared dependencies and error mapping
# =============================================================================
