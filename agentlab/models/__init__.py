# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API. Structured LLM output schemas live
# next to the agents that use them.
# =============================================================================
