# =============================================================================
# Agentic RAG Lab
# =============================================================================
# Retrieval and agent patterns behind one FastAPI service: hybrid search
# (BM25 + embeddings + RRF), tool-using chats with long-term memory and
# human approval, and a LangGraph orchestrator that delegates to subagents.
#
# Package structure:
#   agentlab/
#   ├── api/          → FastAPI routers (search, chat, orchestrate)
#   ├── agents/       → Tool loop, memory/HITL chats, query rewriter,
#   │                    orchestrator and its subagents
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → LLM providers, retrieval, chunking, JSON stores,
#                        evaluation
# =============================================================================
