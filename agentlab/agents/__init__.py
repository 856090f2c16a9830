# =============================================================================
# Agents Package — Tool-Using Agents and Orchestration
# =============================================================================
#   - tool_loop.py: Bounded tool-calling loop over a JSON action protocol
#   - memory_agent.py: Chat that manages long-term memories
#   - hitl.py: Email assistant whose sends wait for user approval
#   - query_rewriter.py: Conversation → BM25 keywords + embeddings query
#   - assistant.py: Answers from retrieved emails with cited sources
#   - orchestrator.py: LangGraph plan → tasks → summarise loop
#   - subagents/: Todos, student notes and scheduler agents
# =============================================================================
