# =============================================================================
# Subagents — Specialised Tool-Using Agents for the Orchestrator
# =============================================================================
# Each subagent owns one JSON store and a handful of tools over it:
#   - todos_agent.py:          createTodos, updateTodo, deleteTodo
#   - student_notes_agent.py:  createNotes, searchNotes, updateNote, deleteNote
#   - scheduler_agent.py:      createEvents, updateEvent, deleteEvent, listEvents
#
# Subagents receive a single task prompt written by the orchestrator (never
# the user's conversation) and return a transcript of what they did.
# =============================================================================

from agentlab.agents.subagents.base import Subagent, SubagentResult
from agentlab.agents.subagents.scheduler_agent import run_scheduler_agent
from agentlab.agents.subagents.student_notes_agent import run_student_notes_agent
from agentlab.agents.subagents.todos_agent import run_todos_agent

SUBAGENTS: dict[str, Subagent] = {
    agent.name: agent
    for agent in [
        Subagent(
            name="todos-agent",
            description=(
                "Manages the user's todo list: create todos, mark them "
                "complete, rename or delete them."
            ),
            run=run_todos_agent,
        ),
        Subagent(
            name="student-notes-agent",
            description=(
                "Manages the singing teacher's notes on their students: "
                "add notes, search notes, update or delete notes."
            ),
            run=run_student_notes_agent,
        ),
        Subagent(
            name="scheduler-agent",
            description=(
                "Manages the calendar: list events in a date range, create, "
                "move or cancel events (e.g. lessons)."
            ),
            run=run_scheduler_agent,
        ),
    ]
}

__all__ = ["SUBAGENTS", "Subagent", "SubagentResult"]
