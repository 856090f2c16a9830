# =============================================================================
# Todos Subagent
# =============================================================================
#
# Manages a todo list stored in <data_dir>/todos.json. Outstanding todos are
# listed in the system prompt so the model can update or delete them by id
# without a separate lookup tool.
# =============================================================================

from __future__ import annotations

import uuid
from pathlib import Path

from pydantic import BaseModel, Field

from agentlab.agents.subagents.base import SubagentResult, now_iso, run_subagent
from agentlab.agents.tool_loop import Tool
from agentlab.config import settings
from agentlab.services.llm import LLMProvider
from agentlab.services.persistence import JsonPersistence


class Todo(BaseModel):
    id: str
    title: str
    completed: bool = False
    created_at: str
    updated_at: str


class TodosDB(BaseModel):
    todos: dict[str, Todo] = Field(default_factory=dict)


# --- Tool inputs ---


class NewTodo(BaseModel):
    title: str


class CreateTodosInput(BaseModel):
    todos: list[NewTodo]


class UpdateTodoInput(BaseModel):
    id: str
    title: str | None = Field(
        default=None,
        description="The title of the todo - only include if you want to change it",
    )
    completed: bool | None = Field(
        default=None,
        description=(
            "Whether the todo is completed - only include if you want to "
            "change it"
        ),
    )


class DeleteTodoInput(BaseModel):
    id: str


def todos_db() -> JsonPersistence[TodosDB]:
    return JsonPersistence(Path(settings.data_dir) / "todos.json", TodosDB)


def format_todos(todos: list[Todo]) -> str:
    return "\n\n".join(
        "\n".join([
            f"## {todo.title}",
            f"ID: {todo.id}",
            f"Completed: {str(todo.completed).lower()}",
            f"Created at: {todo.created_at}",
            f"Updated at: {todo.updated_at}",
        ])
        for todo in todos
    )


def build_tools(db: JsonPersistence[TodosDB]) -> list[Tool]:
    async def create_todos(tool_input: CreateTodosInput) -> str:
        now = now_iso()
        todos = [
            Todo(id=str(uuid.uuid4()), title=t.title, created_at=now, updated_at=now)
            for t in tool_input.todos
        ]

        def _mutate(data: TodosDB) -> None:
            for todo in todos:
                data.todos[todo.id] = todo

        await db.update(_mutate)
        return "\n".join(
            ["Todos created successfully"]
            + [f"- {todo.title} ({todo.id})" for todo in todos]
        )

    async def update_todo(tool_input: UpdateTodoInput) -> str:
        found = False

        def _mutate(data: TodosDB) -> None:
            nonlocal found
            todo = data.todos.get(tool_input.id)
            if todo is None:
                return
            found = True
            if tool_input.title is not None:
                todo.title = tool_input.title
            if tool_input.completed is not None:
                todo.completed = tool_input.completed
            todo.updated_at = now_iso()

        await db.update(_mutate)
        if not found:
            return f"Todo with ID {tool_input.id} not found"
        return "Todo updated successfully"

    async def delete_todo(tool_input: DeleteTodoInput) -> str:
        found = False

        def _mutate(data: TodosDB) -> None:
            nonlocal found
            found = data.todos.pop(tool_input.id, None) is not None

        await db.update(_mutate)
        if not found:
            return f"Todo with ID {tool_input.id} not found"
        return "Todo deleted successfully"

    return [
        Tool("createTodos", "Create one or more todos", CreateTodosInput, create_todos),
        Tool("updateTodo", "Update an existing todo", UpdateTodoInput, update_todo),
        Tool("deleteTodo", "Delete an existing todo", DeleteTodoInput, delete_todo),
    ]


_SYSTEM_PROMPT = """You are a helpful assistant that manages a list of todos.

You have access to the following tools:

- createTodos: Create one or more todos
- updateTodo: Update an existing todo
- deleteTodo: Delete an existing todo

You will be given a prompt, and you will need to use the tools to manage the todos.

Never show the IDs to the user; they are for internal use only.

The current date and time is {now}.

The current outstanding todos are:

{todos}"""


async def run_todos_agent(llm: LLMProvider, prompt: str) -> SubagentResult:
    db = todos_db()
    data = await db.load()
    outstanding = [t for t in data.todos.values() if not t.completed]
    system = _SYSTEM_PROMPT.format(now=now_iso(), todos=format_todos(outstanding))
    return await run_subagent("todos-agent", llm, system, prompt, build_tools(db))
