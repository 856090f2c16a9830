# =============================================================================
# Student Notes Subagent
# =============================================================================
#
# Keeps a singing teacher's notes on their students in
# <data_dir>/student_notes.json, grouped by student name. Names are matched
# case-insensitively; the first spelling used becomes the stored name.
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


class Note(BaseModel):
    id: str
    content: str
    created_at: str
    updated_at: str


class StudentNotes(BaseModel):
    name: str
    notes: list[Note] = Field(default_factory=list)


class NotesDB(BaseModel):
    # Keyed by casefolded student name
    students: dict[str, StudentNotes] = Field(default_factory=dict)


# --- Tool inputs ---


class NewNote(BaseModel):
    student_name: str
    content: str = Field(description="The note to add to the student's notes.")


class CreateNotesInput(BaseModel):
    notes: list[NewNote]


class SearchNotesInput(BaseModel):
    student_name: str | None = Field(
        default=None, description="Only return notes for this student",
    )
    query: str | None = Field(
        default=None,
        description="Only return notes containing this text (case-insensitive)",
    )


class UpdateNoteInput(BaseModel):
    id: str
    content: str


class DeleteNoteInput(BaseModel):
    id: str


def notes_db() -> JsonPersistence[NotesDB]:
    return JsonPersistence(
        Path(settings.data_dir) / "student_notes.json", NotesDB,
    )


def format_student_notes(students: list[StudentNotes]) -> str:
    blocks = []
    for student in students:
        lines = [f"## {student.name}"]
        lines.extend(f"- {note.content} (ID: {note.id})" for note in student.notes)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def search_notes(
    data: NotesDB,
    student_name: str | None = None,
    query: str | None = None,
) -> list[StudentNotes]:
    """Students (and their matching notes) that satisfy both filters."""
    results = []
    for key, student in data.students.items():
        if student_name and key != student_name.casefold():
            continue
        notes = [
            note for note in student.notes
            if not query or query.casefold() in note.content.casefold()
        ]
        if notes:
            results.append(StudentNotes(name=student.name, notes=notes))
    return results


def _find_note(data: NotesDB, note_id: str) -> tuple[StudentNotes, Note] | None:
    for student in data.students.values():
        for note in student.notes:
            if note.id == note_id:
                return student, note
    return None


def build_tools(db: JsonPersistence[NotesDB]) -> list[Tool]:
    async def create_notes(tool_input: CreateNotesInput) -> str:
        now = now_iso()
        created: list[tuple[str, Note]] = []

        def _mutate(data: NotesDB) -> None:
            for new in tool_input.notes:
                student = data.students.setdefault(
                    new.student_name.casefold(),
                    StudentNotes(name=new.student_name),
                )
                note = Note(
                    id=str(uuid.uuid4()), content=new.content,
                    created_at=now, updated_at=now,
                )
                student.notes.append(note)
                created.append((student.name, note))

        await db.update(_mutate)
        return "\n".join(
            ["Notes created successfully"]
            + [f"- {name}: {note.content} ({note.id})" for name, note in created]
        )

    async def search(tool_input: SearchNotesInput) -> str:
        data = await db.load()
        results = search_notes(data, tool_input.student_name, tool_input.query)
        if not results:
            return "No notes found"
        return format_student_notes(results)

    async def update_note(tool_input: UpdateNoteInput) -> str:
        found = False

        def _mutate(data: NotesDB) -> None:
            nonlocal found
            match = _find_note(data, tool_input.id)
            if match is None:
                return
            found = True
            _, note = match
            note.content = tool_input.content
            note.updated_at = now_iso()

        await db.update(_mutate)
        if not found:
            return f"Note with ID {tool_input.id} not found"
        return "Note updated successfully"

    async def delete_note(tool_input: DeleteNoteInput) -> str:
        found = False

        def _mutate(data: NotesDB) -> None:
            nonlocal found
            match = _find_note(data, tool_input.id)
            if match is None:
                return
            found = True
            student, note = match
            student.notes.remove(note)

        await db.update(_mutate)
        if not found:
            return f"Note with ID {tool_input.id} not found"
        return "Note deleted successfully"

    return [
        Tool("createNotes", "Add one or more notes about students", CreateNotesInput, create_notes),
        Tool("searchNotes", "Search student notes by student name and/or text", SearchNotesInput, search),
        Tool("updateNote", "Rewrite an existing note", UpdateNoteInput, update_note),
        Tool("deleteNote", "Delete an existing note", DeleteNoteInput, delete_note),
    ]


_SYSTEM_PROMPT = """You are a helpful assistant that manages student notes.

The user is the singing teacher, and you are a helpful assistant that \
manages their student notes.

You may be asked to search for information, or to add notes to the \
student's notes.

Never show the IDs to the user; they are for internal use only.

The students you have notes for are:

{students}"""


async def run_student_notes_agent(llm: LLMProvider, prompt: str) -> SubagentResult:
    db = notes_db()
    data = await db.load()
    names = "\n".join(f"- {s.name}" for s in data.students.values()) or "(none yet)"
    system = _SYSTEM_PROMPT.format(students=names)
    return await run_subagent(
        "student-notes-agent", llm, system, prompt, build_tools(db),
    )
