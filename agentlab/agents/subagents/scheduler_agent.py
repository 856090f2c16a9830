# =============================================================================
# Scheduler Subagent
# =============================================================================
#
# Manages calendar events in <data_dir>/schedule.json. Unlike the todos
# agent, events are NOT listed in the system prompt: a calendar grows
# without bound, so the model looks events up with listEvents(start, end)
# before updating or deleting them.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from agentlab.agents.subagents.base import SubagentResult, now_iso, run_subagent
from agentlab.agents.tool_loop import Tool
from agentlab.config import settings
from agentlab.services.llm import LLMProvider
from agentlab.services.persistence import JsonPersistence

logger = logging.getLogger(__name__)


class CalendarEvent(BaseModel):
    id: str
    title: str
    description: str | None = None
    start: str
    end: str
    created_at: str
    updated_at: str


class CalendarDB(BaseModel):
    events: dict[str, CalendarEvent] = Field(default_factory=dict)


# --- Tool inputs ---


class NewEvent(BaseModel):
    title: str
    description: str | None = None
    start: str = Field(description="The start time of the event in ISO 8601 format")
    end: str = Field(description="The end time of the event in ISO 8601 format")


class CreateEventsInput(BaseModel):
    events: list[NewEvent]


class UpdateEventInput(BaseModel):
    id: str
    title: str | None = Field(
        default=None,
        description="The title of the event - only include if you want to change it",
    )
    description: str | None = Field(
        default=None,
        description=(
            "The description of the event - only include if you want to "
            "change it"
        ),
    )
    start: str | None = Field(
        default=None,
        description="The start time of the event - only include if you want to change it",
    )
    end: str | None = Field(
        default=None,
        description="The end time of the event - only include if you want to change it",
    )


class DeleteEventInput(BaseModel):
    id: str


class ListEventsInput(BaseModel):
    start: str | None = Field(
        default=None,
        description=(
            "The start time of the range in ISO 8601 format - if not "
            "provided, the start of the calendar will be used"
        ),
    )
    end: str | None = Field(
        default=None,
        description=(
            "The end time of the range in ISO 8601 format - if not "
            "provided, the end of the calendar will be used"
        ),
    )


def calendar_db() -> JsonPersistence[CalendarDB]:
    return JsonPersistence(Path(settings.data_dir) / "schedule.json", CalendarDB)


def format_events(events: list[CalendarEvent]) -> str:
    return "\n\n".join(
        "\n".join([
            f"## {event.title}",
            f"ID: {event.id}",
            f"Start: {event.start}",
            f"End: {event.end}",
            f"Created at: {event.created_at}",
            f"Updated at: {event.updated_at}",
            "<description>",
            event.description or "",
            "</description>",
        ])
        for event in events
    )


def _timestamp(value: str) -> float:
    """POSIX timestamp of an ISO 8601 string; naive times are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def events_in_range(
    events: list[CalendarEvent],
    start: str | None = None,
    end: str | None = None,
) -> list[CalendarEvent]:
    """
    Events whose start time falls in [start, end], sorted by start.

    Stored events with an unparseable start are left out.

    Raises:
        ValueError: If `start` or `end` is not ISO 8601.
    """
    range_start = _timestamp(start) if start else float("-inf")
    range_end = _timestamp(end) if end else float("inf")

    selected: list[tuple[float, CalendarEvent]] = []
    for event in events:
        try:
            event_start = _timestamp(event.start)
        except ValueError:
            logger.warning(
                "Skipping event %s with invalid start %r", event.id, event.start,
            )
            continue
        if range_start <= event_start <= range_end:
            selected.append((event_start, event))
    selected.sort(key=lambda pair: pair[0])
    return [event for _, event in selected]


def build_tools(db: JsonPersistence[CalendarDB]) -> list[Tool]:
    async def create_events(tool_input: CreateEventsInput) -> str:
        now = now_iso()
        events = [
            CalendarEvent(
                id=str(uuid.uuid4()), created_at=now, updated_at=now,
                **new.model_dump(),
            )
            for new in tool_input.events
        ]

        def _mutate(data: CalendarDB) -> None:
            for event in events:
                data.events[event.id] = event

        await db.update(_mutate)
        return "\n".join(
            ["Events created successfully"]
            + [f"- {event.title} ({event.id})" for event in events]
        )

    async def update_event(tool_input: UpdateEventInput) -> str:
        found = False

        def _mutate(data: CalendarDB) -> None:
            nonlocal found
            event = data.events.get(tool_input.id)
            if event is None:
                return
            found = True
            changes = tool_input.model_dump(exclude={"id"}, exclude_none=True)
            data.events[event.id] = event.model_copy(
                update={**changes, "updated_at": now_iso()},
            )

        await db.update(_mutate)
        if not found:
            return f"Event with ID {tool_input.id} not found"
        return "Event updated successfully"

    async def delete_event(tool_input: DeleteEventInput) -> str:
        found = False

        def _mutate(data: CalendarDB) -> None:
            nonlocal found
            found = data.events.pop(tool_input.id, None) is not None

        await db.update(_mutate)
        if not found:
            return f"Event with ID {tool_input.id} not found"
        return "Event deleted successfully"

    async def list_events(tool_input: ListEventsInput) -> str:
        data = await db.load()
        try:
            events = events_in_range(
                list(data.events.values()), tool_input.start, tool_input.end,
            )
        except ValueError as e:
            logger.warning("listEvents got an invalid date: %s", e)
            return f"Invalid date: {e}"
        if not events:
            return "No events found in the specified range"
        return format_events(events)

    return [
        Tool("createEvents", "Create one or more events in the calendar", CreateEventsInput, create_events),
        Tool("updateEvent", "Update an existing event in the calendar", UpdateEventInput, update_event),
        Tool("deleteEvent", "Delete an existing event in the calendar", DeleteEventInput, delete_event),
        Tool("listEvents", "List events in the calendar between a specified range", ListEventsInput, list_events),
    ]


_SYSTEM_PROMPT = """You are a helpful assistant that manages a calendar.

The current date and time is {now}.

You have access to the following tools:

- createEvents: Create one or more events in the calendar
- updateEvent: Update an existing event in the calendar
- deleteEvent: Delete an existing event in the calendar
- listEvents: List events in the calendar between a specified range

When you are asked to create an event, ensure that you check the day's \
events first to avoid conflicts.

You will be given a prompt, and you will need to use the tools to manage \
the calendar.

If you need to find an ID for a lesson to update or delete it, use the \
listEvents tool. This will return a list of events in the calendar, and you \
can use the ID of the event to update or delete it."""


async def run_scheduler_agent(llm: LLMProvider, prompt: str) -> SubagentResult:
    system = _SYSTEM_PROMPT.format(now=now_iso())
    return await run_subagent(
        "scheduler-agent", llm, system, prompt, build_tools(calendar_db()),
    )
