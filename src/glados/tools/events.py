"""Team calendar tools."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from glados.teamdata.storage import TeamDataStore
from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)


class RsvpFilter(StrEnum):
    ALL = "all"
    GOING = "going"
    MAYBE = "maybe"
    NOT_GOING = "not_going"


class EventsListInput(BaseModel):
    type: str | None = Field(default=None, description="Only events of this type")
    days_ahead: int = Field(default=30, ge=1, le=365, description="How far ahead to look")
    limit: int = Field(default=10, ge=1, le=50)


class EventsGetInput(BaseModel):
    event_id: str = Field(min_length=1, description="ID of the event")


class EventsAttendeesInput(BaseModel):
    event_id: str = Field(min_length=1, description="ID of the event")
    status: RsvpFilter = Field(default=RsvpFilter.ALL, description="Filter by RSVP status")


class EventsSearchInput(BaseModel):
    query: str = Field(min_length=1, description="Text to search in titles and descriptions")


class EventsExecutor(ToolExecutor):
    namespace = ToolNamespace.EVENTS

    def __init__(self, data: TeamDataStore) -> None:
        self._data = data

    @property
    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="events_list",
                description="List upcoming team events.",
                namespace=self.namespace,
                input_model=EventsListInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="events_get",
                description="Get details for one event.",
                namespace=self.namespace,
                input_model=EventsGetInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="events_attendees",
                description="List RSVPs for an event.",
                namespace=self.namespace,
                input_model=EventsAttendeesInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="events_search",
                description="Search past and upcoming events.",
                namespace=self.namespace,
                input_model=EventsSearchInput,
                concurrent_safe=True,
            ),
        ]

    async def execute(self, name: str, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        match params:
            case EventsListInput(type=event_type, days_ahead=days_ahead, limit=limit):
                events = await self._data.list_upcoming_events(
                    context.team_id,
                    until=datetime.now(UTC) + timedelta(days=days_ahead),
                    event_type=event_type,
                    limit=limit,
                )
                return {"count": len(events), "events": [e.to_dict() for e in events]}
            case EventsGetInput(event_id=event_id):
                event = await self._data.get_event(context.team_id, event_id)
                if event is None:
                    raise ToolExecutionError("Event not found")
                return {"event": event.to_dict()}
            case EventsAttendeesInput(event_id=event_id, status=status):
                attendees = await self._data.list_event_attendees(
                    context.team_id,
                    event_id,
                    None if status == RsvpFilter.ALL else status.value,
                )
                counts: dict[str, int] = {}
                for attendee in attendees:
                    counts[attendee.status] = counts.get(attendee.status, 0) + 1
                return {
                    "count": len(attendees),
                    "by_status": counts,
                    "attendees": [a.to_dict() for a in attendees],
                }
            case EventsSearchInput(query=query):
                events = await self._data.search_events(context.team_id, query)
                return {"count": len(events), "events": [e.to_dict() for e in events]}
        raise ToolExecutionError(f"Unknown events tool: {name}")
