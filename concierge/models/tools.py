"""
Tool-call models - What the assistant may ask for, and what we send back.

Tool arguments arrive as a loose JSON object. They are parsed once, at the
dispatcher boundary, into one of the typed call variants below.
"""
from pydantic import BaseModel, Field
from typing import Any, Literal, Optional, Union

from .itinerary import DayPlan


class ToolInvocationRequest(BaseModel):
    """A tool call issued by the assistant."""
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolInvocationResult(BaseModel):
    """Our answer to one tool call, paired by id."""
    id: str
    name: str
    response: dict[str, Any] = Field(default_factory=dict)


class AssistantTurn(BaseModel):
    """One backend response: text, a batch of tool calls, or both."""
    text: str = ""
    tool_calls: list[ToolInvocationRequest] = Field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


class ItineraryPatch(BaseModel):
    """A partial itinerary as sent by updateItinerary. Absent fields are None."""
    title: Optional[str] = None
    destination: Optional[str] = None
    dates: Optional[str] = None
    travel_type: Optional[str] = None
    adults: Optional[int] = None
    children: Optional[int] = None
    infants: Optional[int] = None
    days: Optional[list[DayPlan]] = None
    total_estimated_cost: Optional[str] = None


class UpdateItineraryCall(BaseModel):
    kind: Literal["updateItinerary"] = "updateItinerary"
    id: str
    patch: ItineraryPatch


class SearchFlightsCall(BaseModel):
    kind: Literal["searchFlights"] = "searchFlights"
    id: str
    origin: str = ""
    destination: str = ""
    date: str = ""


class SuggestNextStepsCall(BaseModel):
    kind: Literal["suggestNextSteps"] = "suggestNextSteps"
    id: str
    suggestions: list[str] = Field(default_factory=list)


class UnrecognizedCall(BaseModel):
    kind: Literal["unrecognized"] = "unrecognized"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


ToolCall = Union[UpdateItineraryCall, SearchFlightsCall, SuggestNextStepsCall, UnrecognizedCall]


# JSON Schema declarations sent to the backend (OpenAI function format)
_ACTIVITY_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "description": "Unique ID for the activity (if updating existing)"},
        "time": {"type": "string", "description": "Start time e.g. 10:00 AM"},
        "endTime": {"type": "string", "description": "End time e.g. 12:00 PM"},
        "title": {"type": "string", "description": "Main title e.g. 'Flight to NYC'"},
        "subTitle": {"type": "string", "description": "Subtitle e.g. 'Flight UA123' or 'Italian Cuisine'"},
        "description": {"type": "string", "description": "Details about the activity"},
        "location": {"type": "string", "description": "Address or place name"},
        "category": {
            "type": "string",
            "enum": ["flight", "accommodation", "dining", "activity", "transit", "logistics"],
        },
        "bookingStatus": {"type": "string", "enum": ["booked", "pending", "suggested"]},
        "notes": {"type": "string", "description": "Important notes, reservation numbers, etc."},
        "cost": {"type": "string", "description": "Estimated cost e.g. '$150', 'Free', '~$50/person'"},
        "imageQuery": {"type": "string", "description": "Short search term for a photo, e.g. 'Eiffel Tower'"},
        "isLocked": {
            "type": "boolean",
            "description": "If true, this activity has been saved/locked by the user. Do not change it.",
        },
    },
}

UPDATE_ITINERARY_SCHEMA = {
    "name": "updateItinerary",
    "description": (
        "Update the structured travel itinerary. Use this to visualize flights, hotels, "
        "dining, and activities. Always send the complete list of days."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "A catchy title for the trip"},
            "destination": {"type": "string", "description": "The main location(s) of the trip"},
            "dates": {"type": "string", "description": "Date range of the trip"},
            "travelType": {
                "type": "string",
                "enum": ["Leisure", "Work", "Honeymoon", "Adventure", "Family"],
            },
            "adults": {"type": "number", "description": "Number of adults"},
            "children": {"type": "number", "description": "Number of children"},
            "infants": {"type": "number", "description": "Number of infants"},
            "days": {
                "type": "array",
                "description": "List of daily plans",
                "items": {
                    "type": "object",
                    "properties": {
                        "date": {"type": "string", "description": "Day label or date e.g. 'Day 1' or '2024-05-12'"},
                        "dayTitle": {"type": "string", "description": "Theme for the day"},
                        "activities": {"type": "array", "items": _ACTIVITY_SCHEMA},
                    },
                },
            },
            "totalEstimatedCost": {"type": "string", "description": "Total estimated trip cost (e.g. '$3,500')"},
        },
        "required": ["destination", "days"],
    },
}

SEARCH_FLIGHTS_SCHEMA = {
    "name": "searchFlights",
    "description": "Search for flight options between two cities on a date.",
    "parameters": {
        "type": "object",
        "properties": {
            "origin": {"type": "string"},
            "destination": {"type": "string"},
            "date": {"type": "string"},
        },
        "required": ["origin", "destination", "date"],
    },
}

SUGGEST_NEXT_STEPS_SCHEMA = {
    "name": "suggestNextSteps",
    "description": "Provide a list of suggested follow-up actions or questions for the user to choose from.",
    "parameters": {
        "type": "object",
        "properties": {
            "suggestions": {
                "type": "array",
                "description": "Short, actionable suggestions, e.g. 'Swap the hotel', 'Find cheaper flights'",
                "items": {"type": "string"},
            },
        },
        "required": ["suggestions"],
    },
}

TOOL_SCHEMAS = [UPDATE_ITINERARY_SCHEMA, SEARCH_FLIGHTS_SCHEMA, SUGGEST_NEXT_STEPS_SCHEMA]
