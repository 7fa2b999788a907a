"""Data models for the itinerary concierge."""
from .itinerary import (
    Itinerary,
    DayPlan,
    Activity,
    ActivityCategory,
    BookingStatus,
    TravelType,
    TravelerInfo,
)
from .profile import UserProfile, LoyaltyCard, TripContext, TripLeg, TripNeeds
from .session import Message, TurnState, AssistantReply, SessionStore
from .tools import (
    ToolInvocationRequest,
    ToolInvocationResult,
    AssistantTurn,
    ItineraryPatch,
    ToolCall,
    TOOL_SCHEMAS,
)

__all__ = [
    "Itinerary",
    "DayPlan",
    "Activity",
    "ActivityCategory",
    "BookingStatus",
    "TravelType",
    "TravelerInfo",
    "UserProfile",
    "LoyaltyCard",
    "TripContext",
    "TripLeg",
    "TripNeeds",
    "Message",
    "TurnState",
    "AssistantReply",
    "SessionStore",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "AssistantTurn",
    "ItineraryPatch",
    "ToolCall",
    "TOOL_SCHEMAS",
]
