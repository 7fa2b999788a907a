"""Services for the itinerary concierge."""
from .llm_client import ChatBackend, OpenAIChatBackend, get_chat_backend
from .mock_llm import MockChatBackend
from .itinerary_merger import ItineraryMerger
from .suggestions import SuggestionChannel
from .tool_dispatcher import ToolCallDispatcher
from .conversation import ConversationSession, CancellationToken

__all__ = [
    "ChatBackend",
    "OpenAIChatBackend",
    "MockChatBackend",
    "get_chat_backend",
    "ItineraryMerger",
    "SuggestionChannel",
    "ToolCallDispatcher",
    "ConversationSession",
    "CancellationToken",
]
