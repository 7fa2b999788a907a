"""
Session models - Chat history entries, turn states and the session store.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional, TYPE_CHECKING
from datetime import datetime
from enum import Enum
import uuid

from .itinerary import Activity

if TYPE_CHECKING:
    from ..services.conversation import ConversationSession


class TurnState(str, Enum):
    """Where the current turn is in the request/tool-call loop."""
    IDLE = "idle"  # No turn has run yet
    AWAITING_ASSISTANT = "awaiting_assistant"  # Waiting on a backend round-trip
    DISPATCHING_TOOLS = "dispatching_tools"  # Resolving a tool-call batch
    DONE = "done"  # Final text produced
    FAILED = "failed"  # Turn ended without a usable reply


class Message(BaseModel):
    """A single message in the visible conversation. Never edited once appended."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    text: str
    suggestions: Optional[list[str]] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class AssistantReply(BaseModel):
    """What send_turn hands back to the caller."""
    text: str
    suggestions: list[str] = Field(default_factory=list)
    pending_choices: list[Activity] = Field(default_factory=list)
    rounds: int = 0
    failed: bool = False


# In-memory session storage
class SessionStore:
    """Simple in-memory session store."""

    def __init__(self):
        self._sessions: dict[str, "ConversationSession"] = {}

    def add(self, session: "ConversationSession") -> "ConversationSession":
        """Register a session under its id."""
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional["ConversationSession"]:
        """Get a session by ID."""
        return self._sessions.get(session_id)

    def delete(self, session_id: str):
        """Delete a session."""
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


# Global session store
session_store = SessionStore()
