"""Tests for session models and the session store."""
import pytest
from pydantic import ValidationError

from concierge.models.itinerary import Itinerary, TravelType
from concierge.models.session import Message, SessionStore, TurnState, session_store
from concierge.services.conversation import ConversationSession
from concierge.services.mock_llm import MockChatBackend


class TestSession:
    """Test session state."""

    def test_session_creation(self):
        """A new session starts idle with an empty itinerary shell."""
        session = ConversationSession(backend=MockChatBackend())

        assert session.session_id is not None
        assert session.state == TurnState.IDLE
        assert session.busy == False
        assert len(session.messages) == 0
        assert session.itinerary.title == "New Trip"
        assert session.itinerary.travel_type == TravelType.UNSPECIFIED
        assert session.itinerary.travelers.adults == 1
        assert session.itinerary.days == []

    def test_sessions_do_not_share_state(self):
        """Each session owns its own itinerary and history."""
        first = ConversationSession(backend=MockChatBackend())
        second = ConversationSession(backend=MockChatBackend())

        first.itinerary.destination = "Paris"

        assert second.itinerary.destination == ""
        assert first.session_id != second.session_id
        assert first.dispatcher.itinerary is first.itinerary

    def test_message_is_immutable(self):
        """Messages cannot be edited once created."""
        msg = Message(role="user", text="Hello")

        with pytest.raises(ValidationError):
            msg.text = "Edited"

    def test_message_role_is_checked(self):
        """Only user and assistant messages exist."""
        with pytest.raises(ValidationError):
            Message(role="system", text="Hi")

    def test_itinerary_accepts_wire_names(self):
        """The assistant's camelCase keys map onto the model fields."""
        itinerary = Itinerary.model_validate({
            "title": "Trip",
            "travelType": "Work",
            "totalEstimatedCost": "$1",
            "days": [{"date": "Day 1", "dayTitle": "Arrival", "activities": [{"title": "Taxi", "isLocked": True}]}],
        })

        assert itinerary.travel_type == TravelType.WORK
        assert itinerary.days[0].day_title == "Arrival"
        assert itinerary.days[0].activities[0].is_protected


class TestSessionStore:
    """Test session store operations."""

    def test_add_and_get(self):
        """Test registering and retrieving sessions."""
        store = SessionStore()
        session = store.add(ConversationSession(backend=MockChatBackend()))

        retrieved = store.get(session.session_id)

        assert retrieved is session
        assert len(store) == 1

    def test_get_nonexistent(self):
        """Test getting non-existent session returns None."""
        result = session_store.get("nonexistent-id")
        assert result is None

    def test_delete(self):
        """Test deleting a session."""
        store = SessionStore()
        session = store.add(ConversationSession(backend=MockChatBackend()))

        store.delete(session.session_id)
        store.delete(session.session_id)

        assert store.get(session.session_id) is None
