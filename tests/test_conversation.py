"""Tests for the conversation session loop."""
import asyncio
import logging

import pytest
from payloads import activity_payload, day_payload, tool_turn

from concierge.errors import (
    EmptyMessageError,
    InitializationError,
    ToolLoopExceededError,
    TransportError,
    TurnCancelledError,
    TurnInProgressError,
)
from concierge.models.itinerary import Activity, Itinerary
from concierge.models.profile import LoyaltyCard, TripContext, UserProfile
from concierge.models.session import TurnState
from concierge.models.tools import TOOL_SCHEMAS, AssistantTurn
from concierge.services.conversation import (
    EMPTY_REPLY,
    FALLBACK_REPLY,
    CancellationToken,
    ConversationSession,
)
from concierge.services.mock_llm import MockChatBackend


PARIS_UPDATE = {
    "title": "Paris for Two",
    "destination": "Paris",
    "adults": 2,
    "days": [day_payload("Day 1", [activity_payload("Louvre Museum")])],
    "totalEstimatedCost": "$800",
}


async def _session(script=None, **kwargs) -> ConversationSession:
    session = ConversationSession(backend=MockChatBackend(script=script), **kwargs)
    await session.initialize()
    return session


class TestInitialization:
    """Opening the conversation."""

    @pytest.mark.asyncio
    async def test_initialize_declares_tools_and_prompt(self):
        backend = MockChatBackend()
        session = ConversationSession(backend=backend)

        await session.initialize(greeting="Hello!")

        assert backend.started
        assert [t["name"] for t in backend.tool_schemas] == [t["name"] for t in TOOL_SCHEMAS]
        assert "travel concierge" in backend.system_prompt
        assert [m.text for m in session.messages] == ["Hello!"]
        assert session.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_loyalty_cards_reach_system_prompt(self):
        backend = MockChatBackend()
        session = ConversationSession(backend=backend)
        profile = UserProfile(loyalty_cards=[
            LoyaltyCard(provider="Amex", card_name="Platinum", points_balance="150,000"),
        ])

        await session.initialize(user_context=profile)

        assert "- Amex Platinum (Points: 150,000)" in backend.system_prompt

    @pytest.mark.asyncio
    async def test_unreachable_backend_raises(self):
        session = ConversationSession(backend=MockChatBackend(fail_on_start=True))

        with pytest.raises(InitializationError):
            await session.initialize()

    @pytest.mark.asyncio
    async def test_send_before_initialize_raises(self):
        session = ConversationSession(backend=MockChatBackend())

        with pytest.raises(InitializationError):
            await session.send_turn("Hello")
        assert session.messages == []


class TestTurnLoop:
    """The request / tool-call / response loop."""

    @pytest.mark.asyncio
    async def test_end_to_end_paris_plan(self):
        session = await _session([
            tool_turn(("call_1", "updateItinerary", PARIS_UPDATE)),
            AssistantTurn(text="Here's your plan!"),
        ])

        reply = await session.send_turn("Plan a 2-day trip to Paris for 2 adults")

        assert reply.text == "Here's your plan!"
        assert len(session.itinerary.days) == 1
        assert session.itinerary.total_estimated_cost == "$800"
        assert session.itinerary.travelers.adults == 2
        assert reply.rounds == 1
        assert session.state == TurnState.DONE
        assert [m.role for m in session.messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_plain_text_reply_needs_no_tools(self):
        session = await _session([AssistantTurn(text="Where would you like to go?")])

        reply = await session.send_turn("Hi")

        assert reply.text == "Where would you like to go?"
        assert reply.rounds == 0
        assert session.itinerary == Itinerary()

    @pytest.mark.asyncio
    async def test_empty_final_text_uses_default(self):
        session = await _session([
            tool_turn(("call_1", "updateItinerary", PARIS_UPDATE)),
            AssistantTurn(text=""),
        ])

        reply = await session.send_turn("Plan Paris")

        assert reply.text == EMPTY_REPLY

    @pytest.mark.asyncio
    async def test_results_are_batched_in_one_follow_up(self):
        backend = MockChatBackend(script=[
            tool_turn(
                ("a", "updateItinerary", PARIS_UPDATE),
                ("b", "searchFlights", {"origin": "BOS", "destination": "CDG", "date": "2025-06-01"}),
                ("c", "suggestNextSteps", {"suggestions": ["Swap the hotel"]}),
            ),
            AssistantTurn(text="Done."),
        ])
        session = ConversationSession(backend=backend)
        await session.initialize()

        await session.send_turn("Plan Paris with flights")

        assert len(backend.requests) == 2
        follow_up = backend.requests[1][-1]
        assert follow_up["role"] == "tool_results"
        assert [(r.id, r.name) for r in follow_up["results"]] == [
            ("a", "updateItinerary"),
            ("b", "searchFlights"),
            ("c", "suggestNextSteps"),
        ]

    @pytest.mark.asyncio
    async def test_partial_batch_failure_still_follows_up(self, caplog):
        caplog.set_level(logging.ERROR)
        backend = MockChatBackend(script=[
            tool_turn(("a", "updateItinerary", PARIS_UPDATE), ("b", "teleport", {"to": "Mars"})),
            AssistantTurn(text="Updated, but I can't teleport you."),
        ])
        session = ConversationSession(backend=backend)
        await session.initialize()

        reply = await session.send_turn("Plan Paris and teleport me")

        assert reply.text == "Updated, but I can't teleport you."
        assert session.itinerary.destination == "Paris"
        assert "Unknown tool requested: 'teleport'" in caplog.text
        assert len(backend.requests) == 2

    @pytest.mark.asyncio
    async def test_history_accumulates_across_turns(self):
        backend = MockChatBackend(script=[
            AssistantTurn(text="Where to?"),
            AssistantTurn(text="Paris it is."),
        ])
        session = ConversationSession(backend=backend)
        await session.initialize()

        await session.send_turn("Hi")
        await session.send_turn("Paris")

        roles = [entry["role"] for entry in backend.requests[1]]
        assert roles == ["user", "assistant", "user"]
        assert len(session.messages) == 4

    @pytest.mark.asyncio
    async def test_selected_suggestions_are_appended(self):
        backend = MockChatBackend(script=[AssistantTurn(text="On it.")])
        session = ConversationSession(backend=backend)
        await session.initialize()

        await session.send_turn("Sounds good.", selected_suggestions=["Swap the hotel", "Add a dinner"])

        assert session.messages[0].text == "Sounds good.\n\nPlease proceed with: Swap the hotel and Add a dinner"

    @pytest.mark.asyncio
    async def test_empty_message_is_rejected(self):
        session = await _session([])

        with pytest.raises(EmptyMessageError):
            await session.send_turn("   ")
        assert session.messages == []


class TestSuggestions:
    """Suggestions belong to one assistant message only."""

    @pytest.mark.asyncio
    async def test_suggestions_attach_to_reply(self):
        session = await _session([
            tool_turn(("s", "suggestNextSteps", {"suggestions": ["Swap the hotel", "Find cheaper flights"]})),
            AssistantTurn(text="Here you go."),
        ])

        reply = await session.send_turn("Plan Paris")

        assert reply.suggestions == ["Swap the hotel", "Find cheaper flights"]
        assert session.messages[-1].suggestions == ["Swap the hotel", "Find cheaper flights"]

    @pytest.mark.asyncio
    async def test_suggestions_turn_over_on_next_turn(self):
        seen = []
        backend = MockChatBackend(script=[
            tool_turn(("s", "suggestNextSteps", {"suggestions": ["Swap the hotel"]})),
            AssistantTurn(text="Here you go."),
            AssistantTurn(text="Sure thing."),
        ])
        session = ConversationSession(backend=backend, on_suggestions_update=seen.append)
        await session.initialize()

        await session.send_turn("Plan Paris")
        reply = await session.send_turn("Thanks")

        assert reply.suggestions == []
        assert session.suggestions.current == []
        assert session.messages[-1].suggestions is None
        assert seen == [["Swap the hotel"], []]


class TestFailures:
    """Backend failures, the round cap, the busy guard and cancellation."""

    @pytest.mark.asyncio
    async def test_transport_error_returns_fallback_and_rolls_back(self):
        backend = MockChatBackend(script=[
            AssistantTurn(text="Where to?"),
            tool_turn(("a", "updateItinerary", PARIS_UPDATE)),
            TransportError("connection reset"),
        ])
        session = ConversationSession(backend=backend)
        await session.initialize()
        await session.send_turn("Hi")
        transcript_before = list(session.transcript)

        reply = await session.send_turn("Plan Paris")

        assert reply.text == FALLBACK_REPLY
        assert reply.failed
        assert session.state == TurnState.FAILED
        assert session.transcript == transcript_before
        assert session.itinerary == Itinerary()
        assert [m.text for m in session.messages][-2:] == ["Plan Paris", FALLBACK_REPLY]

    @pytest.mark.asyncio
    async def test_session_recovers_after_transport_error(self):
        session = await _session([TransportError("timeout"), AssistantTurn(text="Back online.")])

        await session.send_turn("Hi")
        reply = await session.send_turn("Hi again")

        assert reply.text == "Back online."
        assert [e["role"] for e in session.transcript] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_tool_loop_is_capped(self):
        backend = MockChatBackend(
            script=lambda transcript: tool_turn(("s", "suggestNextSteps", {"suggestions": ["Again"]}))
        )
        session = ConversationSession(backend=backend, max_tool_rounds=3)
        await session.initialize()

        with pytest.raises(ToolLoopExceededError):
            await session.send_turn("Loop forever")

        assert len(backend.requests) == 4
        assert session.transcript == []
        assert session.state == TurnState.FAILED
        assert not session.busy
        assert session.messages[-1].text == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_second_turn_while_busy_is_rejected(self):
        release = asyncio.Event()

        class SlowBackend(MockChatBackend):
            async def complete(self, transcript):
                await release.wait()
                return AssistantTurn(text="Finally.")

        session = ConversationSession(backend=SlowBackend())
        await session.initialize()

        first = asyncio.create_task(session.send_turn("First"))
        await asyncio.sleep(0)
        assert session.busy

        with pytest.raises(TurnInProgressError):
            await session.send_turn("Second")
        with pytest.raises(TurnInProgressError):
            session.toggle_lock("Day 1", "Louvre")

        release.set()
        reply = await first

        assert reply.text == "Finally."
        assert [m.text for m in session.messages] == ["First", "Finally."]

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        session = await _session([AssistantTurn(text="never sent")])
        token = CancellationToken()
        token.cancel()

        with pytest.raises(TurnCancelledError):
            await session.send_turn("Hello", cancel_token=token)

        assert session.transcript == []
        assert session.backend.requests == []
        assert not session.busy

    @pytest.mark.asyncio
    async def test_cancelled_between_rounds_restores_itinerary(self):
        token = CancellationToken()

        def script(transcript):
            token.cancel()
            return tool_turn(("a", "updateItinerary", PARIS_UPDATE))

        session = await _session(script)

        with pytest.raises(TurnCancelledError):
            await session.send_turn("Plan Paris", cancel_token=token)

        assert session.itinerary == Itinerary()
        assert session.transcript == []

    @pytest.mark.asyncio
    async def test_unexpected_error_rolls_back(self):
        session = await _session([
            tool_turn(("a", "updateItinerary", PARIS_UPDATE)),
            RuntimeError("provider returned garbage"),
            AssistantTurn(text="Back on track."),
        ])

        with pytest.raises(RuntimeError):
            await session.send_turn("Plan Paris")

        assert session.transcript == []
        assert session.state == TurnState.FAILED
        assert session.itinerary == Itinerary()
        assert not session.busy

        reply = await session.send_turn("Try again")
        assert reply.text == "Back on track."
        assert [e["role"] for e in session.transcript] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_failing_itinerary_listener_does_not_abort_turn(self):
        def listener(_):
            raise RuntimeError("render failed")

        session = await _session(
            [tool_turn(("a", "updateItinerary", PARIS_UPDATE)), AssistantTurn(text="Here's your plan!")],
            on_itinerary_update=listener,
        )

        reply = await session.send_turn("Plan Paris")

        assert reply.text == "Here's your plan!"
        assert session.state == TurnState.DONE
        assert session.itinerary.destination == "Paris"
        assert [e["role"] for e in session.transcript] == ["user", "assistant", "tool_results", "assistant"]


class TestItineraryActions:
    """Locking, trip kickoff and pending choices."""

    @pytest.mark.asyncio
    async def test_locked_activity_survives_next_turn(self):
        session = await _session([
            tool_turn(("a", "updateItinerary", PARIS_UPDATE)),
            AssistantTurn(text="Plan ready."),
            tool_turn(("b", "updateItinerary", {
                "destination": "Paris",
                "days": [day_payload("Day 1", [activity_payload("Eiffel Tower")])],
            })),
            AssistantTurn(text="Swapped."),
        ])
        await session.send_turn("Plan Paris")

        locked = session.toggle_lock("Day 1", "Louvre Museum", locked=True)
        await session.send_turn("Replace the museum")

        titles = [a.title for a in session.itinerary.days[0].activities]
        assert locked.is_locked
        assert titles == ["Eiffel Tower", "Louvre Museum"]

    @pytest.mark.asyncio
    async def test_start_trip_seeds_and_sends_request(self):
        updates = []
        backend = MockChatBackend(script=[AssistantTurn(text="Lovely! Any hotel preferences?")])
        session = ConversationSession(backend=backend, on_itinerary_update=updates.append)
        await session.initialize()
        context = TripContext(origin="Boston", destination="Lisbon", start_date="2025-06-01")

        reply = await session.start_trip(context)

        assert reply.text == "Lovely! Any hotel preferences?"
        assert session.itinerary.title == "Trip to Lisbon"
        assert len(updates) == 1
        assert "trip to Lisbon leaving from Boston starting 2025-06-01" in backend.requests[0][0]["content"]

    @pytest.mark.asyncio
    async def test_start_trip_before_initialize_leaves_itinerary_alone(self):
        updates = []
        session = ConversationSession(backend=MockChatBackend(), on_itinerary_update=updates.append)

        with pytest.raises(InitializationError):
            await session.start_trip(TripContext(origin="Boston", destination="Lisbon"))

        assert session.itinerary == Itinerary()
        assert updates == []

    @pytest.mark.asyncio
    async def test_pending_choices_clear_on_new_turn(self):
        offered = []
        session = ConversationSession(
            backend=MockChatBackend(script=[AssistantTurn(text="Noted.")]),
            on_pending_choices=offered.append,
        )
        await session.initialize()
        options = [Activity(title="Hotel A", category="accommodation"), Activity(title="Hotel B", category="accommodation")]

        session.present_choices(options)
        assert session.pending_choices == options

        await session.send_turn("Tell me more")

        assert session.pending_choices == []
        assert offered == [options, []]

    @pytest.mark.asyncio
    async def test_select_choice_sends_selection(self):
        backend = MockChatBackend(script=[AssistantTurn(text="Added Hotel B.")])
        session = ConversationSession(backend=backend)
        await session.initialize()
        choice = Activity(title="Hotel B", category="accommodation")
        session.present_choices([Activity(title="Hotel A"), choice])

        reply = await session.select_choice(choice)

        assert reply.text == "Added Hotel B."
        assert session.pending_choices == []
        assert 'I have selected the option "Hotel B"' in session.messages[0].text
