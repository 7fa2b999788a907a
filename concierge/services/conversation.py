"""
Conversation Session - Drives one chat with a tool-calling assistant.

A turn sends the user's text, then keeps answering tool-call batches until the
assistant replies with plain text:

    user text -> backend -> [tool calls -> dispatcher -> results -> backend]* -> final text

The session owns its chat history, its backend transcript, the itinerary and
the suggestion channel. Only one turn may run at a time.
"""
import logging
import uuid
from typing import Callable, Optional

from ..config import settings
from ..errors import (
    EmptyMessageError,
    InitializationError,
    ToolLoopExceededError,
    TransportError,
    TurnCancelledError,
    TurnInProgressError,
)
from ..models.itinerary import Activity, Itinerary
from ..models.profile import TripContext, UserProfile
from ..models.session import AssistantReply, Message, TurnState
from ..models.tools import TOOL_SCHEMAS
from .itinerary_merger import ItineraryMerger, get_itinerary_merger
from .llm_client import ChatBackend, get_chat_backend
from .prompts import (
    build_loyalty_context,
    build_system_prompt,
    build_trip_request,
    choice_selected_request,
    regenerate_activity_request,
    remove_activity_request,
    with_selected_suggestions,
)
from .suggestions import SuggestionChannel
from .tool_dispatcher import ToolCallDispatcher

logger = logging.getLogger(__name__)


FALLBACK_REPLY = "I'm having trouble connecting to the travel network right now. Please try again."
EMPTY_REPLY = "I've updated your plan."


class CancellationToken:
    """Set by the caller to stop a turn before its next backend round."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self):
        if self._cancelled:
            raise TurnCancelledError("Turn cancelled by caller")


class ConversationSession:
    """One conversation: history, itinerary, suggestions and a backend handle."""

    def __init__(
        self,
        backend: Optional[ChatBackend] = None,
        max_tool_rounds: Optional[int] = None,
        merger: Optional[ItineraryMerger] = None,
        on_itinerary_update: Optional[Callable[[Itinerary], None]] = None,
        on_suggestions_update: Optional[Callable[[list[str]], None]] = None,
        on_pending_choices: Optional[Callable[[list[Activity]], None]] = None,
        session_id: Optional[str] = None
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.backend = backend or get_chat_backend()
        self.max_tool_rounds = max_tool_rounds if max_tool_rounds is not None else settings.max_tool_rounds
        self.merger = merger or get_itinerary_merger()

        self.on_itinerary_update = on_itinerary_update
        self.on_pending_choices = on_pending_choices

        self.itinerary = Itinerary()
        self.messages: list[Message] = []
        self.transcript: list[dict] = []
        self.pending_choices: list[Activity] = []
        self.profile: Optional[UserProfile] = None
        self.state = TurnState.IDLE

        self.suggestions = SuggestionChannel(listener=on_suggestions_update)
        self.dispatcher = ToolCallDispatcher(
            self.itinerary,
            self.suggestions,
            merger=self.merger,
            on_itinerary_update=self._notify_itinerary,
        )

        self._initialized = False
        self._busy = False

    # ------------------------------------------------------------ lifecycle

    @property
    def busy(self) -> bool:
        return self._busy

    async def initialize(
        self,
        system_prompt: Optional[str] = None,
        tool_schemas: Optional[list[dict]] = None,
        user_context: Optional[UserProfile] = None,
        greeting: Optional[str] = None
    ):
        """
        Open the conversation with the backend.

        Args:
            system_prompt: Overrides the concierge instruction; loyalty context is still appended
            tool_schemas: Tools to declare, defaults to the three itinerary tools
            user_context: Loyalty profile used to steer recommendations
            greeting: Optional assistant message to open the visible history with

        Raises:
            InitializationError: the backend is unconfigured or unreachable
        """
        if system_prompt is None:
            prompt = build_system_prompt(user_context)
        else:
            prompt = system_prompt + build_loyalty_context(user_context)

        await self.backend.start(prompt, tool_schemas if tool_schemas is not None else TOOL_SCHEMAS)

        self.profile = user_context
        self._initialized = True
        if greeting:
            self.messages.append(Message(role="assistant", text=greeting))
        logger.info(f"Session {self.session_id[:8]} initialized")

    # ------------------------------------------------------------ turns

    async def send_turn(
        self,
        text: str,
        cancel_token: Optional[CancellationToken] = None,
        selected_suggestions: Optional[list[str]] = None
    ) -> AssistantReply:
        """
        Run one user turn through to the assistant's final text.

        Backend failures do not raise: the partial exchange is discarded and a
        fixed apology is returned instead.

        Raises:
            InitializationError: initialize() has not succeeded
            TurnInProgressError: another turn is still running
            ToolLoopExceededError: the assistant kept calling tools past the limit
            TurnCancelledError: cancel_token was set before a backend round
            EmptyMessageError: there is no text to send
        """
        if not self._initialized:
            raise InitializationError("Chat session not initialized")
        if self._busy:
            raise TurnInProgressError(f"Session {self.session_id} already has a turn in flight")

        text = with_selected_suggestions(text, selected_suggestions or [])
        if not text.strip():
            raise EmptyMessageError("Cannot send an empty message")

        self._busy = True
        try:
            return await self._run_turn(text, cancel_token)
        finally:
            self._busy = False

    async def _run_turn(self, text: str, cancel_token: Optional[CancellationToken]) -> AssistantReply:
        self.messages.append(Message(role="user", text=text))
        self.suggestions.clear()
        self._set_pending_choices([])

        checkpoint = len(self.transcript)
        snapshot = self.itinerary.model_copy(deep=True)
        self.transcript.append({"role": "user", "content": text})

        rounds = 0
        try:
            while True:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()

                self.state = TurnState.AWAITING_ASSISTANT
                turn = await self.backend.complete(self.transcript)
                self.transcript.append({
                    "role": "assistant",
                    "content": turn.text,
                    "tool_calls": list(turn.tool_calls),
                })

                if not turn.has_tool_calls:
                    break
                if rounds >= self.max_tool_rounds:
                    raise ToolLoopExceededError(self.max_tool_rounds)

                rounds += 1
                self.state = TurnState.DISPATCHING_TOOLS
                logger.debug(f"Round {rounds}: dispatching {[c.name for c in turn.tool_calls]}")
                results = self.dispatcher.dispatch(turn.tool_calls)
                self.transcript.append({"role": "tool_results", "results": results})

        except TransportError as e:
            logger.error(f"Turn failed after {rounds} tool rounds: {e}")
            self._abort_turn(checkpoint, snapshot)
            return self._finish(FALLBACK_REPLY, rounds, failed=True)

        except ToolLoopExceededError as e:
            logger.error(f"Session {self.session_id[:8]}: {e}")
            self._abort_turn(checkpoint, snapshot)
            self._finish(FALLBACK_REPLY, rounds, failed=True)
            raise

        except TurnCancelledError:
            logger.info(f"Session {self.session_id[:8]}: turn cancelled after {rounds} tool rounds")
            self._abort_turn(checkpoint, snapshot)
            raise

        except Exception as e:
            logger.error(f"Session {self.session_id[:8]}: turn aborted by unexpected error: {e!r}")
            self._abort_turn(checkpoint, snapshot)
            raise

        self.state = TurnState.DONE
        return self._finish(turn.text or EMPTY_REPLY, rounds)

    def _abort_turn(self, checkpoint: int, snapshot: Itinerary):
        """Forget the partial exchange and put the itinerary back as it was."""
        self.state = TurnState.FAILED
        del self.transcript[checkpoint:]
        self.suggestions.clear()
        if self.itinerary != snapshot:
            for field in Itinerary.model_fields:
                setattr(self.itinerary, field, getattr(snapshot, field))
            self._notify_itinerary(self.itinerary)

    def _finish(self, text: str, rounds: int, failed: bool = False) -> AssistantReply:
        suggestions = self.suggestions.current
        self.messages.append(Message(role="assistant", text=text, suggestions=suggestions or None))
        return AssistantReply(
            text=text,
            suggestions=suggestions,
            pending_choices=list(self.pending_choices),
            rounds=rounds,
            failed=failed,
        )

    # ------------------------------------------------------------ itinerary actions

    async def start_trip(self, context: TripContext, cancel_token: Optional[CancellationToken] = None) -> AssistantReply:
        """Seed the itinerary from the setup form, then send the opening request."""
        if not self._initialized:
            raise InitializationError("Chat session not initialized")
        self._ensure_idle()
        self.merger.seed(self.itinerary, context)
        self._notify_itinerary(self.itinerary)
        return await self.send_turn(build_trip_request(context), cancel_token)

    def toggle_lock(self, day_date: str, activity_key: str, locked: Optional[bool] = None) -> Optional[Activity]:
        """Pin or unpin an activity so later updates keep it."""
        self._ensure_idle()
        activity = self.merger.set_locked(self.itinerary, day_date, activity_key, locked)
        if activity is not None:
            self._notify_itinerary(self.itinerary)
        return activity

    async def regenerate_activity(self, activity: Activity, day_date: str) -> AssistantReply:
        return await self.send_turn(regenerate_activity_request(activity, day_date))

    async def remove_activity(self, activity: Activity, day_date: str) -> AssistantReply:
        return await self.send_turn(remove_activity_request(activity, day_date))

    # ------------------------------------------------------------ pending choices

    def present_choices(self, options: list[Activity]):
        """Offer mutually exclusive options; they stay unsaved until one is picked."""
        self._set_pending_choices(options)

    async def select_choice(self, activity: Activity) -> AssistantReply:
        """Pick one pending option and ask the assistant to add it."""
        self._ensure_idle()
        self._set_pending_choices([])
        return await self.send_turn(choice_selected_request(activity))

    def _set_pending_choices(self, options: list[Activity]):
        if not options and not self.pending_choices:
            return
        self.pending_choices = list(options)
        if self.on_pending_choices is not None:
            self.on_pending_choices(list(self.pending_choices))

    # ------------------------------------------------------------ helpers

    def _ensure_idle(self):
        if self._busy:
            raise TurnInProgressError(f"Session {self.session_id} already has a turn in flight")

    def _notify_itinerary(self, itinerary: Itinerary):
        if self.on_itinerary_update is not None:
            self.on_itinerary_update(itinerary)
