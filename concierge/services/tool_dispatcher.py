"""
Tool Call Dispatcher - Resolves one batch of assistant tool calls.

Each request is parsed into a typed call, handled in the order received and
answered with a result carrying the same id. A failing call never stops the
rest of the batch.
"""
import logging
from typing import Callable, Optional

from ..errors import UnknownToolError
from ..models.itinerary import Itinerary
from ..models.tools import (
    SearchFlightsCall,
    SuggestNextStepsCall,
    ToolCall,
    ToolInvocationRequest,
    ToolInvocationResult,
    UnrecognizedCall,
    UpdateItineraryCall,
)
from .itinerary_merger import ItineraryMerger, get_itinerary_merger
from .suggestions import SuggestionChannel

logger = logging.getLogger(__name__)


ITINERARY_ACK = "Itinerary updated successfully on screen."
SUGGESTIONS_ACK = "Suggestions received."

# Stand-in for a real flight search integration
SIMULATED_FLIGHTS = [
    {"airline": "Delta", "flight": "DL123", "price": "$400"},
    {"airline": "United", "flight": "UA456", "price": "$420"},
]
SIMULATED_FLIGHTS_SUMMARY = "Simulated Search: Delta DL123 ($400), United UA456 ($420)."


def _text(value) -> str:
    return value if isinstance(value, str) else ""


class ToolCallDispatcher:
    """
    Routes tool calls to the itinerary merger and the suggestion channel.

    This is the only place a turn mutates the itinerary or the suggestions.
    Chat history is owned by the conversation and never touched here.
    """

    def __init__(
        self,
        itinerary: Itinerary,
        suggestions: SuggestionChannel,
        merger: Optional[ItineraryMerger] = None,
        on_itinerary_update: Optional[Callable[[Itinerary], None]] = None
    ):
        self.itinerary = itinerary
        self.suggestions = suggestions
        self.merger = merger or get_itinerary_merger()
        self.on_itinerary_update = on_itinerary_update
        self.last_errors: list[Exception] = []

    def parse(self, request: ToolInvocationRequest) -> ToolCall:
        """Turn a loose request into its typed variant."""
        args = request.arguments if isinstance(request.arguments, dict) else {}

        if request.name == "updateItinerary":
            return UpdateItineraryCall(id=request.id, patch=self.merger.coerce_patch(args))

        if request.name == "searchFlights":
            return SearchFlightsCall(
                id=request.id,
                origin=_text(args.get("origin")),
                destination=_text(args.get("destination")),
                date=_text(args.get("date")),
            )

        if request.name == "suggestNextSteps":
            raw = args.get("suggestions")
            suggestions = []
            if isinstance(raw, list) and all(isinstance(s, str) for s in raw):
                suggestions = [s.strip() for s in raw if s.strip()]
            else:
                logger.warning(f"suggestNextSteps sent non-list suggestions: {raw!r}")
            return SuggestNextStepsCall(id=request.id, suggestions=suggestions)

        return UnrecognizedCall(id=request.id, name=request.name, arguments=args)

    def dispatch(self, requests: list[ToolInvocationRequest]) -> list[ToolInvocationResult]:
        """
        Resolve a batch of tool calls sequentially.

        Args:
            requests: Tool calls from one assistant response, in received order

        Returns:
            One result per request, in the same order
        """
        self.last_errors = []
        results = []
        for request in requests:
            call = self.parse(request)
            try:
                response = self._handle(call)
            except UnknownToolError as e:
                logger.error(f"{e} (call id {e.call_id})")
                self.last_errors.append(e)
                response = {"error": str(e)}
            results.append(ToolInvocationResult(id=request.id, name=request.name, response=response))
        return results

    def _handle(self, call: ToolCall) -> dict:
        if isinstance(call, UpdateItineraryCall):
            return self._update_itinerary(call)
        if isinstance(call, SearchFlightsCall):
            return self._search_flights(call)
        if isinstance(call, SuggestNextStepsCall):
            return self._suggest_next_steps(call)
        raise UnknownToolError(call.name, call.id)

    def _update_itinerary(self, call: UpdateItineraryCall) -> dict:
        # The assistant is always told the update landed so the conversation keeps going
        try:
            self.merger.merge(self.itinerary, call.patch)
        except Exception as e:
            logger.error(f"Itinerary merge failed for call {call.id}: {e}")
            self.last_errors.append(e)
        else:
            if self.on_itinerary_update is not None:
                try:
                    self.on_itinerary_update(self.itinerary)
                except Exception as e:
                    logger.error(f"Itinerary listener failed for call {call.id}: {e!r}")
                    self.last_errors.append(e)
        return {"result": ITINERARY_ACK}

    def _search_flights(self, call: SearchFlightsCall) -> dict:
        logger.info(f"Simulated flight search {call.origin!r} -> {call.destination!r} on {call.date!r}")
        return {
            "result": SIMULATED_FLIGHTS_SUMMARY,
            "origin": call.origin,
            "destination": call.destination,
            "date": call.date,
            "options": [dict(option) for option in SIMULATED_FLIGHTS],
        }

    def _suggest_next_steps(self, call: SuggestNextStepsCall) -> dict:
        if call.suggestions:
            self.suggestions.set(call.suggestions)
        return {"result": SUGGESTIONS_ACK}
