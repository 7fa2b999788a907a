"""
Mock Chat Backend - Deterministic stand-in for a tool-calling LLM.

Without a script it plays a small rule-based concierge: a request that names a
destination gets an updateItinerary call and a suggestNextSteps call, then a
short summary once the tool results come back. With a script it replays the
given responses in order, which is what the tests use.
"""
import copy
import logging
import re
from typing import Callable, Optional, Union

from ..errors import InitializationError
from .llm_client import ChatBackend
from ..models.tools import AssistantTurn, ToolInvocationRequest

logger = logging.getLogger(__name__)


ScriptStep = Union[AssistantTurn, Exception]
Script = Union[list[ScriptStep], Callable[[list[dict]], ScriptStep]]


class MockChatBackend(ChatBackend):
    """Scripted or rule-based chat backend that records every request."""

    def __init__(self, script: Optional[Script] = None, fail_on_start: bool = False):
        self.model = "mock-concierge"
        self.script = script
        self.fail_on_start = fail_on_start
        self.started = False
        self.system_prompt = ""
        self.tool_schemas: list[dict] = []
        self.requests: list[list[dict]] = []
        self._call_counter = 0

    async def start(self, system_prompt: str, tool_schemas: list[dict]):
        if self.fail_on_start:
            raise InitializationError("Mock backend configured to be unreachable")
        self.system_prompt = system_prompt
        self.tool_schemas = list(tool_schemas)
        self.started = True

    async def complete(self, transcript: list[dict]) -> AssistantTurn:
        self.requests.append(copy.deepcopy(transcript))

        if self.script is None:
            step = self._respond(transcript)
        elif callable(self.script):
            step = self.script(transcript)
        elif self.script:
            step = self.script.pop(0)
        else:
            step = AssistantTurn(text="")

        if isinstance(step, Exception):
            raise step
        return step

    # ------------------------------------------------------------ demo rules

    def _next_id(self) -> str:
        self._call_counter += 1
        return f"call_{self._call_counter}"

    def _respond(self, transcript: list[dict]) -> AssistantTurn:
        last = transcript[-1] if transcript else {"role": "user", "content": ""}

        if last["role"] == "tool_results":
            names = {r.name for r in last["results"]}
            if "searchFlights" in names:
                return AssistantTurn(text="I found a couple of flight options. Delta looks like the best value.")
            return AssistantTurn(text="Here's a first draft of your trip. How does this look?")

        info = self._extract_travel_info(last.get("content", ""))

        if info.get("wants_flights") and info.get("origin") and info.get("destination"):
            return AssistantTurn(tool_calls=[ToolInvocationRequest(
                id=self._next_id(),
                name="searchFlights",
                arguments={"origin": info["origin"], "destination": info["destination"], "date": info.get("date", "")},
            )])

        if not info.get("destination"):
            return AssistantTurn(text=(
                "I'd love to help! Where would you like to go, for how many days, "
                "and who is travelling with you?"
            ))

        destination = info["destination"]
        days = []
        for n in range(1, info.get("days", 3) + 1):
            days.append({
                "date": f"Day {n}",
                "dayTitle": "Arrival & Check-in" if n == 1 else f"Exploring {destination}",
                "activities": [
                    {
                        "time": "3:00 PM" if n == 1 else "10:00 AM",
                        "title": f"Check in at {destination} Central Hotel" if n == 1 else f"{destination} Walking Tour",
                        "description": "Settle in and freshen up." if n == 1 else "Guided walk through the old town.",
                        "location": destination,
                        "category": "accommodation" if n == 1 else "activity",
                        "bookingStatus": "suggested",
                        "cost": "$200/night" if n == 1 else "$25",
                        "imageQuery": destination,
                    }
                ],
            })

        return AssistantTurn(
            text="",
            tool_calls=[
                ToolInvocationRequest(
                    id=self._next_id(),
                    name="updateItinerary",
                    arguments={
                        "title": f"Trip to {destination}",
                        "destination": destination,
                        "adults": info.get("adults", 1),
                        "days": days,
                        "totalEstimatedCost": f"${225 * len(days)}",
                    },
                ),
                ToolInvocationRequest(
                    id=self._next_id(),
                    name="suggestNextSteps",
                    arguments={"suggestions": ["Swap the hotel", "Add a dinner reservation", "Find cheaper flights"]},
                ),
            ],
        )

    def _extract_travel_info(self, text: str) -> dict:
        """Helper to extract travel parameters from text."""
        res = {}

        dest = re.search(r"\bto ([A-Z][\w'-]*(?: [A-Z][\w'-]*)*)", text)
        if dest:
            res["destination"] = dest.group(1)

        origin = re.search(r"\bfrom ([A-Z][\w'-]*(?: [A-Z][\w'-]*)*)", text)
        if origin:
            res["origin"] = origin.group(1)

        d_match = re.search(r"(\d+)[\s-]*days?", text, re.IGNORECASE)
        if d_match:
            res["days"] = max(1, min(int(d_match.group(1)), 14))

        a_match = re.search(r"(\d+)\s*adults?", text, re.IGNORECASE)
        if a_match:
            res["adults"] = int(a_match.group(1))

        date = re.search(r"\d{4}-\d{2}-\d{2}", text)
        if date:
            res["date"] = date.group(0)

        res["wants_flights"] = bool(re.search(r"\bflights?\b", text, re.IGNORECASE))
        return res
