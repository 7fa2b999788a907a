"""
Suggestion Channel - Follow-up chips for the latest assistant message.
"""
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


SuggestionListener = Callable[[list[str]], None]


class SuggestionChannel:
    """
    Holds the suggestions offered with the most recent assistant reply.

    The list belongs to one message only. The conversation clears it when a
    new user turn starts, so a turn that never calls suggestNextSteps ends
    with no suggestions rather than the previous turn's.
    """

    def __init__(self, listener: Optional[SuggestionListener] = None):
        self._suggestions: list[str] = []
        self._listener = listener

    @property
    def current(self) -> list[str]:
        return list(self._suggestions)

    def set(self, suggestions: list[str]):
        """Replace the current suggestions."""
        self._suggestions = list(suggestions)
        logger.debug(f"Suggestions set: {self._suggestions}")
        self._notify()

    def clear(self):
        """Drop all suggestions."""
        if not self._suggestions:
            return
        self._suggestions = []
        self._notify()

    def _notify(self):
        if self._listener is not None:
            self._listener(self.current)

    def __bool__(self) -> bool:
        return bool(self._suggestions)
