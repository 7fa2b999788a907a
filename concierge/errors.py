"""
Error taxonomy for the conversation engine.

Only InitializationError and TransportError describe failures of the backend
itself. The rest describe problems with one turn or one tool call and are
mostly absorbed before they reach the caller.
"""


class ConciergeError(Exception):
    """Base class for all concierge errors."""


class InitializationError(ConciergeError):
    """The chat backend is unconfigured or unreachable at session start."""


class TransportError(ConciergeError):
    """A backend round-trip failed in the middle of a turn."""


class UnknownToolError(ConciergeError):
    """The assistant asked for a tool that was never declared."""

    def __init__(self, name: str, call_id: str = ""):
        self.name = name
        self.call_id = call_id
        super().__init__(f"Unknown tool requested: {name!r}")


class MalformedPayloadError(ConciergeError):
    """A tool payload field could not be interpreted."""

    def __init__(self, field: str, value=None):
        self.field = field
        self.value = value
        super().__init__(f"Malformed value for {field!r}: {value!r}")


class ToolLoopExceededError(ConciergeError):
    """The assistant kept requesting tools past the round limit."""

    def __init__(self, max_rounds: int):
        self.max_rounds = max_rounds
        super().__init__(f"Assistant exceeded {max_rounds} tool-call rounds")


class TurnInProgressError(ConciergeError):
    """A turn was started while another one is still running."""


class TurnCancelledError(ConciergeError):
    """The caller cancelled the turn before it finished."""


class EmptyMessageError(ConciergeError):
    """A turn was sent with no text to deliver."""
