"""Error taxonomy for the order intake engine.

Dialogue-level conditions (ambiguous language, nothing to extract, retries
used up) are recovered inside the state machine and only logged; they are
listed in DialogueCondition rather than raised.
"""

from enum import Enum


class VoiceOrderError(Exception):
    """Base class for engine errors."""


class ConfigError(VoiceOrderError):
    """Invalid configuration or locale bundle, detected at startup."""


class SessionConflict(VoiceOrderError):
    """A second request for a call id arrived while a mutation was in flight."""

    def __init__(self, call_id: str, reason: str = "mutation in flight"):
        super().__init__(f"Session {call_id}: {reason}")
        self.call_id = call_id


class SessionNotFound(VoiceOrderError):
    def __init__(self, call_id: str):
        super().__init__(f"No live session for call {call_id}")
        self.call_id = call_id


class OrderServiceUnavailable(VoiceOrderError):
    """The Order Service could not be reached or rejected the request."""


class UnhandledTurnError(VoiceOrderError):
    """Unexpected failure while processing a turn."""

    def __init__(self, call_id: str, language=None):
        super().__init__(f"Turn failed for call {call_id}")
        self.call_id = call_id
        self.language = language


class DialogueCondition(Enum):
    LANGUAGE_AMBIGUOUS = "language_ambiguous"
    NO_EXTRACTABLE_ORDER = "no_extractable_order"
    RETRIES_EXHAUSTED = "retries_exhausted"
