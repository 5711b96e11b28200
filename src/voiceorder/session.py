import time
from dataclasses import dataclass, field
from enum import Enum

from voiceorder.config import Settings
from voiceorder.menu import MenuSnapshot
from voiceorder.states import Language, State


class Speaker(Enum):
    CALLER = "caller"
    SYSTEM = "system"


class Fulfillment(Enum):
    DINE_IN = "dine_in"
    DELIVERY = "delivery"
    UNSPECIFIED = "unspecified"


@dataclass(frozen=True)
class Utterance:
    speaker: Speaker
    text: str
    timestamp: float
    state: str = ""


@dataclass(frozen=True)
class OrderFragment:
    menu_item_id: str
    matched_alias: str
    quantity: int
    modifiers: frozenset = frozenset()
    confidence: float = 1.0

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {self.quantity}")


@dataclass(frozen=True)
class OrderDelta:
    """What one utterance contributed to the order."""

    fragments: tuple[OrderFragment, ...] = ()
    modifiers: tuple[str, ...] = ()
    special_instructions: tuple[str, ...] = ()
    fulfillment: Fulfillment = Fulfillment.UNSPECIFIED

    @property
    def is_empty(self) -> bool:
        return (
            not self.fragments
            and not self.modifiers
            and not self.special_instructions
            and self.fulfillment == Fulfillment.UNSPECIFIED
        )


@dataclass
class PendingOrder:
    fragments: list[OrderFragment] = field(default_factory=list)
    modifiers: list[str] = field(default_factory=list)
    special_instructions: list[str] = field(default_factory=list)
    fulfillment: Fulfillment = Fulfillment.UNSPECIFIED

    @property
    def is_empty(self) -> bool:
        return not self.fragments

    def merge(self, delta: OrderDelta) -> None:
        """Accumulate a delta in the order it was received.

        A fragment for an item already in the order replaces the earlier
        fragment in place, so a caller restating "three naan" corrects the
        quantity rather than adding to it.
        """
        for fragment in delta.fragments:
            for i, existing in enumerate(self.fragments):
                if existing.menu_item_id == fragment.menu_item_id:
                    self.fragments[i] = fragment
                    break
            else:
                self.fragments.append(fragment)
        for modifier in delta.modifiers:
            if modifier not in self.modifiers:
                self.modifiers.append(modifier)
        for instruction in delta.special_instructions:
            if instruction not in self.special_instructions:
                self.special_instructions.append(instruction)
        if delta.fulfillment != Fulfillment.UNSPECIFIED:
            self.fulfillment = delta.fulfillment

    def clear(self) -> None:
        self.fragments.clear()
        self.modifiers.clear()
        self.special_instructions.clear()
        self.fulfillment = Fulfillment.UNSPECIFIED

    @property
    def notes(self) -> str:
        return "; ".join([*self.special_instructions, *self.modifiers])


@dataclass(frozen=True)
class Turn:
    text: str = ""
    confidence: float | None = None
    digits: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.text or "").strip() and not (self.digits or "").strip()

    @property
    def caller_text(self) -> str:
        """What goes into the transcript for this turn."""
        text = (self.text or "").strip()
        if text:
            return text
        if (self.digits or "").strip():
            return f"[pressed {self.digits.strip()}]"
        return ""


@dataclass
class CallSession:
    call_id: str
    caller_number: str = ""
    state: State = State.GREETING
    language: Language | None = None
    pending_order: PendingOrder = field(default_factory=PendingOrder)
    retry_count: int = 0
    transcript: list[Utterance] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    finalized_at: float | None = None
    result_order_id: str | None = None
    result_order_number: str | None = None
    order_is_local: bool = False
    menu: MenuSnapshot = field(default_factory=MenuSnapshot)
    # Voice settings in force when the call was answered
    settings: Settings | None = None

    # Call metadata
    answered: bool = True
    last_prompt: str = ""
    last_activity_at: float = 0.0
    turn_count: int = 0

    def __post_init__(self):
        if not self.last_activity_at:
            self.last_activity_at = self.created_at

    def append_utterance(self, speaker: Speaker, text: str, timestamp: float) -> Utterance:
        utterance = Utterance(
            speaker=speaker,
            text=text,
            timestamp=timestamp,
            state=self.state.value,
        )
        self.transcript.append(utterance)
        return utterance

    def prompt_language(self, default: Language) -> Language:
        return self.language or default


@dataclass(frozen=True)
class ArchivedCall:
    """Immutable record of a session that reached a terminal state."""

    call_id: str
    caller_number: str
    state: State
    language: Language | None
    fragments: tuple[OrderFragment, ...]
    modifiers: tuple[str, ...]
    special_instructions: tuple[str, ...]
    fulfillment: Fulfillment
    transcript: tuple[Utterance, ...]
    created_at: float
    finalized_at: float
    result_order_id: str | None
    result_order_number: str | None
    order_is_local: bool
    answered: bool
    turn_count: int

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.finalized_at - self.created_at)

    @classmethod
    def from_session(cls, session: CallSession) -> "ArchivedCall":
        return cls(
            call_id=session.call_id,
            caller_number=session.caller_number,
            state=session.state,
            language=session.language,
            fragments=tuple(session.pending_order.fragments),
            modifiers=tuple(session.pending_order.modifiers),
            special_instructions=tuple(session.pending_order.special_instructions),
            fulfillment=session.pending_order.fulfillment,
            transcript=tuple(session.transcript),
            created_at=session.created_at,
            finalized_at=session.finalized_at or session.last_activity_at,
            result_order_id=session.result_order_id,
            result_order_number=session.result_order_number,
            order_is_local=session.order_is_local,
            answered=session.answered,
            turn_count=session.turn_count,
        )
