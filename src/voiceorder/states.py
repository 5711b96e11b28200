from enum import Enum

ORDER_TAKING_STATES = {"greeting", "awaiting_order"}
TERMINAL_STATES = {"finalized", "cancelled", "abandoned"}


class State(Enum):
    GREETING = "greeting"
    AWAITING_ORDER = "awaiting_order"
    CONFIRMING_ORDER = "confirming_order"
    AWAITING_RETRY = "awaiting_retry"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"
    ABANDONED = "abandoned"

    @property
    def is_order_taking(self) -> bool:
        return self.value in ORDER_TAKING_STATES

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STATES


class Language(Enum):
    ENGLISH = "english"
    HINDI = "hindi"
    TELUGU = "telugu"
    SPANISH = "spanish"

    @classmethod
    def parse(cls, value: str) -> "Language":
        """Look up a language by its value, case-insensitively."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported language: {value!r}") from None


# Fixed order used to break scoring ties
LANGUAGE_ORDER = (Language.ENGLISH, Language.HINDI, Language.TELUGU, Language.SPANISH)
