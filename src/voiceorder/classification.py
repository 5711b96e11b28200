"""Classifier seam between the dialogue controller and the matchers.

The state machine only talks to a Classifier, so a statistical or
model-backed matcher can replace the lexical one without touching the
dialogue logic.
"""

from typing import Protocol

from voiceorder import extraction, intent
from voiceorder import language as detection
from voiceorder.intent import Intent
from voiceorder.language import CONFIDENCE_THRESHOLD, DetectionResult
from voiceorder.menu import MenuSnapshot
from voiceorder.session import OrderDelta
from voiceorder.states import Language


class Classifier(Protocol):
    def detect(self, text: str, prior_language: Language | None = None) -> DetectionResult: ...

    def classify(self, text: str, language: Language) -> Intent: ...

    def classify_confirmation(self, text: str, language: Language, digits: str = "") -> Intent: ...

    def is_affirmative(self, text: str, language: Language, digits: str = "") -> bool: ...

    def language_reselection(self, text: str = "", digits: str = "") -> Language | None: ...

    def extract(self, text: str, menu: MenuSnapshot, language: Language | None = None) -> OrderDelta: ...


class LexicalClassifier:
    """Keyword and pattern matching over normalized text."""

    def __init__(
        self,
        default_language: Language = Language.ENGLISH,
        threshold: float = CONFIDENCE_THRESHOLD,
    ):
        self.default_language = default_language
        self.threshold = threshold

    def detect(self, text: str, prior_language: Language | None = None) -> DetectionResult:
        return detection.detect(
            text,
            prior_language,
            default_language=self.default_language,
            threshold=self.threshold,
        )

    def classify(self, text: str, language: Language) -> Intent:
        return intent.classify(text, language)

    def classify_confirmation(self, text: str, language: Language, digits: str = "") -> Intent:
        return intent.classify_confirmation(text, language, digits)

    def is_affirmative(self, text: str, language: Language, digits: str = "") -> bool:
        return intent.is_affirmative(text, language, digits)

    def language_reselection(self, text: str = "", digits: str = "") -> Language | None:
        return detection.detect_language_reselection(text, digits)

    def extract(self, text: str, menu: MenuSnapshot, language: Language | None = None) -> OrderDelta:
        return extraction.extract(text, menu, language)
