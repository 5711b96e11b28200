"""Keyword intent classification.

Cancel is checked before Help, and anything else is treated as an order
attempt. Confirmation uses its own narrower keyword lists plus the keypad.
"""

import re
from enum import Enum

from voiceorder.extraction import NO_X_EXCLUDED
from voiceorder.states import Language
from voiceorder.textmatch import match_any_keyword, normalize_phrase


class Intent(Enum):
    HELP = "help"
    CANCEL = "cancel"
    CONFIRM = "confirm"
    DENY = "deny"
    ORDER = "order"


# Bare English "no" and "don't want" are left out: "no onions" and
# "I don't want onions" are modifiers, not a cancel.
CANCEL_KEYWORDS = {
    Language.ENGLISH: frozenset({
        "cancel", "cancel it", "cancel my order", "stop", "never mind", "nevermind",
        "forget it", "hang up", "don't want anything", "do not want anything",
        "don't want the order", "don't want my order", "don't want to order", "do not want to order",
    }),
    Language.HINDI: frozenset({
        "रद्द", "रद्द करो", "रद्द करें", "बंद करो", "ऑर्डर नहीं चाहिए",
        "cancel", "radd", "band karo", "order nahi chahiye",
    }),
    Language.TELUGU: frozenset({
        "రద్దు", "రద్దు చేయండి", "ఆపు", "ఆపండి", "ఆర్డర్ వద్దు",
        "cancel", "order vaddu", "aapu",
    }),
    Language.SPANISH: frozenset({
        "cancelar", "cancela", "cancelarlo", "detener", "parar", "olvidalo", "ya no quiero",
    }),
}

HELP_KEYWORDS = {
    Language.ENGLISH: frozenset({
        "help", "menu", "options", "recommend", "recommendation",
        "what do you have", "what's good", "what do you recommend",
    }),
    Language.HINDI: frozenset({
        "मदद", "मेनू", "मेन्यू", "विकल्प", "सिफारिश", "क्या है",
        "menu", "help", "madad",
    }),
    Language.TELUGU: frozenset({
        "సహాయం", "మెనూ", "ఎంపికలు", "సిఫార్సు", "ఏమి ఉన్నాయి",
        "menu", "help", "sahayam",
    }),
    Language.SPANISH: frozenset({
        "ayuda", "menú", "opciones", "recomendar", "recomienda", "que tienen",
    }),
}

CONFIRM_KEYWORDS = {
    Language.ENGLISH: frozenset({
        "yes", "yeah", "yep", "confirm", "correct", "right", "okay", "ok",
        "sounds good", "that's right", "go ahead",
    }),
    Language.HINDI: frozenset({
        "हां", "हाँ", "सही", "ठीक", "ठीक है", "haan", "ha", "sahi", "theek hai", "yes",
    }),
    Language.TELUGU: frozenset({
        "అవును", "సరే", "సరైనది", "ఒప్పు", "సరి", "avunu", "sare", "yes",
    }),
    Language.SPANISH: frozenset({
        "sí", "confirmar", "confirmo", "correcto", "bien", "vale", "claro", "de acuerdo",
    }),
}

DENY_KEYWORDS = {
    Language.ENGLISH: frozenset({
        "no", "nope", "nah", "wrong", "incorrect", "not right", "not correct", "that's wrong",
    }),
    Language.HINDI: frozenset({
        "नहीं", "नही", "गलत", "ग़लत", "nahi", "nahin", "galat", "no",
    }),
    Language.TELUGU: frozenset({
        "లేదు", "కాదు", "తప్పు", "ledu", "kaadu", "tappu", "no",
    }),
    Language.SPANISH: frozenset({
        "no", "incorrecto", "equivocado", "esta mal", "no es correcto",
    }),
}

RETRY_KEYWORDS = {
    Language.ENGLISH: frozenset({"yes", "yeah", "sure", "try", "again", "retry", "okay", "ok"}),
    Language.HINDI: frozenset({"हां", "हाँ", "फिर", "पुनः", "ठीक", "haan", "phir se", "yes"}),
    Language.TELUGU: frozenset({"అవును", "మళ్లీ", "మరలా", "సరే", "ఒప్పు", "avunu", "malli", "yes"}),
    Language.SPANISH: frozenset({"sí", "intentar", "otra vez", "vale", "claro", "de nuevo"}),
}

CONFIRM_DIGIT = "1"
DENY_DIGIT = "2"

_NO_MODIFIER_RE = re.compile(r"(?<!\S)no (\S+)")


def classify(text: str, language: Language) -> Intent:
    """Cancel > Help > Order. Never raises."""
    if match_any_keyword(text, CANCEL_KEYWORDS[language]):
        return Intent.CANCEL
    if match_any_keyword(text, HELP_KEYWORDS[language]):
        return Intent.HELP
    return Intent.ORDER


def _strip_no_modifiers(text: str) -> str:
    """Drop "no onions" style modifiers so their "no" is not read as a refusal."""
    return _NO_MODIFIER_RE.sub(
        lambda m: m.group(0) if m.group(1) in NO_X_EXCLUDED else " ",
        normalize_phrase(text),
    )


def classify_confirmation(text: str, language: Language, digits: str = "") -> Intent:
    """Confirm or Deny for the read-back question.

    Deny is checked first so "no, that's not right" is not read as a yes.
    Anything that is not a clear confirmation is a Deny.
    """
    digits = (digits or "").strip()
    if digits == CONFIRM_DIGIT:
        return Intent.CONFIRM
    if digits == DENY_DIGIT:
        return Intent.DENY
    answer = _strip_no_modifiers(text)
    if match_any_keyword(answer, DENY_KEYWORDS[language]):
        return Intent.DENY
    if match_any_keyword(answer, CONFIRM_KEYWORDS[language]):
        return Intent.CONFIRM
    return Intent.DENY


def is_affirmative(text: str, language: Language, digits: str = "") -> bool:
    """Caller agreed to try the order again."""
    if (digits or "").strip() == CONFIRM_DIGIT:
        return True
    answer = _strip_no_modifiers(text)
    if match_any_keyword(answer, DENY_KEYWORDS[language]):
        return False
    return match_any_keyword(answer, RETRY_KEYWORDS[language])
