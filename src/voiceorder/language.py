"""Language detection for caller utterances.

Detection is deterministic and pure: script blocks first (Devanagari and
Telugu text is definitive), then a battery of lexical pattern groups per
language scored as a percentage of groups matched, plus a small weighted
bonus for high-signal vocabulary. Hindi and Telugu lexical groups cover
romanized speech, since native script never reaches the lexical stage.
"""

import logging
import re
from dataclasses import dataclass

from voiceorder.states import LANGUAGE_ORDER, Language
from voiceorder.textmatch import compile_phrases, normalize_phrase

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 100.0
CONFIDENCE_THRESHOLD = 25.0

# (first, last) code points per language-exclusive script
SCRIPT_BLOCKS = {
    Language.HINDI: (0x0900, 0x097F),
    Language.TELUGU: (0x0C00, 0x0C7F),
}


@dataclass(frozen=True)
class DetectionResult:
    language: Language
    confidence_score: float
    ambiguous: bool = False


def _groups(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p) for p in patterns)


LEXICAL_GROUPS: dict[Language, tuple[re.Pattern, ...]] = {
    Language.ENGLISH: _groups(
        # greetings and ordering verbs
        r"\b(hello|hi|hey|good (morning|afternoon|evening)|order|want|need|get|have|can|could|please|thanks|thank you)\b",
        # food descriptors
        r"\b(spicy|mild|hot|sweet|sour|tasty|delicious|fresh|crispy|curry|sauce|gravy)\b",
        # personal expressions
        r"\b(i would like|i d like|id like|would like|i want|i ll have|ill have|i will have|give me|let me get|can i get)\b",
        # dish names
        r"\b(butter chicken|chicken tikka|tandoori|biryani|naan|paneer|dal|samosa|pizza|burger|fries|sandwich|salad)\b",
        # quantity words
        r"\b(one|two|three|four|five|six|seven|eight|nine|ten|dozen|couple|some|few|single|double)\b",
        # question forms
        r"\b(what|how|which|when|where|do you|is there|are there|how much)\b",
        # order modifiers
        r"\b(with|without|extra|no|less|more|on the side|and|also|plus)\b",
        # preparation terms
        r"\b(fried|grilled|baked|roasted|steamed|boiled|medium|well done|takeaway|delivery|dine in|pick up)\b",
    ),
    Language.HINDI: _groups(
        r"\b(namaste|namaskar|dhanyavad|dhanyawad|shukriya|kripya|order karna|bhejo|dijiye)\b",
        r"\b(teekha|tikha|masaledar|swadisht|meetha|khatta|garam|thanda|tadka)\b",
        r"\b(mujhe|main|mera|meri|chahiye|chahta|chahti|hoon|lena hai|dena)\b",
        r"\b(dal makhani|chole|rajma|aloo|gobi|roti|chawal|paratha|pakora|kulcha)\b",
        r"\b(ek|do|teen|char|paanch|panch|chhe|saat|aath|nau|das|thoda|zyada)\b",
        r"\b(kya|kaun|kaise|kitna|kitne|kahan|kab)\b",
        r"\b(bina|saath|aur|kam|alag se|pack karke)\b",
    ),
    Language.TELUGU: _groups(
        r"\b(namaskaram|dhanyavadalu|dayachesi|kavali|pampandi|ivvandi)\b",
        r"\b(karam|ruchiga|ruchi|teepi|pulupu|vedi|challaga)\b",
        r"\b(naaku|nenu|maaku|memu|kaavali|cheppandi)\b",
        r"\b(gongura|pesarattu|pulihora|avakaya|pappu|annam|koora|perugu|upma)\b",
        r"\b(okati|rendu|moodu|naalugu|aidu|aaru|edu|konchem|ekkuva|takkuva)\b",
        r"\b(enti|emiti|evaru|ela|entha|ekkada|eppudu)\b",
        r"\b(lekunda|tho|inka|mariyu|parcel)\b",
    ),
    Language.SPANISH: _groups(
        r"\b(hola|buenos dias|buenas tardes|buenas noches|quiero|quisiera|necesito|por favor|gracias|pedir|ordenar)\b",
        r"\b(picante|suave|dulce|salado|rico|delicioso|fresco|caliente|salsa)\b",
        r"\b(me gustaria|me da|para mi|deme|dame|yo quiero)\b",
        r"\b(pollo|carne|arroz|pan|pescado|tacos|burrito|enchilada|ensalada|sopa)\b",
        r"\b(uno|una|dos|tres|cuatro|cinco|seis|siete|ocho|nueve|diez|docena)\b",
        r"\b(que|como|cual|cuanto|cuanta|donde|cuando|tienen|hay)\b",
        r"\b(con|sin|extra|mas|menos|tambien|ademas|para llevar)\b",
    ),
}

# High-signal terms. Dishes tied to one cuisine outweigh widely borrowed words.
BONUS_TERMS: dict[Language, dict[str, float]] = {
    Language.ENGLISH: {
        "would like": 15.0, "i want": 10.0, "please": 5.0, "thank you": 5.0, "curry": 2.0,
    },
    Language.HINDI: {
        "dal makhani": 20.0, "rajma": 20.0, "chole": 20.0, "chahiye": 15.0,
        "mujhe": 15.0, "kripya": 10.0, "naan": 2.0,
    },
    Language.TELUGU: {
        "pesarattu": 20.0, "gongura": 20.0, "pulihora": 20.0, "avakaya": 20.0,
        "kavali": 15.0, "naaku": 15.0, "biryani": 2.0,
    },
    Language.SPANISH: {
        "paella": 20.0, "gazpacho": 20.0, "churros": 20.0, "quiero": 15.0,
        "por favor": 15.0, "gracias": 10.0, "tacos": 5.0,
    },
}

_BONUS_PATTERNS = {
    lang: tuple((re.compile(rf"\b{re.escape(term)}\b"), weight) for term, weight in terms.items())
    for lang, terms in BONUS_TERMS.items()
}


def script_language(text: str) -> Language | None:
    """Return the language whose exclusive script dominates the text, if any."""
    counts = {lang: 0 for lang in SCRIPT_BLOCKS}
    for ch in text or "":
        cp = ord(ch)
        for lang, (first, last) in SCRIPT_BLOCKS.items():
            if first <= cp <= last:
                counts[lang] += 1
    best = max(counts.values())
    if best == 0:
        return None
    # Dict order puts Hindi first, so Devanagari wins ties
    return next(lang for lang, n in counts.items() if n == best)


def lexical_scores(text: str) -> dict[Language, float]:
    normalized = normalize_phrase(text)
    scores = {}
    for lang in LANGUAGE_ORDER:
        groups = LEXICAL_GROUPS[lang]
        matched = sum(1 for pattern in groups if pattern.search(normalized))
        score = matched / len(groups) * 100
        for pattern, weight in _BONUS_PATTERNS[lang]:
            if pattern.search(normalized):
                score += weight
        scores[lang] = min(round(score, 1), MAX_CONFIDENCE)
    return scores


def detect(
    text: str,
    prior_language: Language | None = None,
    *,
    default_language: Language = Language.ENGLISH,
    threshold: float = CONFIDENCE_THRESHOLD,
) -> DetectionResult:
    """Classify the language of an utterance.

    Never raises. Below the threshold the default language is returned with
    its own score and ambiguous=True.
    """
    scripted = script_language(text)
    if scripted is not None:
        return DetectionResult(scripted, MAX_CONFIDENCE)

    scores = lexical_scores(text)

    def rank(lang: Language):
        return (
            -scores[lang],
            lang != prior_language,
            lang != default_language,
            LANGUAGE_ORDER.index(lang),
        )

    best = min(LANGUAGE_ORDER, key=rank)
    if scores[best] < threshold:
        logger.debug(
            "Language ambiguous (best %s at %.1f < %.1f), using %s",
            best.value, scores[best], threshold, default_language.value,
        )
        return DetectionResult(default_language, scores[default_language], ambiguous=True)
    return DetectionResult(best, scores[best])


# ── Explicit language reselection ─────────────────────────────────

# Keypad menu offered when auto-detection is off: 1 English, 2 Hindi, 3 Telugu, 4 Spanish
DIGIT_LANGUAGES = {
    "1": Language.ENGLISH,
    "2": Language.HINDI,
    "3": Language.TELUGU,
    "4": Language.SPANISH,
}

RESELECTION_PHRASES: dict[Language, tuple[str, ...]] = {
    Language.ENGLISH: (
        "in english", "speak english", "english please", "switch to english",
        "en ingles", "angrezi mein", "अंग्रेज़ी में", "अंग्रेजी में", "ఇంగ్లీష్ లో", "ఇంగ్లీషులో",
    ),
    Language.HINDI: (
        "in hindi", "speak hindi", "hindi please", "switch to hindi",
        "hindi mein", "हिंदी में", "हिन्दी में", "en hindi",
    ),
    Language.TELUGU: (
        "in telugu", "speak telugu", "telugu please", "switch to telugu",
        "telugu lo", "తెలుగులో", "తెలుగు లో", "तेलुगु में", "en telugu",
    ),
    Language.SPANISH: (
        "in spanish", "speak spanish", "spanish please", "switch to spanish",
        "en espanol", "habla espanol", "hable espanol", "espanol por favor",
    ),
}

_RESELECTION_PATTERNS = {
    lang: compile_phrases(phrases) for lang, phrases in RESELECTION_PHRASES.items()
}


def detect_language_reselection(text: str = "", digits: str = "") -> Language | None:
    """Detect an explicit request to change the call language.

    A single keypad digit from the language menu counts, as do spoken
    requests such as "in Hindi" or "en español".
    """
    digits = (digits or "").strip()
    if digits in DIGIT_LANGUAGES:
        return DIGIT_LANGUAGES[digits]

    normalized = normalize_phrase(text)
    if not normalized:
        return None
    for lang in LANGUAGE_ORDER:
        for pattern in _RESELECTION_PATTERNS[lang]:
            if pattern.search(normalized):
                return lang
    return None
