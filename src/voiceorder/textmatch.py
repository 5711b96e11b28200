"""Text normalization and phrase matching shared by the detectors."""

import re
import unicodedata

_APOSTROPHES = {"'", "’", "‘", "`", "´"}
_LATIN_LIMIT = 0x0250


def normalize_phrase(text: str) -> str:
    """Normalize text for matching across all supported scripts.

    Casefolds, strips accents from Latin letters only (so "menú" matches
    "menu" while Devanagari and Telugu vowel signs survive), drops
    apostrophes, turns other punctuation into spaces and collapses
    whitespace.
    """
    text = unicodedata.normalize("NFKD", (text or "").casefold())
    chars = []
    base = ""
    for ch in text:
        if unicodedata.combining(ch):
            if base and ord(base) < _LATIN_LIMIT:
                continue
            chars.append(ch)
            continue
        base = ch
        if ch in _APOSTROPHES:
            continue
        if unicodedata.category(ch)[0] in ("P", "S"):
            chars.append(" ")
        else:
            chars.append(ch)
    text = unicodedata.normalize("NFC", "".join(chars))
    return " ".join(text.split())


def phrase_pattern(phrase: str) -> re.Pattern:
    """Whole-phrase pattern over normalized text.

    Whitespace boundaries are used instead of \\b because Indic words often
    end in a combining mark, which \\b does not treat as a word character.
    """
    return re.compile(r"(?<!\S)" + re.escape(normalize_phrase(phrase)) + r"(?!\S)")


def compile_phrases(phrases) -> tuple[re.Pattern, ...]:
    return tuple(phrase_pattern(p) for p in sorted(phrases, key=lambda p: (-len(p), p)) if normalize_phrase(p))


def match_any_keyword(text: str, keywords) -> bool:
    """Check if any keyword appears in text as a whole word or phrase (not substring)."""
    normalized = normalize_phrase(text)
    if not normalized:
        return False
    return any(phrase_pattern(kw).search(normalized) for kw in keywords if normalize_phrase(kw))
