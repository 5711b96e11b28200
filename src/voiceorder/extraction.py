"""Lexical order extraction against a menu snapshot.

extract() pairs quantities with menu item names and aliases, collects
modifier and special-instruction phrases as flat lists, and picks up
delivery or dine-in intent. It is pure and never raises: an utterance
with nothing recognizable yields an empty OrderDelta.
"""

import re

from voiceorder.menu import MenuSnapshot
from voiceorder.session import Fulfillment, OrderDelta, OrderFragment
from voiceorder.states import Language
from voiceorder.textmatch import normalize_phrase

# Matching is lexical, so every fragment carries the same confidence.
EXACT_MATCH_CONFIDENCE = 1.0

MAX_QUANTITY = 99
MAX_FILLER_TOKENS = 2
MAX_PHRASE_TOKENS = 3

_RAW_NUMBER_WORDS = {
    # English
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
    "couple": 2, "dozen": 12,
    # Spanish
    "un": 1, "uno": 1, "una": 1, "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5,
    "seis": 6, "siete": 7, "ocho": 8, "nueve": 9, "diez": 10, "docena": 12,
    # Hindi, Devanagari
    "एक": 1, "दो": 2, "तीन": 3, "चार": 4, "पांच": 5, "पाँच": 5,
    "छह": 6, "छः": 6, "सात": 7, "आठ": 8, "नौ": 9, "दस": 10,
    # Telugu, romanized and script
    "oka": 1, "okati": 1, "rendu": 2, "moodu": 3, "naalugu": 4, "aidu": 5, "aaru": 6,
    "ఒక": 1, "ఒకటి": 1, "రెండు": 2, "మూడు": 3, "నాలుగు": 4, "ఐదు": 5,
    "ఆరు": 6, "ఏడు": 7, "ఎనిమిది": 8, "తొమ్మిది": 9, "పది": 10,
}
NUMBER_WORDS = {normalize_phrase(word): value for word, value in _RAW_NUMBER_WORDS.items()}

# Romanized Hindi numbers collide with English words ("can you do the naan"),
# so they only count once the call is in Hindi.
ROMANIZED_HINDI_NUMBER_WORDS = {
    "ek": 1, "do": 2, "teen": 3, "char": 4, "paanch": 5, "panch": 5,
    "chhe": 6, "saat": 7, "aath": 8, "nau": 9, "das": 10,
}

# Tokens allowed between a quantity and the item it counts ("2 plates of naan")
FILLER_TOKENS = frozenset({
    "of", "x", "more", "the", "plate", "plates", "order", "orders", "piece", "pieces",
    "serving", "servings", "portion", "portions", "bowl", "bowls", "glass", "glasses",
    "cup", "cups", "de", "plato", "platos", "orden", "ordenes", "porcion", "porciones",
    "pieza", "piezas", "vaso", "vasos", "el", "la", "los", "las", "aur",
    "प्लेट", "ప్లేట్",
})

# Words that end a captured instruction phrase
PHRASE_STOP_TOKENS = frozenset({
    "and", "or", "but", "please", "with", "also", "plus", "then", "thanks", "thank",
    "y", "o", "pero", "por", "con", "aur", "और", "మరియు", "కూడా",
})

SPICE_TERMS = {
    "extra spicy": "extra spicy", "very spicy": "extra spicy", "extra hot": "extra spicy",
    "medium spicy": "medium spicy", "spicy": "spicy", "mild": "mild",
    "less spicy": "mild", "not spicy": "mild", "no spice": "mild",
    "muy picante": "extra spicy", "picante": "spicy", "poco picante": "mild", "sin picante": "mild",
    "teekha": "spicy", "tikha": "spicy", "kam teekha": "mild", "zyada teekha": "extra spicy",
    "तीखा": "spicy", "कम तीखा": "mild", "ज़्यादा तीखा": "extra spicy", "ज्यादा तीखा": "extra spicy",
    "karam": "spicy", "కారం": "spicy", "తక్కువ కారం": "mild", "ఎక్కువ కారం": "extra spicy",
}

DIETARY_TERMS = {
    "vegan": "vegan", "vegetarian": "vegetarian", "jain": "jain", "halal": "halal",
    "gluten free": "gluten free", "dairy free": "dairy free", "nut free": "nut free",
    "vegano": "vegan", "vegetariano": "vegetarian", "sin gluten": "gluten free",
    "shakahari": "vegetarian", "शाकाहारी": "vegetarian", "జైన్": "jain", "శాకాహారం": "vegetarian",
}

# "no thanks", "no wait" and friends are refusals, not modifiers
NO_X_EXCLUDED = frozenset({
    "thanks", "thank", "problem", "that", "thats", "i", "it", "more", "worries", "one",
    "spice", "spicy", "its", "not", "no", "wait", "sorry", "the", "way", "actually", "im",
    "es", "esta", "gracias", "me", "lo", "eso",
})

# Trigger phrase followed by what it applies to
PREFIX_INSTRUCTION_TRIGGERS = (
    "allergic to", "allergy to", "without", "extra", "less", "don't want", "do not want",
    "alergico a", "alergica a", "sin", "bina", "बिना",
)
# Triggers recorded under a canonical wording
INSTRUCTION_TRIGGER_LABELS = {
    "dont want": "without",
    "do not want": "without",
}
# Trigger phrase preceded by what it applies to ("ఉల్లిపాయ లేకుండా")
SUFFIX_INSTRUCTION_TRIGGERS = (
    "से एलर्जी", "se allergy", "లేకుండా", "lekunda", "అలెర్జీ",
)

DELIVERY_PHRASES = (
    "delivery", "deliver", "delivered", "home delivery", "send it", "to my address",
    "a domicilio", "entrega", "envio", "enviar",
    "डिलीवरी", "होम डिलीवरी", "घर पर", "ghar pe", "ghar par",
    "డెలివరీ", "ఇంటికి", "intiki",
)
DINE_IN_PHRASES = (
    "dine in", "eat here", "eat in", "for here", "table for",
    "comer aqui", "para comer aqui", "en el restaurante",
    "यहीं खाएंगे", "यहाँ खाएंगे", "yahin khayenge",
    "ఇక్కడే తింటాము", "ikkade tintamu",
)


def _alternation(phrases) -> re.Pattern:
    ordered = sorted({normalize_phrase(p) for p in phrases}, key=lambda p: (-len(p), p))
    return re.compile(r"(?<!\S)(" + "|".join(re.escape(p) for p in ordered if p) + r")(?!\S)")


_SPICE_LABELS = {normalize_phrase(k): v for k, v in SPICE_TERMS.items()}
_DIETARY_LABELS = {normalize_phrase(k): v for k, v in DIETARY_TERMS.items()}
_MODIFIER_RE = _alternation([*_SPICE_LABELS, *_DIETARY_LABELS])
_NO_X_RE = re.compile(r"(?<!\S)no (\S+)")
_PREFIX_TRIGGER_RE = _alternation(PREFIX_INSTRUCTION_TRIGGERS)
_SUFFIX_TRIGGER_RE = _alternation(SUFFIX_INSTRUCTION_TRIGGERS)
_DELIVERY_RE = _alternation(DELIVERY_PHRASES)
_DINE_IN_RE = _alternation(DINE_IN_PHRASES)


def parse_quantity(token: str, language: Language | None = None) -> int | None:
    """Quantity for a single token: digits (any script), "2x", or a number word."""
    if token.endswith("x") and token[:-1].isdecimal():
        token = token[:-1]
    if token.isdecimal():
        value = int(token)
    else:
        value = NUMBER_WORDS.get(token)
        if value is None and language == Language.HINDI:
            value = ROMANIZED_HINDI_NUMBER_WORDS.get(token)
    if value is None or not 1 <= value <= MAX_QUANTITY:
        return None
    return value


def _token_matches(token: str, term_token: str, is_last: bool) -> bool:
    if token == term_token:
        return True
    return is_last and token in (term_token + "s", term_token + "es")


def _find_mentions(tokens: list[str], menu: MenuSnapshot) -> list[tuple[int, int, str, object]]:
    """Non-overlapping item mentions as (start, end, term, item), left to right."""
    mentions = []
    i = 0
    while i < len(tokens):
        for term_tokens, term, item in menu.vocabulary:
            end = i + len(term_tokens)
            if end > len(tokens):
                continue
            last = len(term_tokens) - 1
            if all(
                _token_matches(tokens[i + k], term_tokens[k], k == last)
                for k in range(len(term_tokens))
            ):
                mentions.append((i, end, term, item))
                i = end
                break
        else:
            i += 1
    return mentions


def _preceding_quantity(tokens, start, floor, language) -> tuple[int, int] | None:
    """(index, value) of the quantity before a mention, skipping fillers."""
    skipped = 0
    i = start - 1
    while i >= floor:
        value = parse_quantity(tokens[i], language)
        if value is not None:
            return i, value
        if tokens[i] in FILLER_TOKENS and skipped < MAX_FILLER_TOKENS:
            skipped += 1
            i -= 1
            continue
        return None
    return None


def _match_items(tokens: list[str], menu: MenuSnapshot, language: Language | None) -> list[OrderFragment]:
    mentions = _find_mentions(tokens, menu)
    quantities: list[int | None] = []
    used: set[int] = set()

    floor = 0
    for start, end, _, _ in mentions:
        found = _preceding_quantity(tokens, start, floor, language)
        if found is not None:
            used.add(found[0])
            quantities.append(found[1])
        else:
            quantities.append(None)
        floor = end

    # Quantity after the item ("biryani rendu") when nothing preceded it
    for n, (start, end, _, _) in enumerate(mentions):
        if quantities[n] is not None or end >= len(tokens) or end in used:
            continue
        value = parse_quantity(tokens[end], language)
        if value is not None:
            used.add(end)
            quantities[n] = value

    totals: dict[str, int] = {}
    aliases: dict[str, str] = {}
    order: list[str] = []
    for (start, end, term, item), quantity in zip(mentions, quantities):
        if item.id not in totals:
            order.append(item.id)
            totals[item.id] = 0
            aliases[item.id] = term
        totals[item.id] += quantity or 1

    return [
        OrderFragment(
            menu_item_id=item_id,
            matched_alias=aliases[item_id],
            quantity=min(totals[item_id], MAX_QUANTITY),
            confidence=EXACT_MATCH_CONFIDENCE,
        )
        for item_id in order
        if menu.resolves(item_id)
    ]


def _take_phrase(tokens: list[str]) -> list[str]:
    phrase = []
    for token in tokens:
        if token in PHRASE_STOP_TOKENS or len(phrase) >= MAX_PHRASE_TOKENS:
            break
        phrase.append(token)
    return phrase


def _scan_modifiers(normalized: str) -> list[str]:
    modifiers = []
    for match in _MODIFIER_RE.finditer(normalized):
        phrase = match.group(1)
        label = _SPICE_LABELS.get(phrase) or _DIETARY_LABELS.get(phrase)
        if label and label not in modifiers:
            modifiers.append(label)
    if re.search(r"(?<!\S)(extra|extra de)(?!\S)", normalized) and "extra" not in modifiers:
        modifiers.append("extra")
    for match in _NO_X_RE.finditer(normalized):
        target = match.group(1)
        label = f"no {target}"
        if target not in NO_X_EXCLUDED and label not in modifiers:
            modifiers.append(label)
    return modifiers


def _scan_instructions(normalized: str) -> list[str]:
    """Special-instruction phrases in the order they were spoken."""
    found: list[tuple[int, str]] = []
    for match in _PREFIX_TRIGGER_RE.finditer(normalized):
        rest = normalized[match.end():].split()
        target = _take_phrase(rest)
        if target:
            trigger = INSTRUCTION_TRIGGER_LABELS.get(match.group(1), match.group(1))
            found.append((match.start(), f"{trigger} {' '.join(target)}"))
    for match in _SUFFIX_TRIGGER_RE.finditer(normalized):
        before = normalized[:match.start()].split()
        if before and before[-1] not in PHRASE_STOP_TOKENS:
            found.append((match.start(), f"{before[-1]} {match.group(1)}"))

    instructions = []
    for _, phrase in sorted(found, key=lambda f: f[0]):
        if phrase not in instructions:
            instructions.append(phrase)
    return instructions


def _scan_fulfillment(normalized: str) -> Fulfillment:
    last_delivery = max((m.start() for m in _DELIVERY_RE.finditer(normalized)), default=-1)
    last_dine_in = max((m.start() for m in _DINE_IN_RE.finditer(normalized)), default=-1)
    if last_delivery < 0 and last_dine_in < 0:
        return Fulfillment.UNSPECIFIED
    return Fulfillment.DELIVERY if last_delivery > last_dine_in else Fulfillment.DINE_IN


def extract(text: str, menu: MenuSnapshot, language: Language | None = None) -> OrderDelta:
    """Parse an utterance into an order delta. Never raises.

    language is the call's current language, if known. It only widens the
    number words accepted as quantities.
    """
    normalized = normalize_phrase(text)
    if not normalized:
        return OrderDelta()
    tokens = normalized.split()
    return OrderDelta(
        fragments=tuple(_match_items(tokens, menu, language)),
        modifiers=tuple(_scan_modifiers(normalized)),
        special_instructions=tuple(_scan_instructions(normalized)),
        fulfillment=_scan_fulfillment(normalized),
    )
