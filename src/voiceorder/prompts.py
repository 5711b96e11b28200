from dataclasses import dataclass
from enum import Enum

from voiceorder.locale_bundle import LocaleBundle
from voiceorder.menu import MenuSnapshot
from voiceorder.session import PendingOrder
from voiceorder.states import LANGUAGE_ORDER, Language

HELP_MENU_ITEMS = 5


class Directive(Enum):
    GATHER = "gather"
    END_CALL = "end_call"


@dataclass(frozen=True)
class Segment:
    text: str
    language: Language


@dataclass(frozen=True)
class PromptPlan:
    """Provider-agnostic answer to a webhook: what to say, then gather or hang up."""

    segments: tuple[Segment, ...]
    directive: Directive
    language: Language

    @property
    def text(self) -> str:
        return " ".join(s.text for s in self.segments if s.text)

    @property
    def end_call(self) -> bool:
        return self.directive == Directive.END_CALL

    @classmethod
    def say(cls, text: str, language: Language, *, end_call: bool = False) -> "PromptPlan":
        return cls(
            segments=(Segment(text, language),),
            directive=Directive.END_CALL if end_call else Directive.GATHER,
            language=language,
        )

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "language": self.language.value,
            "directive": self.directive.value,
            "segments": [{"text": s.text, "language": s.language.value} for s in self.segments],
        }


def describe_order(pending: PendingOrder, menu: MenuSnapshot) -> str:
    """Spoken item list such as "2 Butter Chicken, 3 Naan", using canonical menu names."""
    parts = []
    for fragment in pending.fragments:
        item = menu.get(fragment.menu_item_id)
        name = item.name if item else fragment.matched_alias
        parts.append(f"{fragment.quantity} {name}")
    return ", ".join(parts)


def order_readback(bundle: LocaleBundle, language: Language, pending: PendingOrder, menu: MenuSnapshot) -> str:
    return " ".join([
        bundle.get(language, "confirmation_prompt"),
        describe_order(pending, menu) + ".",
        bundle.get(language, "confirm_instructions"),
    ])


def help_prompt(bundle: LocaleBundle, language: Language, menu: MenuSnapshot) -> str:
    names = menu.names(HELP_MENU_ITEMS)
    if not names:
        return bundle.get(language, "order_prompt")
    return bundle.render(language, "help_text", menu_items=", ".join(names))


def greeting_prompt(bundle: LocaleBundle, language: Language) -> str:
    return bundle.get(language, "greeting")


def order_confirmed_prompt(bundle: LocaleBundle, language: Language, order_number: str) -> str:
    return " ".join([
        bundle.render(language, "order_confirmed", order_number=order_number),
        bundle.get(language, "farewell"),
    ])


def language_menu_segments(bundle: LocaleBundle) -> tuple[Segment, ...]:
    """Keypad language menu, each line spoken in its own language."""
    return tuple(Segment(bundle.get(lang, "language_menu"), lang) for lang in LANGUAGE_ORDER)


def unavailable_segments(bundle: LocaleBundle) -> tuple[Segment, ...]:
    return tuple(Segment(bundle.get(lang, "unavailable_text"), lang) for lang in LANGUAGE_ORDER)
