"""Locale resource bundle.

Every prompt the engine speaks comes from here, keyed by (language,
template key). The bundle is validated once at startup: a missing or
empty template for any supported language is a ConfigError, never a
mid-call surprise. Adding a language is a data change to locales.json
(plus its matcher vocabulary).
"""

import json
import logging
from pathlib import Path

from voiceorder.errors import ConfigError
from voiceorder.states import Language

logger = logging.getLogger(__name__)

DEFAULT_BUNDLE_PATH = Path(__file__).with_name("locales.json")

REQUIRED_KEYS = (
    "greeting",
    "confirmation_prompt",
    "farewell",
    "help_text",
    "cancel_text",
    "no_input_text",
    "order_prompt",
    "confirm_instructions",
    "order_confirmed",
    "retry_offer",
    "try_again",
    "goodbye",
    "clarify_text",
    "error_text",
    "unavailable_text",
    "language_selected",
    "language_menu",
)

# Placeholders a template must contain to be usable
REQUIRED_PLACEHOLDERS = {
    "order_confirmed": "{order_number}",
    "help_text": "{menu_items}",
}


class LocaleBundle:
    def __init__(self, templates: dict[Language, dict[str, str]]):
        self._templates = templates

    @property
    def languages(self) -> tuple[Language, ...]:
        return tuple(self._templates)

    def get(self, language: Language, key: str) -> str:
        return self._templates[language][key]

    def render(self, language: Language, key: str, **values) -> str:
        template = self.get(language, key)
        return template.format(**values) if values else template

    def validate(self) -> "LocaleBundle":
        """Raise ConfigError listing every missing template."""
        problems = []
        for language in Language:
            templates = self._templates.get(language)
            if templates is None:
                problems.append(f"{language.value}: language missing")
                continue
            for key in REQUIRED_KEYS:
                value = templates.get(key)
                if not isinstance(value, str) or not value.strip():
                    problems.append(f"{language.value}.{key}")
                    continue
                placeholder = REQUIRED_PLACEHOLDERS.get(key)
                if placeholder and placeholder not in value:
                    problems.append(f"{language.value}.{key} lacks {placeholder}")
        if problems:
            raise ConfigError("Locale bundle incomplete: " + ", ".join(problems))
        return self

    @classmethod
    def from_dict(cls, raw: dict) -> "LocaleBundle":
        templates = {}
        for name, entries in (raw or {}).items():
            try:
                language = Language.parse(name)
            except ValueError:
                logger.warning("Ignoring locale for unsupported language %r", name)
                continue
            if not isinstance(entries, dict):
                raise ConfigError(f"Locale entry for {name!r} must be an object")
            templates[language] = dict(entries)
        return cls(templates)


def load_bundle(path: str | Path | None = None) -> LocaleBundle:
    """Load and validate a bundle from JSON, defaulting to the packaged one."""
    bundle_path = Path(path) if path else DEFAULT_BUNDLE_PATH
    try:
        raw = json.loads(bundle_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read locale bundle {bundle_path}: {e}") from e
    bundle = LocaleBundle.from_dict(raw).validate()
    logger.info("Loaded locale bundle from %s (%d languages)", bundle_path, len(bundle.languages))
    return bundle
