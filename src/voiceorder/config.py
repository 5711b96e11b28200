"""Startup configuration.

validate_config() checks that required environment variables are set
before the server accepts calls, so a missing key is a clear startup
failure rather than a mid-call crash. load_settings() turns the
environment into a frozen Settings object.
"""

import os
import sys
import logging
from dataclasses import dataclass, replace

from voiceorder.errors import ConfigError
from voiceorder.states import Language

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "ORDER_SERVICE_URL",
]

OPTIONAL_VARS = [
    "ORDER_SERVICE_API_KEY",
    "NOTIFY_URL",
    "ALERTS_URL",
    "WEBHOOK_SECRET",
    "LOCALE_BUNDLE_PATH",
    "LOG_LEVEL",
]

# Voice settings that can change while the server runs
VOICE_SETTING_KEYS = ("max_retries", "auto_answer_calls", "default_language", "auto_detect_language")


@dataclass(frozen=True)
class Settings:
    max_retries: int = 3
    auto_answer_calls: bool = True
    default_language: Language = Language.ENGLISH
    auto_detect_language: bool = True
    language_confidence_threshold: float = 25.0
    # ASR transcripts below this confidence never set the session language
    asr_confidence_floor: float = 0.4

    order_service_url: str = ""
    order_service_api_key: str = ""
    order_service_timeout: float = 5.0
    menu_fetch_timeout: float = 3.0

    notify_url: str = ""
    alerts_url: str = ""
    webhook_secret: str = ""

    inactivity_timeout_seconds: float = 30.0
    sweep_interval_seconds: float = 10.0
    session_lock_timeout_seconds: float = 0.5
    locale_bundle_path: str = ""

    def public_dict(self) -> dict:
        """Voice settings safe to expose over the API (no secrets)."""
        return {
            "max_retries": self.max_retries,
            "auto_answer_calls": self.auto_answer_calls,
            "default_language": self.default_language.value,
            "auto_detect_language": self.auto_detect_language,
            "language_confidence_threshold": self.language_confidence_threshold,
            "asr_confidence_floor": self.asr_confidence_floor,
            "inactivity_timeout_seconds": self.inactivity_timeout_seconds,
        }


def validate_config() -> None:
    """Validate environment variables at startup.

    Exits the process with a clear error if any required variable is missing
    or empty.  Logs warnings for missing optional variables.
    """
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]

    if missing:
        print(
            f"\nFATAL: Missing required environment variables:\n"
            f"  {', '.join(missing)}\n"
            f"\nSet them in .env (local) or the deployment environment.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    for var in OPTIONAL_VARS:
        if not os.getenv(var):
            logger.warning("Optional env var %s is not set", var)


def _get_bool(env, key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def _get_number(env, key: str, default, cast):
    value = env.get(key)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


def _get_language(env, key: str, default: Language) -> Language:
    value = env.get(key)
    if value is None or value == "":
        return default
    try:
        return Language.parse(value)
    except ValueError as e:
        raise ConfigError(f"{key}: {e}") from None


def _as_env_value(value) -> str:
    # JSON booleans would otherwise read as the integers 1 and 0
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def load_settings(env=None) -> Settings:
    """Build Settings from the environment (os.environ by default)."""
    env = os.environ if env is None else env

    settings = Settings(
        max_retries=_get_number(env, "MAX_RETRIES", 3, int),
        auto_answer_calls=_get_bool(env, "AUTO_ANSWER_CALLS", True),
        default_language=_get_language(env, "DEFAULT_LANGUAGE", Language.ENGLISH),
        auto_detect_language=_get_bool(env, "AUTO_DETECT_LANGUAGE", True),
        language_confidence_threshold=_get_number(env, "LANGUAGE_CONFIDENCE_THRESHOLD", 25.0, float),
        asr_confidence_floor=_get_number(env, "ASR_CONFIDENCE_FLOOR", 0.4, float),
        order_service_url=env.get("ORDER_SERVICE_URL", ""),
        order_service_api_key=env.get("ORDER_SERVICE_API_KEY", ""),
        order_service_timeout=_get_number(env, "ORDER_SERVICE_TIMEOUT", 5.0, float),
        menu_fetch_timeout=_get_number(env, "MENU_FETCH_TIMEOUT", 3.0, float),
        notify_url=env.get("NOTIFY_URL", ""),
        alerts_url=env.get("ALERTS_URL", ""),
        webhook_secret=env.get("WEBHOOK_SECRET", ""),
        inactivity_timeout_seconds=_get_number(env, "INACTIVITY_TIMEOUT_SECONDS", 30.0, float),
        sweep_interval_seconds=_get_number(env, "SWEEP_INTERVAL_SECONDS", 10.0, float),
        session_lock_timeout_seconds=_get_number(env, "SESSION_LOCK_TIMEOUT_SECONDS", 0.5, float),
        locale_bundle_path=env.get("LOCALE_BUNDLE_PATH", ""),
    )
    if settings.max_retries < 0:
        raise ConfigError("MAX_RETRIES must be >= 0")
    return settings


def update_voice_settings(settings: Settings, updates: dict) -> Settings:
    """Return a copy of settings with the given voice settings changed.

    Values go through the same checks as the environment, so a bad update
    raises ConfigError and leaves settings untouched.
    """
    unknown = sorted(set(updates) - set(VOICE_SETTING_KEYS))
    if unknown:
        raise ConfigError(f"Unknown voice settings: {', '.join(unknown)}")

    env = {key: _as_env_value(value) for key, value in updates.items()}
    changed = replace(
        settings,
        max_retries=_get_number(env, "max_retries", settings.max_retries, int),
        auto_answer_calls=_get_bool(env, "auto_answer_calls", settings.auto_answer_calls),
        default_language=_get_language(env, "default_language", settings.default_language),
        auto_detect_language=_get_bool(env, "auto_detect_language", settings.auto_detect_language),
    )
    if changed.max_retries < 0:
        raise ConfigError("max_retries must be >= 0")
    return changed
