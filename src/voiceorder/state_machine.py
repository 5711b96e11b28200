import logging
import time
from dataclasses import dataclass, field, replace

from voiceorder.classification import Classifier, LexicalClassifier
from voiceorder.config import Settings
from voiceorder.errors import DialogueCondition
from voiceorder.intent import Intent
from voiceorder.locale_bundle import LocaleBundle, load_bundle
from voiceorder.prompts import greeting_prompt, help_prompt, order_confirmed_prompt, order_readback
from voiceorder.session import CallSession, OrderDelta, Speaker, Turn
from voiceorder.states import Language, State

logger = logging.getLogger(__name__)

MATERIALIZE_ORDER = "materialize_order"


@dataclass
class Action:
    speak: str = ""
    call_tool: str = ""
    tool_args: dict = field(default_factory=dict)
    end_call: bool = False


class InvalidTransition(RuntimeError):
    pass


TRANSITIONS = {
    State.GREETING: {State.AWAITING_ORDER, State.CONFIRMING_ORDER, State.CANCELLED, State.ABANDONED},
    State.AWAITING_ORDER: {State.CONFIRMING_ORDER, State.CANCELLED, State.ABANDONED},
    State.CONFIRMING_ORDER: {State.FINALIZED, State.AWAITING_RETRY, State.CANCELLED, State.ABANDONED},
    State.AWAITING_RETRY: {State.AWAITING_ORDER, State.CANCELLED, State.ABANDONED},
    State.FINALIZED: set(),
    State.CANCELLED: set(),
    State.ABANDONED: set(),
}


def _transition(session: CallSession, new_state: State, now: float):
    """Move to new_state, refusing edges outside the state graph."""
    if new_state == session.state:
        return
    if new_state not in TRANSITIONS[session.state]:
        raise InvalidTransition(f"{session.state.value} -> {new_state.value}")
    logger.info("Call %s: %s -> %s", session.call_id, session.state.value, new_state.value)
    session.state = new_state
    if new_state.is_terminal:
        session.finalized_at = now


class StateMachine:
    """Deterministic dialogue controller.

    process() handles one caller turn and returns the Action to take.
    When the action names a tool, the caller runs it and feeds the result
    back through handle_tool_result(). Every turn appends the caller's
    utterance first and the system's reply second.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        bundle: LocaleBundle | None = None,
        classifier: Classifier | None = None,
    ):
        self.settings = settings or Settings()
        self.bundle = bundle or load_bundle()
        self.classifier = classifier or LexicalClassifier(
            default_language=self.settings.default_language,
            threshold=self.settings.language_confidence_threshold,
        )

    # ── Entry points ──────────────────────────────────────────────

    def greet(self, session: CallSession, now: float | None = None) -> Action:
        now = time.time() if now is None else now
        action = Action(speak=greeting_prompt(self.bundle, self._lang(session)))
        self._record(session, action, now)
        return action

    def process(self, session: CallSession, turn: Turn, now: float | None = None) -> Action:
        now = time.time() if now is None else now
        if session.state.is_terminal:
            logger.warning("Turn for call %s after it ended (%s)", session.call_id, session.state.value)
            return Action(speak=self._text(session, "goodbye"), end_call=True)

        session.turn_count += 1
        session.last_activity_at = now
        session.append_utterance(Speaker.CALLER, turn.caller_text, now)

        if 0 < self._settings(session).max_retries <= session.retry_count:
            action = self._abandon(session, now)
        elif turn.is_empty:
            action = self._no_input(session, now)
        else:
            action = self._dispatch(session, turn, now)

        self._record(session, action, now)
        return action

    def handle_tool_result(self, session: CallSession, tool: str, result, now: float | None = None) -> Action:
        now = time.time() if now is None else now
        handler = getattr(self, f"_tool_result_{tool}", None)
        if handler is None:
            logger.warning("No result handler for tool %s", tool)
            return Action()
        action = handler(session, result, now)
        self._record(session, action, now)
        return action

    def abandon(self, session: CallSession, now: float | None = None, reason: str = "") -> None:
        """End a live session without a caller-facing prompt (hangup, failure, unanswered)."""
        now = time.time() if now is None else now
        if session.state.is_terminal:
            return
        logger.info("Call %s abandoned: %s", session.call_id, reason or "unspecified")
        _transition(session, State.ABANDONED, now)

    # ── Turn routing ──────────────────────────────────────────────

    def _dispatch(self, session: CallSession, turn: Turn, now: float) -> Action:
        reselected = None
        if session.state.is_order_taking:
            reselected = self._resolve_language(session, turn)

        language = self._lang(session)
        if turn.text and self.classifier.classify(turn.text, language) == Intent.CANCEL:
            _transition(session, State.CANCELLED, now)
            return Action(speak=self._text(session, "cancel_text"), end_call=True)

        handler = getattr(self, f"_handle_{session.state.value}")
        return handler(session, turn, now, reselected)

    def _resolve_language(self, session: CallSession, turn: Turn) -> Language | None:
        """Apply an explicit reselection, or detect once while no language is set.

        Returns the reselected language, if any. ASR confidence and lexical
        confidence gate independently: a low-confidence transcript never
        sets the language, and neither does an ambiguous detection.
        """
        requested = self.classifier.language_reselection(turn.text, turn.digits)
        if requested is not None:
            if requested != session.language:
                logger.info("Call %s language reselected: %s", session.call_id, requested.value)
            session.language = requested
            return requested

        if not self._settings(session).auto_detect_language or session.language is not None or not turn.text:
            return None
        if turn.confidence is not None and turn.confidence < self.settings.asr_confidence_floor:
            logger.debug(
                "Call %s: ASR confidence %.2f below floor, not detecting language",
                session.call_id, turn.confidence,
            )
            return None

        result = self.classifier.detect(turn.text, session.language)
        if result.ambiguous:
            logger.debug("Call %s: %s (%.1f)", session.call_id,
                         DialogueCondition.LANGUAGE_AMBIGUOUS.value, result.confidence_score)
            return None
        session.language = result.language
        logger.info("Call %s language detected: %s (%.1f)",
                    session.call_id, result.language.value, result.confidence_score)
        return None

    # ── State handlers ────────────────────────────────────────────

    def _handle_greeting(self, session: CallSession, turn: Turn, now: float, reselected) -> Action:
        return self._handle_awaiting_order(session, turn, now, reselected)

    def _handle_awaiting_order(self, session: CallSession, turn: Turn, now: float, reselected) -> Action:
        language = self._lang(session)
        if turn.text and self.classifier.classify(turn.text, language) == Intent.HELP:
            _transition(session, State.AWAITING_ORDER, now)
            session.retry_count = 0
            return Action(speak=help_prompt(self.bundle, language, session.menu))

        delta = self._extract(session, turn)
        session.pending_order.merge(delta)
        if not session.pending_order.is_empty:
            _transition(session, State.CONFIRMING_ORDER, now)
            session.retry_count = 0
            return Action(speak=self._readback(session))

        _transition(session, State.AWAITING_ORDER, now)
        if reselected is not None:
            session.retry_count = 0
            return Action(speak=self._text(session, "language_selected"))
        return self._retry(session, now, self._text(session, "clarify_text"),
                           DialogueCondition.NO_EXTRACTABLE_ORDER)

    def _handle_confirming_order(self, session: CallSession, turn: Turn, now: float, reselected) -> Action:
        language = self._lang(session)
        if self.classifier.classify_confirmation(turn.text, language, turn.digits) == Intent.DENY:
            _transition(session, State.AWAITING_RETRY, now)
            session.retry_count = 0
            return Action(speak=self._text(session, "retry_offer"))

        # "yes, no onions please" confirms and still carries its modifiers
        delta = self._extract(session, turn)
        session.pending_order.merge(replace(delta, fragments=()))
        session.retry_count = 0
        return Action(call_tool=MATERIALIZE_ORDER, tool_args={"call_id": session.call_id})

    def _handle_awaiting_retry(self, session: CallSession, turn: Turn, now: float, reselected) -> Action:
        language = self._lang(session)
        delta = self._extract(session, turn)
        if delta.fragments:
            # A fresh order starts over from awaiting_order
            session.pending_order.clear()
            _transition(session, State.AWAITING_ORDER, now)
            return self._handle_awaiting_order(session, turn, now, reselected)
        if self.classifier.is_affirmative(turn.text, language, turn.digits):
            session.pending_order.clear()
            _transition(session, State.AWAITING_ORDER, now)
            session.retry_count = 0
            return Action(speak=self._text(session, "try_again"))
        _transition(session, State.CANCELLED, now)
        return Action(speak=self._text(session, "goodbye"), end_call=True)

    # ── Tool results ──────────────────────────────────────────────

    def _tool_result_materialize_order(self, session: CallSession, result, now: float) -> Action:
        session.result_order_id = result.order_id
        session.result_order_number = result.order_number
        session.order_is_local = result.synthetic
        _transition(session, State.FINALIZED, now)
        return Action(
            speak=order_confirmed_prompt(self.bundle, self._lang(session), result.order_number),
            end_call=True,
        )

    # ── Helpers ───────────────────────────────────────────────────

    def _no_input(self, session: CallSession, now: float) -> Action:
        if session.state == State.AWAITING_RETRY:
            _transition(session, State.CANCELLED, now)
            return Action(speak=self._text(session, "goodbye"), end_call=True)
        reprompt = session.last_prompt or self._text(session, "order_prompt")
        return self._retry(session, now, reprompt, None)

    def _retry(self, session: CallSession, now: float, reprompt: str, condition) -> Action:
        session.retry_count += 1
        if condition is not None:
            logger.info("Call %s: %s (retry %d/%d)", session.call_id, condition.value,
                        session.retry_count, self._settings(session).max_retries)
        if session.retry_count > self._settings(session).max_retries:
            return self._abandon(session, now)
        return Action(speak=reprompt)

    def _abandon(self, session: CallSession, now: float) -> Action:
        session.retry_count = max(session.retry_count, self._settings(session).max_retries + 1)
        logger.warning(
            "Call %s: %s after %d retries",
            session.call_id, DialogueCondition.RETRIES_EXHAUSTED.value, self._settings(session).max_retries,
        )
        _transition(session, State.ABANDONED, now)
        return Action(speak=self._text(session, "no_input_text"), end_call=True)

    def _record(self, session: CallSession, action: Action, now: float):
        if not action.speak:
            return
        session.append_utterance(Speaker.SYSTEM, action.speak, now)
        if not action.end_call:
            session.last_prompt = action.speak

    def _extract(self, session: CallSession, turn: Turn) -> OrderDelta:
        if not turn.text:
            return OrderDelta()
        return self.classifier.extract(turn.text, session.menu, self._lang(session))

    def _readback(self, session: CallSession) -> str:
        return order_readback(self.bundle, self._lang(session), session.pending_order, session.menu)

    def _settings(self, session: CallSession) -> Settings:
        return session.settings or self.settings

    def _lang(self, session: CallSession) -> Language:
        return session.prompt_language(self._settings(session).default_language)

    def _text(self, session: CallSession, key: str) -> str:
        return self.bundle.get(self._lang(session), key)
