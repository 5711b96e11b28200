"""Engine facade used by the telephony gateway and the simulator.

One OrderIntakeEngine owns the session store, the dialogue controller and
the Order Service plumbing. Gateway handlers call incoming_call() once per
call and turn() once per caller turn; everything else about a call lives
in its CallSession.
"""

import asyncio
import logging
import time

from voiceorder.config import Settings, update_voice_settings
from voiceorder.errors import OrderServiceUnavailable, SessionConflict, SessionNotFound, UnhandledTurnError
from voiceorder.locale_bundle import LocaleBundle, load_bundle
from voiceorder.materializer import OrderMaterializer
from voiceorder.menu import MenuSnapshot
from voiceorder.notifications import WebhookSink
from voiceorder.order_service import OrderServiceClient
from voiceorder.post_call import build_call_payload, handle_call_ended
from voiceorder.prompts import Directive, PromptPlan, Segment, language_menu_segments, unavailable_segments
from voiceorder.session import ArchivedCall, CallSession, Turn
from voiceorder.session_store import InMemorySessionStore, SessionStore
from voiceorder.state_machine import MATERIALIZE_ORDER, Action, StateMachine
from voiceorder.states import Language
from voiceorder.statistics import CallStatistics, compute_call_statistics

logger = logging.getLogger(__name__)


class OrderIntakeEngine:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SessionStore | None = None,
        order_service: OrderServiceClient | None = None,
        materializer: OrderMaterializer | None = None,
        notifier: WebhookSink | None = None,
        alerts: WebhookSink | None = None,
        bundle: LocaleBundle | None = None,
        machine: StateMachine | None = None,
        clock=time.time,
    ):
        self.settings = settings or Settings()
        if bundle is None:
            bundle = machine.bundle if machine else load_bundle(self.settings.locale_bundle_path or None)
        self.bundle = bundle
        self.machine = machine or StateMachine(self.settings, self.bundle)
        self.store = store or InMemorySessionStore(lock_timeout=self.settings.session_lock_timeout_seconds)
        self.order_service = order_service or OrderServiceClient(
            self.settings.order_service_url,
            api_key=self.settings.order_service_api_key,
            timeout=self.settings.order_service_timeout,
        )
        self.notifier = notifier or WebhookSink(
            self.settings.notify_url, self.settings.webhook_secret, label="Call notification",
        )
        self.alerts = alerts or WebhookSink(
            self.settings.alerts_url, self.settings.webhook_secret, label="Operational alert",
        )
        self.materializer = materializer or OrderMaterializer(self.order_service, self.alerts)
        self.clock = clock
        self._last_menu: MenuSnapshot | None = None

    # ── Call lifecycle ────────────────────────────────────────────

    async def incoming_call(self, call_id: str, caller_number: str = "") -> PromptPlan:
        existing = await self.store.get(call_id)
        if existing is not None:
            logger.info("Duplicate incoming-call for %s, re-issuing last prompt", call_id)
            return self._reissue(existing)

        now = self.clock()
        settings = self.settings
        default = settings.default_language

        if not settings.auto_answer_calls:
            session = CallSession(
                call_id=call_id, caller_number=caller_number, created_at=now, answered=False, settings=settings,
            )
            await self.store.create(session)
            self.machine.abandon(session, now, "auto-answer disabled")
            archived = await self.store.archive(call_id)
            await handle_call_ended(archived, self.notifier)
            return PromptPlan(unavailable_segments(self.bundle), Directive.END_CALL, default)

        menu = await self._menu_snapshot()
        session = CallSession(
            call_id=call_id, caller_number=caller_number, created_at=now, menu=menu, settings=settings,
        )
        try:
            await self.store.create(session)
        except SessionConflict:
            # Lost a race with a concurrent delivery, or the call already ended
            live = await self.store.get(call_id)
            if live is not None:
                return self._reissue(live)
            return PromptPlan.say(self.bundle.get(default, "goodbye"), default, end_call=True)

        action = self.machine.greet(session, now)
        segments = (Segment(action.speak, default),)
        if not settings.auto_detect_language:
            segments += language_menu_segments(self.bundle)

        self.notifier.publish({
            "event": "call.started",
            "call_id": call_id,
            "phone_number": caller_number or "unknown",
            "menu_items": len(menu),
        })
        return PromptPlan(segments, Directive.GATHER, default)

    async def turn(
        self,
        call_id: str,
        text: str = "",
        confidence: float | None = None,
        digits: str = "",
        *,
        now: float | None = None,
    ) -> PromptPlan:
        """Process one caller turn. Raises SessionNotFound, SessionConflict or UnhandledTurnError."""
        turn = Turn(text=(text or "").strip(), confidence=confidence, digits=(digits or "").strip())
        archived = None
        async with self.store.mutate(call_id) as session:
            try:
                plan = await self._run_turn(session, turn, self.clock() if now is None else now)
            except Exception as e:
                logger.exception("Turn failed for call %s", call_id)
                await self._fail(session, e)
                raise UnhandledTurnError(call_id, session.language) from e
            if session.state.is_terminal:
                archived = await self.store.archive(call_id)

        if archived is not None:
            await handle_call_ended(archived, self.notifier)
        return plan

    async def hangup(self, call_id: str) -> ArchivedCall | None:
        """Caller hung up: abandon and archive the session if it is still live."""
        try:
            async with self.store.mutate(call_id) as session:
                self.machine.abandon(session, self.clock(), "caller hung up")
                archived = await self.store.archive(call_id)
        except SessionNotFound:
            return None
        await handle_call_ended(archived, self.notifier)
        return archived

    async def sweep_idle(self, now: float | None = None) -> list[str]:
        """Feed a no-input turn to every session idle past the inactivity timeout."""
        now = self.clock() if now is None else now
        swept = []
        for call_id in self.store.live_ids():
            session = await self.store.get(call_id)
            if session is None:
                continue
            if now - session.last_activity_at < self.settings.inactivity_timeout_seconds:
                continue
            logger.info("Call %s idle for %.0fs, treating as no input", call_id, now - session.last_activity_at)
            try:
                await self.turn(call_id, now=now)
            except (SessionConflict, SessionNotFound, UnhandledTurnError) as e:
                logger.warning("Idle sweep skipped %s: %s", call_id, e)
                continue
            swept.append(call_id)
        return swept

    async def run_sweeper(self):
        """Background loop for sweep_idle(). Runs until cancelled."""
        while True:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            swept = await self.sweep_idle()
            if swept:
                logger.info("Idle sweep touched %d call(s)", len(swept))

    async def close(self):
        await self.order_service.close()
        await self.notifier.drain()
        await self.alerts.drain()

    # ── Read side ─────────────────────────────────────────────────

    def statistics(self) -> CallStatistics:
        return compute_call_statistics(self.store.archived())

    def archived_calls(self) -> list[dict]:
        """Archived calls, newest first, without transcripts."""
        calls = []
        for archived in reversed(self.store.archived()):
            payload = build_call_payload(archived)
            payload.pop("call_transcript", None)
            payload.pop("transcript_object", None)
            calls.append(payload)
        return calls

    async def active_calls(self) -> list[dict]:
        calls = []
        for call_id in self.store.live_ids():
            session = await self.store.get(call_id)
            if session is None:
                continue
            calls.append({
                "call_id": session.call_id,
                "phone_number": session.caller_number or "unknown",
                "state": session.state.value,
                "language": session.language.value if session.language else None,
                "started_at": session.created_at,
                "turn_count": session.turn_count,
                "items": len(session.pending_order.fragments),
            })
        return calls

    def voice_settings(self) -> dict:
        return self.settings.public_dict()

    def update_voice_settings(self, updates: dict) -> dict:
        """Apply new voice settings to calls answered from now on.

        Calls already in progress keep the settings they started with.
        Raises ConfigError for an unknown key or a bad value.
        """
        self.settings = update_voice_settings(self.settings, updates)
        self.machine.settings = self.settings
        logger.info("Voice settings updated: %s", ", ".join(sorted(updates)))
        return self.settings.public_dict()

    def apology_plan(self, language: Language | None = None) -> PromptPlan:
        language = language or self.settings.default_language
        return PromptPlan.say(self.bundle.get(language, "error_text"), language, end_call=True)

    # ── Internals ─────────────────────────────────────────────────

    async def _run_turn(self, session: CallSession, turn: Turn, now: float) -> PromptPlan:
        action = self.machine.process(session, turn, now)
        if action.call_tool == MATERIALIZE_ORDER:
            result = await self.materializer.materialize(
                session.pending_order, session.caller_number, session.call_id,
            )
            action = self.machine.handle_tool_result(session, action.call_tool, result, self.clock())
            self.notifier.publish({
                "event": "order.created",
                "call_id": session.call_id,
                "order_id": result.order_id,
                "order_number": result.order_number,
                "order_is_local": result.synthetic,
            })
        return self._plan(session, action)

    async def _fail(self, session: CallSession, error: Exception):
        self.machine.abandon(session, self.clock(), "turn failed")
        self.alerts.publish({
            "event": "turn_failed",
            "call_id": session.call_id,
            "state": session.state.value,
            "error": f"{type(error).__name__}: {error}",
        })
        archived = await self.store.archive(session.call_id)
        await handle_call_ended(archived, self.notifier)

    def _plan(self, session: CallSession, action: Action) -> PromptPlan:
        language = session.prompt_language((session.settings or self.settings).default_language)
        return PromptPlan.say(action.speak, language, end_call=action.end_call)

    def _reissue(self, session: CallSession) -> PromptPlan:
        language = session.prompt_language((session.settings or self.settings).default_language)
        text = session.last_prompt or self.bundle.get(language, "greeting")
        return PromptPlan.say(text, language)

    async def _menu_snapshot(self) -> MenuSnapshot:
        try:
            snapshot = await asyncio.wait_for(
                self.order_service.get_menu_snapshot(),
                timeout=self.settings.menu_fetch_timeout,
            )
        except (OrderServiceUnavailable, asyncio.TimeoutError) as e:
            if self._last_menu is not None:
                logger.warning("Menu fetch failed, using last good snapshot: %s", e)
                return self._last_menu
            logger.warning("Menu fetch failed and no snapshot cached, continuing with an empty menu: %s", e)
            return MenuSnapshot()
        self._last_menu = snapshot
        return snapshot
