import asyncio
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Form, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from voiceorder.config import load_settings, validate_config
from voiceorder.engine import OrderIntakeEngine
from voiceorder.errors import ConfigError, SessionConflict, SessionNotFound, UnhandledTurnError
from voiceorder.locale_bundle import load_bundle
from voiceorder.prompts import PromptPlan
from voiceorder.simulator import DEFAULT_CALLER, DEFAULT_SCRIPT, CallSimulator
from voiceorder.twiml import render

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Provider statuses after which no further turns will arrive
ENDED_CALL_STATUSES = frozenset({"completed", "busy", "failed", "no-answer", "canceled"})


def _twiml(plan: PromptPlan) -> Response:
    return Response(content=render(plan), media_type="application/xml")


def _parse_confidence(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring malformed Confidence value %r", value)
        return None


def _build_engine() -> OrderIntakeEngine:
    validate_config()
    settings = load_settings()
    bundle = load_bundle(settings.locale_bundle_path or None)
    return OrderIntakeEngine(settings, bundle=bundle)


def create_app(engine: OrderIntakeEngine | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.engine = engine or _build_engine()
        sweeper = asyncio.create_task(app.state.engine.run_sweeper())
        logger.info("Voice order intake ready")
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
            await app.state.engine.close()

    app = FastAPI(title="Voice Order Intake", lifespan=lifespan)

    @app.exception_handler(SessionConflict)
    async def session_conflict(request: Request, exc: SessionConflict):
        logger.warning("409 for %s: %s", exc.call_id, exc)
        return PlainTextResponse("conflict", status_code=409, headers={"Retry-After": "1"})

    @app.get("/health")
    async def health():
        return PlainTextResponse("ok")

    @app.post("/api/telephony/incoming-call")
    async def incoming_call(request: Request, CallSid: str = Form(...), From: str = Form("")):
        plan = await request.app.state.engine.incoming_call(CallSid, From)
        return _twiml(plan)

    @app.post("/api/telephony/process-speech")
    async def process_speech(
        request: Request,
        CallSid: str = Form(...),
        SpeechResult: str = Form(""),
        Confidence: str = Form(""),
        Digits: str = Form(""),
    ):
        engine: OrderIntakeEngine = request.app.state.engine
        try:
            plan = await engine.turn(CallSid, SpeechResult, _parse_confidence(Confidence), Digits)
        except SessionNotFound:
            logger.warning("Turn for unknown call %s", CallSid)
            plan = engine.apology_plan()
        except UnhandledTurnError as e:
            plan = engine.apology_plan(e.language)
        return _twiml(plan)

    @app.post("/api/telephony/call-status")
    async def call_status(request: Request, CallSid: str = Form(...), CallStatus: str = Form("")):
        status = CallStatus.strip().lower()
        if status in ENDED_CALL_STATUSES:
            archived = await request.app.state.engine.hangup(CallSid)
            if archived is not None:
                logger.info("Call %s ended by provider (%s)", CallSid, status)
        return PlainTextResponse("ok")

    @app.get("/api/telephony/calls")
    async def calls(request: Request):
        return request.app.state.engine.archived_calls()

    @app.get("/api/telephony/active-calls")
    async def active_calls(request: Request):
        return await request.app.state.engine.active_calls()

    @app.get("/api/telephony/stats")
    async def stats(request: Request):
        return request.app.state.engine.statistics().to_dict()

    @app.get("/api/telephony/voice-settings")
    async def voice_settings(request: Request):
        return request.app.state.engine.voice_settings()

    @app.post("/api/telephony/voice-settings")
    async def update_voice_settings(request: Request):
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse({"error": "body must be JSON"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "body must be a JSON object"}, status_code=400)
        try:
            return request.app.state.engine.update_voice_settings(body)
        except ConfigError as e:
            logger.warning("Rejected voice settings update: %s", e)
            return JSONResponse({"error": str(e)}, status_code=400)

    @app.post("/api/telephony/simulate-call")
    async def simulate_call(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            return JSONResponse({"error": "body must be a JSON object"}, status_code=400)
        script = body.get("script") or DEFAULT_SCRIPT
        if not isinstance(script, (list, tuple)) or not all(isinstance(line, str) for line in script):
            return JSONResponse({"error": "script must be a list of strings"}, status_code=400)
        simulator = CallSimulator(request.app.state.engine)
        result = await simulator.run(script, caller_number=body.get("caller_number") or DEFAULT_CALLER)
        return result.to_dict()

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", "8765"))
    uvicorn.run("voiceorder.bot:app", host="0.0.0.0", port=port, reload=True)
