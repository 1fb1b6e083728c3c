"""
FastAPI backend for the mock interview coach.
REST endpoints create, list, read, complete and delete interview sessions; a WebSocket
endpoint runs the live interview loop for one session.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from tempfile import NamedTemporaryFile
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, File, Form, Query, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from mock_interview import events as ev
from mock_interview.auth import IdentityVerifier
from mock_interview.config import Settings
from mock_interview.db import Database
from mock_interview.errors import AuthError, CapabilityUnavailable, ForbiddenError, InterviewError, ValidationError
from mock_interview.llm import ChatCompletionsClient, TextGenerator, generate_feedback, generate_questions, generate_summary
from mock_interview.report import ReportPipeline
from mock_interview.runner import InterviewRunner
from mock_interview.schemas import (
    CompleteInterviewRequest,
    CreateInterviewRequest,
    EvaluateRequest,
    InterviewSession,
    SessionStatus,
    SkipSource,
    SummaryRequest,
    TtsRequest,
    dump,
)
from mock_interview.speech import SpeechModels
from mock_interview.store import SessionStore

LOG = logging.getLogger("interview")


@dataclass
class Services:
    """Collaborators built once per process and shared by every request."""

    settings: Settings
    database: Database
    store: SessionStore
    verifier: IdentityVerifier
    generator: TextGenerator
    speech: SpeechModels

    @classmethod
    def from_settings(cls, settings: Settings) -> "Services":
        database = Database(settings.database_url)
        return cls(
            settings=settings,
            database=database,
            store=SessionStore(database),
            verifier=IdentityVerifier(settings.auth_secret, settings.auth_algorithm),
            generator=ChatCompletionsClient(
                settings.llm_api_key, settings.llm_model, settings.llm_url, timeout=settings.llm_timeout
            ),
            speech=SpeechModels(speaker=settings.tts_speaker, language=settings.tts_language),
        )


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def client_message_to_event(payload: Dict[str, Any]) -> Optional[Any]:
    msg_type = payload.get("type")
    if msg_type == "hello":
        return ev.ClientReady(speech_supported=bool(payload.get("speechSupported")), id_token=payload.get("idToken"))
    if msg_type == "start_capture":
        return ev.StartCapture()
    if msg_type == "stop_capture":
        return ev.StopCapture()
    if msg_type == "capture_ended":
        return ev.CaptureEnded()
    if msg_type == "recognition":
        return ev.Recognition.from_payload(payload)
    if msg_type == "text":
        return ev.TextEdited(text=str(payload.get("text") or ""))
    if msg_type == "submit":
        return ev.Submit()
    if msg_type == "skip":
        return ev.Skip(source=SkipSource.MANUAL)
    if msg_type == "end_now":
        return ev.EndNow()
    if msg_type == "set_save":
        return ev.SetSave(enabled=bool(payload.get("enabled")))
    if msg_type == "set_auto_speak":
        return ev.SetAutoSpeak(enabled=bool(payload.get("enabled")))
    if msg_type == "repeat_question":
        return ev.RepeatQuestion()
    if msg_type == "generate_report":
        return ev.GenerateReport(id_token=payload.get("idToken"))
    return None


def create_app(services: Optional[Services] = None) -> FastAPI:
    settings = services.settings if services else Settings.from_env()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Mock Interview Coach API", version="1.0.0")
    app.state.services = services

    @app.on_event("startup")
    async def on_startup() -> None:
        if app.state.services is None:
            app.state.services = Services.from_settings(settings)
            app.state.services.speech = await asyncio.to_thread(SpeechModels.load, settings)
        await app.state.services.database.init()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        if app.state.services is not None:
            await app.state.services.database.dispose()

    # CORS for local dev; adjust allowed origins for prod if needed.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InterviewError)
    async def interview_error_handler(request: Request, exc: InterviewError) -> JSONResponse:
        if exc.status_code >= 500:
            LOG.warning("%s %s failed: %s", request.method, request.url.path, exc.__cause__ or exc)
        return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        LOG.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse({"success": False, "error": "Missing data"}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        LOG.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"success": False, "error": "Request failed"}, status_code=500)

    def svc() -> Services:
        return app.state.services

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        speech = svc().speech
        return {"status": "ok", "stt": speech.can_transcribe, "tts": speech.can_synthesize}

    @app.post("/interviews")
    async def create_interview(payload: CreateInterviewRequest) -> Dict[str, Any]:
        services = svc()
        owner_id = services.verifier.verify(payload.id_token)
        count = payload.num_questions or services.settings.default_num_questions
        options = payload.options()
        result = await generate_questions(
            services.generator, payload.role, payload.level, payload.interview_type, count, options
        )
        questions = result.value or []
        document = await services.store.create(
            owner_id, payload.role, payload.level, payload.interview_type, questions, options
        )
        return {"success": True, "sessionId": document.id, "questions": document.questions}

    @app.get("/interviews")
    async def list_interviews(
        request: Request,
        search: Optional[str] = None,
        interview_type: Optional[str] = Query(default=None, alias="interviewType"),
        limit: int = 50,
    ) -> Dict[str, Any]:
        services = svc()
        owner_id = services.verifier.verify(bearer_token(request))
        items = await services.store.list_completed(owner_id, search=search, interview_type=interview_type, limit=limit)
        return {"success": True, "items": [dump(item) for item in items]}

    @app.get("/interviews/{session_id}")
    async def get_interview(session_id: str, request: Request) -> Dict[str, Any]:
        services = svc()
        owner_id = services.verifier.verify(bearer_token(request))
        document = await services.store.get_owned(session_id, owner_id)
        return {"success": True, "interview": dump(document)}

    @app.delete("/interviews/{session_id}")
    async def delete_interview(session_id: str, request: Request) -> Dict[str, Any]:
        services = svc()
        owner_id = services.verifier.verify(bearer_token(request))
        await services.store.delete(session_id, owner_id)
        return {"success": True}

    @app.post("/interviews/{session_id}/complete")
    async def complete_interview(session_id: str, payload: CompleteInterviewRequest) -> Dict[str, Any]:
        services = svc()
        owner_id = services.verifier.verify(payload.id_token)
        await services.store.complete(
            session_id, owner_id, payload.turns, payload.per_question_feedback, payload.summary
        )
        return {"success": True}

    @app.post("/evaluate")
    async def evaluate(payload: EvaluateRequest) -> Dict[str, Any]:
        result = await generate_feedback(svc().generator, payload.question, payload.answer)
        return {"success": True, "feedback": dump(result.value), "parsed": result.ok}

    @app.post("/summary")
    async def summarize(payload: SummaryRequest) -> Dict[str, Any]:
        summary = await generate_summary(
            svc().generator, payload.role, payload.level, payload.interview_type, payload.turns
        )
        return {"success": True, "summary": dump(summary)}

    @app.post("/tts")
    async def tts_endpoint(payload: TtsRequest) -> Response:
        """Neural TTS via Coqui XTTS; returns WAV bytes."""
        speech = svc().speech
        text = payload.text.strip()
        if not text:
            raise ValidationError("Empty text")
        if not speech.can_synthesize:
            raise CapabilityUnavailable("TTS not loaded")
        audio = await asyncio.to_thread(speech.synthesize, text, payload.speaker, payload.language)
        return Response(content=audio, media_type="audio/wav")

    @app.post("/stt")
    async def transcribe_audio(
        file: UploadFile = File(...),
        language: Optional[str] = Form(default=None),
    ) -> Dict[str, Any]:
        """Speech-to-text via faster-whisper; the client forwards the transcript as a final result."""
        speech = svc().speech
        if not speech.can_transcribe:
            raise CapabilityUnavailable("Speech recognition not loaded")
        started = time.perf_counter()
        suffix = os.path.splitext(file.filename or "audio.webm")[1] or ".webm"
        data = await file.read()
        if not data:
            raise ValidationError("Empty audio")
        with NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
            tmp.write(data)
            tmp_path = tmp.name
        try:
            info = await asyncio.to_thread(speech.transcribe, tmp_path, language)
        finally:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return {
            "success": True,
            "latency_ms": latency_ms,
            "results": [{"isFinal": True, "alternatives": [info["transcript"]]}],
            **info,
        }

    async def admit(ws: WebSocket, session_id: str) -> Tuple[InterviewSession, Dict[str, Any]]:
        """Load the session and wait for the owner's hello before any control is accepted."""
        services = svc()
        document = await services.store.get(session_id)
        if document.status != SessionStatus.IN_PROGRESS:
            raise ValidationError("Interview already completed")
        try:
            hello = json.loads(await ws.receive_text())
        except json.JSONDecodeError:
            hello = None
        if not isinstance(hello, dict) or hello.get("type") != "hello":
            raise AuthError("Send hello with idToken first")
        owner_id = services.verifier.verify(hello.get("idToken"))
        if owner_id != document.owner_id:
            LOG.warning("Rejected socket for interview %s from non-owner %s", session_id, owner_id)
            raise ForbiddenError()
        return document, hello

    @app.websocket("/ws/interview/{session_id}")
    async def interview_socket(ws: WebSocket, session_id: str) -> None:
        await ws.accept()
        services = svc()
        try:
            document, hello = await admit(ws, session_id)
        except WebSocketDisconnect:
            return
        except InterviewError as exc:
            await ws.send_json({"type": "error", "message": exc.message})
            await ws.close(code=4000 + exc.status_code)
            return

        runner = InterviewRunner(
            document,
            ReportPipeline(services.generator, services.store),
            services.verifier,
            ws.send_json,
            speech_models=services.speech,
            thinking_seconds=services.settings.thinking_seconds,
            start_window_seconds=services.settings.start_window_seconds,
            tick_seconds=services.settings.tick_seconds,
        )
        await ws.send_json(
            {
                "type": "session_ready",
                "sessionId": document.id,
                "role": document.role,
                "level": document.level,
                "interviewType": document.interview_type,
                "total": len(document.questions),
            }
        )
        runner.post(client_message_to_event(hello))
        loop_task = asyncio.create_task(runner.run())
        try:
            while not loop_task.done():
                raw = await ws.receive_text()
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    await ws.send_json({"type": "error", "message": "Payload must be JSON"})
                    continue
                if not isinstance(payload, dict):
                    await ws.send_json({"type": "error", "message": "Payload must be a JSON object"})
                    continue
                if payload.get("type") == "ping":
                    await ws.send_json({"type": "pong"})
                    continue
                event = client_message_to_event(payload)
                if event is None:
                    await ws.send_json({"type": "error", "message": f"Unrecognized message type: {payload.get('type')}"})
                    continue
                runner.post(event)
        except WebSocketDisconnect:
            LOG.info("Client left interview %s", session_id)
        finally:
            runner.close()
            await loop_task

    return app


app = create_app()
