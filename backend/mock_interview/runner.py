"""
Live interview session state machine.

Every input (client messages, recognition results, countdown ticks, report results)
is an event on one queue; a single loop applies them in order. Countdown events
carry the token of the countdown that produced them, and anything from a replaced
countdown is dropped, so a late timer can never act on the next question.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from mock_interview import events as ev
from mock_interview.auth import IdentityVerifier
from mock_interview.errors import CapabilityUnavailable, InterviewError
from mock_interview.report import Report, ReportPipeline
from mock_interview.schemas import SKIPPED_ANSWER, InterviewSession, Phase, ReportStatus, SkipSource, Turn, dump
from mock_interview.speech import ClientRecognizer, Recognizer, Speaker, SpeechModels, TranscriptCapture
from mock_interview.timer import PhaseTimer

LOG = logging.getLogger("interview.runner")

Send = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass
class RunnerState:
    index: int = 0
    phase: Optional[Phase] = Phase.THINKING
    remaining: float = 0.0
    turns: List[Turn] = field(default_factory=list)
    save_enabled: bool = False
    auto_speak: bool = True
    report_status: ReportStatus = ReportStatus.IDLE
    spoken: Set[int] = field(default_factory=set)


class InterviewRunner:
    def __init__(
        self,
        document: InterviewSession,
        pipeline: ReportPipeline,
        verifier: IdentityVerifier,
        send: Send,
        recognizer: Optional[Recognizer] = None,
        speech_models: Optional[SpeechModels] = None,
        thinking_seconds: float = 60.0,
        start_window_seconds: float = 5.0,
        tick_seconds: float = 1.0,
    ) -> None:
        self.document = document
        self.questions: List[str] = list(document.questions)
        self.pipeline = pipeline
        self.verifier = verifier
        self._send = send
        self.queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.state = RunnerState()
        self.capture = TranscriptCapture(recognizer or ClientRecognizer(self.notify))
        self.speaker = Speaker(self.notify, speech_models)
        self.timer = PhaseTimer(
            self.post,
            thinking_seconds=thinking_seconds,
            start_window_seconds=start_window_seconds,
            tick_seconds=tick_seconds,
        )
        self.id_token: Optional[str] = None
        self.report: Optional[Report] = None
        self.closed = False
        self._report_task: Optional[asyncio.Task] = None

    # ---- helpers ----

    @property
    def done(self) -> bool:
        return self.state.index >= len(self.questions)

    @property
    def current_question(self) -> Optional[str]:
        return None if self.done else self.questions[self.state.index]

    def post(self, event: Any) -> None:
        self.queue.put_nowait(event)

    async def notify(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            await self._send(message)
        except Exception as exc:
            # Best-effort: client may already be gone.
            LOG.debug("Dropping outbound %s message: %s", message.get("type"), exc)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "type": "state",
            "sessionId": self.document.id,
            "index": self.state.index,
            "total": len(self.questions),
            "question": self.current_question,
            "phase": self.state.phase.value if self.state.phase else None,
            "remaining": round(self.state.remaining, 1),
            "answer": self.capture.buffer,
            "listening": self.capture.listening,
            "voiceSupported": self.capture.supported,
            "turns": [dump(t) for t in self.state.turns],
            "completed": self.done,
            "saveEnabled": self.state.save_enabled,
            "autoSpeak": self.state.auto_speak,
            "reportStatus": self.state.report_status.value,
        }

    async def publish_state(self) -> None:
        await self.notify(self.snapshot())

    # ---- loop ----

    async def run(self) -> None:
        await self._enter_question()
        try:
            while True:
                event = await self.queue.get()
                try:
                    if isinstance(event, ev.Close):
                        return
                    await self.handle(event)
                except InterviewError as exc:
                    await self.notify({"type": "error", "message": exc.message})
                finally:
                    self.queue.task_done()
        finally:
            await self._shutdown()

    def close(self) -> None:
        self.post(ev.Close())

    async def _shutdown(self) -> None:
        self.timer.cancel()
        await self.capture.stop()
        self.speaker.cancel()
        self.closed = True
        # An in-flight report is left to finish; its result is no longer delivered.

    async def handle(self, event: Any) -> None:
        if isinstance(event, ev.TimerTick):
            await self._on_tick(event)
        elif isinstance(event, ev.TimerExpired):
            await self._on_expired(event)
        elif isinstance(event, ev.ClientReady):
            self.capture.mark_ready(event.speech_supported)
            self.id_token = event.id_token or self.id_token
            await self.publish_state()
        elif isinstance(event, ev.StartCapture):
            await self.start_capture()
        elif isinstance(event, ev.StopCapture):
            await self.capture.stop()
            await self.publish_state()
        elif isinstance(event, ev.CaptureEnded):
            self.capture.ended()
            await self.publish_state()
        elif isinstance(event, ev.Recognition):
            await self._on_recognition(event)
        elif isinstance(event, ev.TextEdited):
            if not self.done:
                self.capture.set_text(event.text)
                await self.publish_state()
        elif isinstance(event, ev.Submit):
            await self.submit_answer()
        elif isinstance(event, ev.Skip):
            await self.skip(event.source)
        elif isinstance(event, ev.EndNow):
            await self.end_now()
        elif isinstance(event, ev.SetSave):
            self.state.save_enabled = bool(event.enabled)
            await self.publish_state()
        elif isinstance(event, ev.SetAutoSpeak):
            self.state.auto_speak = bool(event.enabled)
            await self.publish_state()
        elif isinstance(event, ev.RepeatQuestion):
            if self.current_question:
                self.speaker.speak(self.current_question)
        elif isinstance(event, ev.GenerateReport):
            await self.generate_report(event.id_token)
        elif isinstance(event, ev.ReportFinished):
            await self._on_report(event.report)
        else:
            LOG.warning("Unhandled event %r", event)

    # ---- timing ----

    async def _on_tick(self, event: ev.TimerTick) -> None:
        if event.token != self.timer.token or event.index != self.state.index:
            return
        self.state.remaining = event.remaining
        await self.notify({"type": "timer", "phase": event.phase.value, "remaining": round(event.remaining, 1)})

    async def _on_expired(self, event: ev.TimerExpired) -> None:
        if event.token != self.timer.token or event.index != self.state.index or self.done:
            LOG.debug("Dropping stale countdown (index=%s phase=%s)", event.index, event.phase.value)
            return
        if event.phase == Phase.THINKING:
            self.state.phase = Phase.START_WINDOW
            self.state.remaining = self.timer.durations[Phase.START_WINDOW]
            self.timer.start(self.state.index, Phase.START_WINDOW)
            await self.publish_state()
        elif event.phase == Phase.START_WINDOW:
            if not self.capture.listening and not self.capture.answer():
                await self.skip(SkipSource.TIMEOUT)
            else:
                self._begin_answering()
                await self.publish_state()

    def _begin_answering(self) -> None:
        self.timer.cancel()
        self.state.phase = Phase.ANSWERING
        self.state.remaining = 0.0

    # ---- capture ----

    async def start_capture(self) -> None:
        if self.done:
            return
        try:
            await self.capture.start()
        except CapabilityUnavailable as exc:
            await self.notify({"type": "error", "message": exc.message, "voiceSupported": False})
            return
        if self.state.phase in (Phase.THINKING, Phase.START_WINDOW):
            self._begin_answering()
        await self.publish_state()

    async def _on_recognition(self, event: ev.Recognition) -> None:
        if self.done or not self.capture.listening:
            # Late results flushed after stop belong to a capture that is already over.
            LOG.debug("Dropping recognition result outside an active capture")
            return
        if self.capture.consume(event):
            LOG.info("Voice skip command heard (question %s)", self.state.index + 1)
            await self.skip(SkipSource.VOICE)
            return
        await self.publish_state()

    # ---- progression ----

    async def submit_answer(self) -> bool:
        if self.done:
            return False
        answer = self.capture.answer()
        if not answer:
            return False
        await self._record(Turn(question=self.questions[self.state.index], answer=answer, skipped=False))
        return True

    async def skip(self, source: SkipSource = SkipSource.MANUAL) -> bool:
        if self.done:
            return False
        LOG.info("Question %s skipped (source=%s)", self.state.index + 1, source.value)
        await self._record(Turn(question=self.questions[self.state.index], answer=SKIPPED_ANSWER, skipped=True))
        return True

    async def end_now(self) -> None:
        if self.done:
            return
        LOG.info("Interview %s ended early at question %s", self.document.id, self.state.index + 1)
        await self._leave_question()
        self.state.index = len(self.questions)
        await self._enter_question()

    async def _record(self, turn: Turn) -> None:
        self.state.turns.append(turn)
        await self._leave_question()
        self.state.index += 1
        await self._enter_question()

    async def _leave_question(self) -> None:
        self.timer.cancel()
        await self.capture.stop()
        self.capture.clear()

    async def _enter_question(self) -> None:
        if self.done:
            self.timer.cancel()
            self.state.phase = None
            self.state.remaining = 0.0
            await self.publish_state()
            await self.notify({"type": "completed", "turns": len(self.state.turns)})
            return
        self.state.phase = Phase.THINKING
        self.state.remaining = self.timer.durations[Phase.THINKING]
        self.timer.start(self.state.index, Phase.THINKING)
        await self.publish_state()
        if self.state.auto_speak and self.state.index not in self.state.spoken:
            self.state.spoken.add(self.state.index)
            self.speaker.speak(self.questions[self.state.index])

    # ---- report ----

    async def generate_report(self, id_token: Optional[str] = None) -> None:
        if not self.done:
            await self.notify({"type": "error", "message": "Finish the interview before generating the report."})
            return
        self.pipeline.claim()
        self.state.report_status = ReportStatus.RUNNING
        owner_id = self.verifier.verify_optional(id_token or self.id_token)
        if self.state.save_enabled and not owner_id:
            LOG.info("Save requested without a valid identity; report will be discarded")
        turns = list(self.state.turns)
        self._report_task = asyncio.create_task(self._run_report(turns, self.state.save_enabled, owner_id))
        await self.publish_state()

    async def _run_report(self, turns: List[Turn], save_enabled: bool, owner_id: Optional[str]) -> None:
        try:
            report = await self.pipeline.run(self.document, turns, save_enabled, owner_id)
        except Exception:
            LOG.exception("Report generation failed for interview %s", self.document.id)
            self.pipeline.status = ReportStatus.ERROR
            report = Report(ReportStatus.ERROR, turns, error="Report generation failed")
        self.post(ev.ReportFinished(report))

    async def _on_report(self, report: Report) -> None:
        self.report = report
        self.state.report_status = report.status
        await self.notify({"type": "report", **report.to_payload()})
        await self.publish_state()
