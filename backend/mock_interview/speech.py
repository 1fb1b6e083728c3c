"""
Speech I/O for live sessions.

Recognition runs on the client (browser speech recognition, or a /stt transcript the
client forwards) and reaches the server as result events. TranscriptCapture folds those
events into the shared answer buffer. Speaker keeps at most one utterance in flight.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import re
from collections import OrderedDict
from io import BytesIO
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from mock_interview.config import Settings
from mock_interview.errors import CapabilityUnavailable
from mock_interview.events import Recognition

LOG = logging.getLogger("interview.speech")

SKIP_COMMAND = "skip"

Send = Callable[[Dict[str, Any]], Awaitable[None]]


def is_skip_command(text: str) -> bool:
    normalized = re.sub(r"[\s.,!?;:]+$", "", (text or "").strip()).strip().lower()
    return normalized == SKIP_COMMAND


class Recognizer(Protocol):
    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


class ClientRecognizer:
    """Asks the connected client to start or stop its recognizer."""

    def __init__(self, send: Send) -> None:
        self._send = send

    async def start(self) -> None:
        await self._send({"type": "capture", "action": "start"})

    async def stop(self) -> None:
        await self._send({"type": "capture", "action": "stop"})


class TranscriptCapture:
    def __init__(self, recognizer: Optional[Recognizer] = None) -> None:
        self.recognizer = recognizer
        self.buffer = ""
        self.listening = False
        self._cursor = 0
        self._ready = False
        self._supported = False

    # capability

    def mark_ready(self, supported: bool) -> None:
        """Called once the client has loaded and reported whether it can recognise speech."""
        if self._ready:
            return
        self._ready = True
        self._supported = bool(supported) and self.recognizer is not None

    @property
    def supported(self) -> bool:
        return self._ready and self._supported

    # capture lifecycle

    async def start(self) -> None:
        if not self.supported:
            raise CapabilityUnavailable("Voice capture is not supported here")
        self.buffer = ""
        self._cursor = 0
        # Drop any stale recognizer session before starting a new one.
        try:
            await self.recognizer.stop()
        except Exception as exc:
            LOG.debug("Ignoring recognizer stop failure: %s", exc)
        await self.recognizer.start()
        self.listening = True

    async def stop(self) -> None:
        was_listening = self.listening
        self.listening = False
        if self.recognizer is None or not was_listening:
            return
        try:
            await self.recognizer.stop()
        except Exception as exc:
            LOG.debug("Ignoring recognizer stop failure: %s", exc)

    def ended(self) -> None:
        self.listening = False

    # buffer

    def set_text(self, text: str) -> None:
        self.buffer = text or ""

    def clear(self) -> None:
        self.buffer = ""

    def answer(self) -> str:
        return self.buffer.strip()

    def consume(self, event: Recognition) -> bool:
        """Append newly finalised segments. Returns True when the skip command was heard."""
        start = max(event.result_index, self._cursor)
        for i in range(start, len(event.results)):
            result = event.results[i]
            if not result.is_final:
                continue
            self._cursor = i + 1
            text = result.transcript.strip()
            if not text:
                continue
            if is_skip_command(text):
                return True
            sep = " " if self.buffer.strip() else ""
            self.buffer = (self.buffer + sep + text).strip()
        return False


class SpeechModels:
    """Server-side Whisper and Coqui TTS models; either may be missing."""

    TTS_CACHE_MAX = 32  # simple in-memory LRU for duplicate TTS requests

    def __init__(self, whisper: Any = None, tts: Any = None, speaker: Optional[str] = None, language: str = "en") -> None:
        self.whisper = whisper
        self.tts = tts
        self.speaker = speaker
        self.language = language
        self._cache: "OrderedDict[tuple, bytes]" = OrderedDict()

    @classmethod
    def load(cls, settings: Settings) -> "SpeechModels":
        models = cls(speaker=settings.tts_speaker, language=settings.tts_language)
        if not settings.load_speech_models:
            return models
        os.environ.setdefault("NUMBA_CACHE_DIR", "/tmp/numba")
        device = settings.whisper_device
        compute_type = settings.whisper_compute_type or ("float16" if device not in ("cpu", "auto-cpu") else "int8")
        try:
            from faster_whisper import WhisperModel

            models.whisper = WhisperModel(settings.whisper_model, device=device, compute_type=compute_type)
            LOG.info("whisper loaded %s on %s (%s)", settings.whisper_model, device, compute_type)
        except Exception as exc:
            LOG.warning("whisper failed to load model %s: %s", settings.whisper_model, exc)
        try:
            from TTS.api import TTS

            models.tts = TTS(model_name=settings.tts_model).to(settings.tts_device or device)
            if models.speaker is None:
                speakers = getattr(models.tts, "speakers", None) or []
                models.speaker = speakers[0] if speakers else None
            LOG.info("tts loaded %s; default speaker=%s", settings.tts_model, models.speaker)
        except Exception as exc:
            LOG.warning("tts failed to load model %s: %s", settings.tts_model, exc)
        return models

    @property
    def can_transcribe(self) -> bool:
        return self.whisper is not None

    @property
    def can_synthesize(self) -> bool:
        return self.tts is not None

    def transcribe(self, path: str, language: Optional[str] = None) -> Dict[str, Any]:
        if self.whisper is None:
            raise CapabilityUnavailable("Speech recognition is not available")
        segments, info = self.whisper.transcribe(
            path,
            beam_size=4,
            language=language or self.language,
            vad_filter=True,
            condition_on_previous_text=False,
        )
        texts: List[str] = [seg.text.strip() for seg in segments if seg.text.strip()]
        return {
            "transcript": " ".join(texts).strip(),
            "duration": info.duration,
            "language": info.language,
            "num_segments": len(texts),
        }

    def synthesize(self, text: str, speaker: Optional[str] = None, language: Optional[str] = None) -> bytes:
        if self.tts is None:
            raise CapabilityUnavailable("Speech synthesis is not available")
        import soundfile as sf

        speaker = speaker or self.speaker
        language = language or self.language
        cache_key = (text, speaker, language)
        if cache_key in self._cache:
            # Move to end to keep LRU ordering.
            audio = self._cache.pop(cache_key)
            self._cache[cache_key] = audio
            return audio
        wav = self.tts.tts(text=text, speaker=speaker, language=language)
        sample_rate = getattr(self.tts.synthesizer, "output_sample_rate", 24000)
        buf = BytesIO()
        sf.write(buf, wav, sample_rate, format="WAV")
        audio = buf.getvalue()
        self._cache[cache_key] = audio
        if len(self._cache) > self.TTS_CACHE_MAX:
            self._cache.popitem(last=False)
        return audio


class Speaker:
    """One utterance at a time: a new request cancels whatever is still playing."""

    def __init__(self, send: Send, models: Optional[SpeechModels] = None) -> None:
        self._send = send
        self.models = models
        self._task: Optional[asyncio.Task] = None

    @property
    def speaking(self) -> bool:
        return self._task is not None and not self._task.done()

    def speak(self, text: str) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.create_task(self._utter(text))
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _utter(self, text: str) -> None:
        if self.models is not None and self.models.can_synthesize:
            try:
                audio = await asyncio.to_thread(self.models.synthesize, text)
            except Exception as exc:
                LOG.warning("TTS synthesis failed; asking client to speak: %s", exc)
            else:
                await self._send(
                    {"type": "speech", "text": text, "audio": base64.b64encode(audio).decode("ascii"), "format": "wav"}
                )
                return
        await self._send({"type": "speak", "text": text})
