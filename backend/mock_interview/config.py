from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Settings(BaseModel):
    """Runtime settings; every field can be overridden through the environment."""

    database_url: str = "sqlite+aiosqlite:///./data.db"
    auth_secret: str = "change-me"
    auth_algorithm: str = "HS256"

    llm_api_key: Optional[str] = None
    llm_model: str = "meta/llama-4-maverick-17b-128e-instruct"
    llm_url: str = "https://integrate.api.nvidia.com/v1/chat/completions"
    llm_timeout: float = 12.0

    thinking_seconds: float = 60.0
    start_window_seconds: float = 5.0
    tick_seconds: float = 1.0
    default_num_questions: int = 5

    whisper_model: str = "medium"
    whisper_device: str = "cpu"
    whisper_compute_type: Optional[str] = None
    tts_model: str = "tts_models/multilingual/multi-dataset/xtts_v2"
    tts_device: Optional[str] = None
    tts_speaker: Optional[str] = None
    tts_language: str = "en"
    load_speech_models: bool = True

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.model_fields["database_url"].default),
            auth_secret=os.getenv("AUTH_SECRET", cls.model_fields["auth_secret"].default),
            llm_api_key=os.getenv("LLM_API_KEY") or os.getenv("NVIDIA_API_KEY"),
            llm_model=os.getenv("LLM_MODEL") or os.getenv("NVIDIA_LLM_MODEL") or cls.model_fields["llm_model"].default,
            llm_url=os.getenv("LLM_URL") or os.getenv("NVIDIA_LLM_URL") or cls.model_fields["llm_url"].default,
            llm_timeout=_env_float("LLM_TIMEOUT", cls.model_fields["llm_timeout"].default),
            thinking_seconds=_env_float("THINKING_SECONDS", 60.0),
            start_window_seconds=_env_float("START_WINDOW_SECONDS", 5.0),
            tick_seconds=_env_float("TICK_SECONDS", 1.0),
            default_num_questions=int(os.getenv("DEFAULT_NUM_QUESTIONS", "5")),
            whisper_model=os.getenv("WHISPER_MODEL", "medium"),
            whisper_device=os.getenv("WHISPER_DEVICE", "cpu"),
            whisper_compute_type=os.getenv("WHISPER_COMPUTE_TYPE"),
            tts_model=os.getenv("TTS_MODEL", cls.model_fields["tts_model"].default),
            tts_device=os.getenv("TTS_DEVICE"),
            tts_speaker=os.getenv("TTS_SPEAKER"),
            tts_language=os.getenv("TTS_LANGUAGE", "en"),
            load_speech_models=os.getenv("LOAD_SPEECH_MODELS", "1").lower() not in ("0", "false", "no"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
