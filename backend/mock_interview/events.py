"""Typed events consumed by the interview runner's single queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mock_interview.schemas import Phase, SkipSource


@dataclass
class TimerTick:
    token: int
    index: int
    phase: Phase
    remaining: float


@dataclass
class TimerExpired:
    token: int
    index: int
    phase: Phase


@dataclass
class RecognitionResult:
    is_final: bool
    alternatives: List[str] = field(default_factory=list)

    @property
    def transcript(self) -> str:
        return self.alternatives[0] if self.alternatives else ""


@dataclass
class Recognition:
    result_index: int
    results: List[RecognitionResult] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Recognition":
        results: List[RecognitionResult] = []
        for item in payload.get("results") or []:
            if not isinstance(item, dict):
                continue
            alternatives = item.get("alternatives")
            if not isinstance(alternatives, list):
                transcript = item.get("transcript")
                alternatives = [transcript] if isinstance(transcript, str) else []
            results.append(
                RecognitionResult(
                    is_final=bool(item.get("isFinal")),
                    alternatives=[str(a) for a in alternatives if isinstance(a, str)],
                )
            )
        try:
            result_index = max(0, int(payload.get("resultIndex") or 0))
        except (TypeError, ValueError):
            result_index = 0
        return cls(result_index=result_index, results=results)


@dataclass
class ClientReady:
    speech_supported: bool
    id_token: Optional[str] = None


@dataclass
class StartCapture:
    pass


@dataclass
class StopCapture:
    pass


@dataclass
class CaptureEnded:
    pass


@dataclass
class TextEdited:
    text: str


@dataclass
class Submit:
    pass


@dataclass
class Skip:
    source: SkipSource = SkipSource.MANUAL


@dataclass
class EndNow:
    pass


@dataclass
class SetSave:
    enabled: bool


@dataclass
class SetAutoSpeak:
    enabled: bool


@dataclass
class RepeatQuestion:
    pass


@dataclass
class GenerateReport:
    id_token: Optional[str] = None


@dataclass
class ReportFinished:
    report: Any


@dataclass
class Close:
    pass
