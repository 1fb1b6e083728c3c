from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SKIPPED_ANSWER = "[SKIPPED]"

MAX_STRENGTHS = 2
MAX_IMPROVEMENTS = 2
MAX_SAMPLE_LINES = 6


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Phase(str, Enum):
    THINKING = "thinking"
    START_WINDOW = "startWindow"
    ANSWERING = "answering"


class SkipSource(str, Enum):
    MANUAL = "manual"
    VOICE = "voice"
    TIMEOUT = "timeout"


class ReportStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SAVED = "saved"
    DISCARDED = "discarded"
    ERROR = "error"


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


class Turn(BaseModel):
    question: str
    answer: str
    skipped: bool = False

    @property
    def answered(self) -> bool:
        return not self.skipped


class Feedback(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    better_answer_sample: List[str] = Field(default_factory=list, alias="betterAnswerSample")

    @field_validator("strengths", mode="before")
    @classmethod
    def _cap_strengths(cls, value: Any) -> List[str]:
        return _string_list(value)[:MAX_STRENGTHS]

    @field_validator("improvements", mode="before")
    @classmethod
    def _cap_improvements(cls, value: Any) -> List[str]:
        return _string_list(value)[:MAX_IMPROVEMENTS]

    @field_validator("better_answer_sample", mode="before")
    @classmethod
    def _cap_sample(cls, value: Any) -> List[str]:
        return _string_list(value)[:MAX_SAMPLE_LINES]


class Summary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    score: int
    top_strengths: List[str] = Field(default_factory=list, alias="topStrengths")
    top_improvements: List[str] = Field(default_factory=list, alias="topImprovements")
    one_line_verdict: str = Field(default="", alias="oneLineVerdict")

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError("score must be a number")
        try:
            number = float(value)
        except OverflowError as exc:
            raise ValueError("score out of range") from exc
        if not math.isfinite(number):
            raise ValueError("score must be finite")
        score = int(round(number))
        return max(0, min(100, score))

    @field_validator("top_strengths", "top_improvements", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> List[str]:
        return _string_list(value)

    @field_validator("one_line_verdict", mode="before")
    @classmethod
    def _verdict(cls, value: Any) -> str:
        return str(value or "").strip()


class InterviewOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    goal: Optional[str] = None
    difficulty: Optional[str] = None
    question_style: Optional[str] = Field(default=None, alias="questionStyle")
    personality: Optional[str] = None


class InterviewSession(BaseModel):
    """Document view of a persisted interview session."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: str = Field(alias="ownerId")
    role: str
    level: str
    interview_type: str = Field(alias="interviewType")
    options: InterviewOptions = Field(default_factory=InterviewOptions)
    questions: List[str]
    status: SessionStatus
    created_at: datetime = Field(alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    turns: List[Turn] = Field(default_factory=list)
    per_question_feedback: List[Feedback] = Field(default_factory=list, alias="perQuestionFeedback")
    summary: Optional[Summary] = None


# ---- request payloads ----


class CreateInterviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id_token: str = Field(..., alias="idToken", min_length=1)
    role: str = Field(..., min_length=1)
    level: str = Field(..., min_length=1)
    interview_type: str = Field(..., alias="interviewType", min_length=1)
    num_questions: Optional[int] = Field(default=None, alias="numQuestions", ge=1, le=20)
    goal: Optional[str] = None
    difficulty: Optional[str] = None
    question_style: Optional[str] = Field(default=None, alias="questionStyle")
    personality: Optional[str] = None

    def options(self) -> InterviewOptions:
        return InterviewOptions(
            goal=self.goal,
            difficulty=self.difficulty,
            question_style=self.question_style,
            personality=self.personality,
        )


class CompleteInterviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id_token: str = Field(..., alias="idToken", min_length=1)
    turns: List[Turn]
    per_question_feedback: List[Feedback] = Field(default_factory=list, alias="perQuestionFeedback")
    summary: Summary


class EvaluateRequest(BaseModel):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)


class SummaryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str = ""
    level: str = ""
    interview_type: str = Field(default="", alias="interviewType")
    turns: List[Turn] = Field(..., min_length=1)


class TtsRequest(BaseModel):
    text: str
    speaker: Optional[str] = None
    language: Optional[str] = None


def dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")
