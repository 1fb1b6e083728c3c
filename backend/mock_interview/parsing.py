"""
Tolerant parsing of text-generation output.
Models are asked for JSON only but often wrap it in prose or code fences, so every
parser tries a direct parse, then the outermost {...} block, then a typed default.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import ValidationError as SchemaError

from mock_interview.schemas import Feedback, Summary

LOG = logging.getLogger("interview.parsing")

T = TypeVar("T")

FEEDBACK_PARSE_NOTE = "Could not parse structured feedback."
MAX_QUESTION_LENGTH = 280

FALLBACK_QUESTIONS: Dict[str, List[str]] = {
    "hr": [
        "Tell me about yourself and what brings you to this role?",
        "Why do you want to work with our company?",
        "What are your greatest strengths, and how have you used them at work or college?",
        "Describe a weakness you are actively working on?",
        "Where do you see yourself in the next three years?",
        "Tell me about a time you worked under pressure. What did you do?",
    ],
    "technical": [
        "Walk me through a project you built end to end. What was your role?",
        "Explain a technical concept you know well as if I were a new teammate?",
        "Describe the hardest bug you have fixed. How did you find it?",
        "How do you decide between two competing technical approaches?",
        "How do you test your code before shipping it?",
        "What would you improve in the last system you worked on, and why?",
    ],
    "behavioral": [
        "Tell me about a time you disagreed with a teammate. How did you resolve it?",
        "Describe a time you received critical feedback. What did you change afterward?",
        "Tell me about a project that went off track. What did you do?",
        "Describe a time you took ownership of something outside your role?",
        "Tell me about a mistake you made and how you recovered?",
        "Describe a situation where you had to learn something quickly?",
    ],
    "managerial": [
        "Tell me about a time you led without formal authority?",
        "How do you prioritise when everything is urgent?",
        "Describe how you handled an underperforming team member?",
        "Tell me about a stakeholder conflict. How did you align priorities?",
        "How do you balance speed and quality on a team?",
        "Describe a decision you made with incomplete data. What guardrails did you use?",
    ],
}


@dataclass
class ParseResult(Generic[T]):
    """Tagged outcome of parsing a generated response."""

    value: Optional[T] = None
    error: Optional[str] = None
    raw: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, raw: str = "") -> "ParseResult[T]":
        return cls(value=value, raw=raw)

    @classmethod
    def failure(cls, error: str, raw: str = "", default: Optional[T] = None) -> "ParseResult[T]":
        return cls(value=default, error=error, raw=raw)


def extract_json_block(text: str) -> Optional[Dict[str, Any]]:
    """Direct parse first, then the greedy {...} span."""
    raw = (text or "").strip()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", raw, flags=re.DOTALL)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


def default_feedback(raw: str) -> Feedback:
    sample = [raw.strip()] if raw and raw.strip() else []
    return Feedback(strengths=[], improvements=[FEEDBACK_PARSE_NOTE], better_answer_sample=sample)


def parse_feedback(text: str) -> ParseResult[Feedback]:
    data = extract_json_block(text)
    if data is None:
        LOG.warning("Feedback parse failed; raw content: %s", (text or "")[:200])
        return ParseResult.failure("not_json", raw=text, default=default_feedback(text))
    try:
        feedback = Feedback.model_validate(data)
    except SchemaError as exc:
        LOG.warning("Feedback payload had unexpected shape: %s", exc)
        return ParseResult.failure("bad_shape", raw=text, default=default_feedback(text))
    return ParseResult.success(feedback, raw=text)


def parse_summary(text: str) -> ParseResult[Summary]:
    data = extract_json_block(text)
    if data is None:
        LOG.warning("Summary parse failed; raw content: %s", (text or "")[:200])
        return ParseResult.failure("not_json", raw=text)
    try:
        summary = Summary.model_validate(data)
    except (SchemaError, TypeError, ValueError) as exc:
        LOG.warning("Summary payload had unexpected shape: %s", exc)
        return ParseResult.failure("bad_shape", raw=text)
    return ParseResult.success(summary, raw=text)


def sanitize_questions(value: Any, limit: int = 20) -> List[str]:
    if not isinstance(value, list):
        return []
    cleaned: List[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        text = item.strip()
        text = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", text).strip()
        text = re.sub(r"\s+", " ", text).strip().strip('"').strip()
        if not text:
            continue
        if len(text) > MAX_QUESTION_LENGTH:
            text = text[:MAX_QUESTION_LENGTH].rstrip()
        if not text.endswith("?") and not text.endswith("."):
            text = f"{text}?"
        cleaned.append(text)
    # de-dupe while preserving order
    seen: set[str] = set()
    deduped: List[str] = []
    for item in cleaned:
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        deduped.append(item)
        if len(deduped) >= limit:
            break
    return deduped


def fallback_questions(interview_type: str, count: int) -> List[str]:
    items = FALLBACK_QUESTIONS.get((interview_type or "").strip().lower()) or FALLBACK_QUESTIONS["hr"]
    return [items[i % len(items)] for i in range(min(count, len(items)))]


def parse_questions(text: str, interview_type: str, count: int) -> ParseResult[List[str]]:
    data = extract_json_block(text)
    questions = sanitize_questions(data.get("questions") if data else None, limit=count)
    if questions:
        return ParseResult.success(questions, raw=text)
    LOG.warning("Question parse failed (type=%s); raw content: %s", interview_type, (text or "")[:200])
    return ParseResult.failure(
        "no_questions" if data else "not_json",
        raw=text,
        default=fallback_questions(interview_type, count),
    )
