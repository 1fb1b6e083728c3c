"""
Text-generation client and the interview-specific calls built on it.
The client talks to an OpenAI-compatible chat completions endpoint (NVIDIA by default).
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

import httpx

from mock_interview.errors import GenerationError, GenerationParseError
from mock_interview.parsing import ParseResult, default_feedback, parse_feedback, parse_questions, parse_summary
from mock_interview.schemas import Feedback, InterviewOptions, Summary, Turn

LOG = logging.getLogger("interview.llm")


class TextGenerator(Protocol):
    async def generate(self, prompt: str, *, max_tokens: int = 600, temperature: float = 0.7) -> str:
        ...


class ChatCompletionsClient:
    def __init__(self, api_key: Optional[str], model: str, url: str, timeout: float = 12.0) -> None:
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout

    async def generate(self, prompt: str, *, max_tokens: int = 600, temperature: float = 0.7) -> str:
        if not self.api_key:
            LOG.warning("LLM API key missing; generation unavailable")
            raise GenerationError("Generation unavailable")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": 1.0,
            "stream": False,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                LOG.info("Calling LLM: model=%s prompt_len=%s", self.model, len(prompt))
                resp = await client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            LOG.warning("LLM request failed: %s", exc)
            raise GenerationError() from exc

        if resp.status_code != 200:
            LOG.warning("LLM responded with %s: %s", resp.status_code, resp.text[:200])
            raise GenerationError()

        try:
            data = resp.json()
            choices = data.get("choices") or []
            content = (choices[0].get("message", {}).get("content") or "").strip() if choices else ""
        except (ValueError, AttributeError, IndexError):
            content = ""
        if not content:
            LOG.warning("LLM returned empty content")
            raise GenerationError()
        return content


# ---- prompts ----


def questions_prompt(role: str, level: str, interview_type: str, count: int, options: InterviewOptions) -> str:
    extras = []
    if options.goal:
        extras.append(f"Goal: {options.goal}")
    if options.difficulty:
        extras.append(f"Difficulty: {options.difficulty}")
    if options.question_style:
        extras.append(f"Question style: {options.question_style}")
    if options.personality:
        extras.append(f"Interviewer personality: {options.personality}")
    extra_block = "\n".join(extras)
    return (
        f"You are an interview coach. Generate {count} interview questions.\n\n"
        "Return JSON ONLY:\n"
        '{"questions": ["...", "..."]}\n\n'
        f"Interview Type: {interview_type}\nRole: {role}\nLevel: {level}\n"
        f"{extra_block}\n\n"
        "Rules:\n- Short, clear questions\n- No numbering, no markdown\n- Practical and job-market relevant"
    ).strip()


def feedback_prompt(question: str, answer: str) -> str:
    return (
        "You are a kind and practical interview coach.\n\n"
        "Given the interview question and candidate answer, return a concise JSON response ONLY "
        "(no markdown, no extra text) in this exact shape:\n"
        '{"strengths": ["...","..."], "improvements": ["...","..."], "betterAnswerSample": ["...","...","..."]}\n\n'
        "Rules:\n- strengths: 2 bullet points max\n- improvements: 2 bullet points max\n"
        "- betterAnswerSample: 3-6 bullet lines, crisp and professional\n- No harsh tone, no shaming\n\n"
        f"Question: {question}\nCandidate Answer: {answer}"
    )


def format_transcript(turns: Sequence[Turn]) -> str:
    return "\n\n".join(f"Q{i + 1}: {t.question}\nA{i + 1}: {t.answer}" for i, t in enumerate(turns))


def summary_prompt(role: str, level: str, interview_type: str, turns: Sequence[Turn]) -> str:
    return (
        "You are an interview coach. Create an overall interview summary.\n\n"
        "Return JSON ONLY:\n"
        '{"score": 0-100, "topStrengths": ["...","...","..."], "topImprovements": ["...","...","..."], '
        '"oneLineVerdict": "..."}\n\n'
        f"Context:\nInterview Type: {interview_type}\nRole: {role}\nLevel: {level}\n\n"
        f"Transcript:\n{format_transcript(turns)}\n\n"
        "Rules:\n- Kind and practical\n- Improvements actionable\n- Answers marked [SKIPPED] were not attempted\n"
        "- No markdown"
    )


# ---- calls ----


async def generate_questions(
    generator: TextGenerator,
    role: str,
    level: str,
    interview_type: str,
    count: int,
    options: Optional[InterviewOptions] = None,
) -> ParseResult[List[str]]:
    prompt = questions_prompt(role, level, interview_type, count, options or InterviewOptions())
    try:
        text = await generator.generate(prompt, max_tokens=600, temperature=0.85)
    except GenerationError:
        text = ""
    result = parse_questions(text, interview_type, count)
    if not result.ok:
        LOG.info("Question fallback: type=%s count=%s", interview_type, count)
    return result


async def generate_feedback(generator: TextGenerator, question: str, answer: str) -> ParseResult[Feedback]:
    try:
        text = await generator.generate(feedback_prompt(question, answer), max_tokens=400, temperature=0.4)
    except GenerationError:
        LOG.warning("Feedback generation failed; using default feedback")
        return ParseResult.failure("generation_failed", default=default_feedback(""))
    return parse_feedback(text)


async def generate_summary(
    generator: TextGenerator, role: str, level: str, interview_type: str, turns: Sequence[Turn]
) -> Summary:
    """Raises GenerationError when the service fails and GenerationParseError on unusable output."""
    text = await generator.generate(summary_prompt(role, level, interview_type, turns), max_tokens=500, temperature=0.4)
    result = parse_summary(text)
    if not result.ok or result.value is None:
        raise GenerationParseError("Summary parse failed")
    return result.value
