from __future__ import annotations

import asyncio
import json
from typing import Callable, List, Optional

import pytest

from mock_interview.auth import IdentityVerifier
from mock_interview.db import Database
from mock_interview.errors import GenerationError
from mock_interview.store import SessionStore

SECRET = "test-secret-that-is-long-enough-for-hs256"

FEEDBACK_JSON = json.dumps(
    {
        "strengths": ["Clear structure", "Good example"],
        "improvements": ["Quantify impact", "Be more concise"],
        "betterAnswerSample": ["Situation first.", "Then the action.", "End with the result."],
    }
)

SUMMARY_JSON = json.dumps(
    {
        "score": 72,
        "topStrengths": ["Structured answers"],
        "topImprovements": ["Use numbers", "Practice pacing"],
        "oneLineVerdict": "Solid base; sharpen the specifics.",
    }
)


class FakeGenerator:
    """Scripted text generator that records every prompt it receives."""

    def __init__(
        self,
        feedback: str = FEEDBACK_JSON,
        summary: str = SUMMARY_JSON,
        questions: str = '{"questions": ["Q one?", "Q two?", "Q three?"]}',
        fail_summary: bool = False,
    ) -> None:
        self.feedback = feedback
        self.summary = summary
        self.questions = questions
        self.fail_summary = fail_summary
        self.prompts: List[str] = []

    def calls(self, kind: str) -> List[str]:
        return [p for p in self.prompts if self.kind_of(p) == kind]

    @staticmethod
    def kind_of(prompt: str) -> str:
        if "Candidate Answer:" in prompt:
            return "feedback"
        if "overall interview summary" in prompt:
            return "summary"
        return "questions"

    async def generate(self, prompt: str, *, max_tokens: int = 600, temperature: float = 0.7) -> str:
        self.prompts.append(prompt)
        kind = self.kind_of(prompt)
        if kind == "feedback":
            return self.feedback
        if kind == "summary":
            if self.fail_summary:
                raise GenerationError()
            return self.summary
        return self.questions


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def verifier() -> IdentityVerifier:
    return IdentityVerifier(SECRET)


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'interviews.db'}")
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
def store(database) -> SessionStore:
    return SessionStore(database)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def make_session(store):
    async def _make(questions: Optional[List[str]] = None, owner_id: str = "user-1"):
        return await store.create(
            owner_id,
            "Software Engineer",
            "Fresher",
            "HR",
            questions or ["Tell me about yourself?", "Why this role?", "Describe a challenge?"],
        )

    return _make
