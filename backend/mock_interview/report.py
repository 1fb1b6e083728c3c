"""
End-of-interview report: per-turn feedback, overall summary, then save or discard.

Feedback is requested one turn at a time, in order. Skipped turns get a fixed
local feedback. A summary failure ends the run in the error state; nothing else does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from mock_interview.errors import GenerationError, InterviewError, ValidationError
from mock_interview.llm import TextGenerator, generate_feedback, generate_summary
from mock_interview.schemas import Feedback, InterviewSession, ReportStatus, Summary, Turn, dump
from mock_interview.store import SessionStore

LOG = logging.getLogger("interview.report")


def skipped_feedback() -> Feedback:
    return Feedback(
        strengths=[],
        improvements=["This question was skipped. Next time, try a short structured answer even if you are unsure."],
        better_answer_sample=[
            "Start with one line that restates what the question is asking.",
            "Share one concrete example: the situation, what you did, and the result.",
            "Close with what you learned or would do differently.",
        ],
    )


@dataclass
class Report:
    status: ReportStatus
    turns: List[Turn] = field(default_factory=list)
    feedback: List[Feedback] = field(default_factory=list)
    summary: Optional[Summary] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "success": self.status in (ReportStatus.SAVED, ReportStatus.DISCARDED),
            "error": self.error,
            "turns": [{**dump(turn), "feedback": dump(fb)} for turn, fb in zip(self.turns, self.feedback)],
            "perQuestionFeedback": [dump(fb) for fb in self.feedback],
            "summary": dump(self.summary) if self.summary else None,
        }


class ReportPipeline:
    """Runs at most once per session; may be retried only after an error."""

    def __init__(self, generator: TextGenerator, store: SessionStore) -> None:
        self.generator = generator
        self.store = store
        self.status = ReportStatus.IDLE

    @property
    def can_run(self) -> bool:
        return self.status in (ReportStatus.IDLE, ReportStatus.ERROR)

    def claim(self) -> None:
        """Mark the pipeline as running; rejects duplicate or late triggers."""
        if not self.can_run:
            raise ValidationError(f"Report already {self.status.value}")
        self.status = ReportStatus.RUNNING

    async def collect_feedback(self, turns: Sequence[Turn]) -> List[Feedback]:
        feedback: List[Feedback] = []
        for i, turn in enumerate(turns):
            if turn.skipped:
                feedback.append(skipped_feedback())
                continue
            result = await generate_feedback(self.generator, turn.question, turn.answer)
            if not result.ok:
                LOG.info("Feedback fallback for turn %s: %s", i + 1, result.error)
            feedback.append(result.value or skipped_feedback())
        return feedback

    async def run(
        self,
        document: InterviewSession,
        turns: Sequence[Turn],
        save_enabled: bool,
        owner_id: Optional[str],
    ) -> Report:
        if self.status != ReportStatus.RUNNING:
            self.claim()
        turns = list(turns)
        if not turns:
            return self._finish(Report(status=ReportStatus.ERROR, error="Nothing to report"))

        feedback = await self.collect_feedback(turns)

        try:
            summary = await generate_summary(
                self.generator, document.role, document.level, document.interview_type, turns
            )
        except GenerationError as exc:
            LOG.warning("Summary failed for interview %s: %s", document.id, exc)
            return self._finish(Report(ReportStatus.ERROR, turns, feedback, error="Summary failed"))

        if save_enabled and owner_id:
            try:
                await self.store.complete(document.id, owner_id, turns, feedback, summary)
            except InterviewError as exc:
                LOG.warning("Saving interview %s failed: %s", document.id, exc)
                return self._finish(Report(ReportStatus.ERROR, turns, feedback, summary, error=exc.message))
            return self._finish(Report(ReportStatus.SAVED, turns, feedback, summary))

        try:
            await self.store.discard(document.id)
        except InterviewError as exc:
            # An orphaned in_progress record is never listed, so this is not fatal.
            LOG.warning("Discarding interview %s failed: %s", document.id, exc)
        return self._finish(Report(ReportStatus.DISCARDED, turns, feedback, summary))

    def _finish(self, report: Report) -> Report:
        self.status = report.status
        LOG.info("Report finished: status=%s turns=%s", report.status.value, len(report.turns))
        return report
