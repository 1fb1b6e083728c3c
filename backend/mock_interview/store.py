"""
Session document store backed by SQLModel.
Documents are created in_progress, completed exactly once by their owner, and may be deleted.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from mock_interview.db import Database
from mock_interview.errors import ForbiddenError, NotFoundError, PersistenceError, ValidationError
from mock_interview.models import InterviewRecord, utcnow
from mock_interview.schemas import (
    Feedback,
    InterviewOptions,
    InterviewSession,
    SessionStatus,
    Summary,
    Turn,
    dump,
)

LOG = logging.getLogger("interview.store")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def to_document(record: InterviewRecord) -> InterviewSession:
    return InterviewSession(
        id=record.id,
        owner_id=record.owner_id,
        role=record.role,
        level=record.level,
        interview_type=record.interview_type,
        options=InterviewOptions.model_validate(record.options or {}),
        questions=list(record.questions or []),
        status=SessionStatus(record.status),
        created_at=as_utc(record.created_at),
        completed_at=as_utc(record.completed_at),
        turns=[Turn.model_validate(t) for t in record.turns or []],
        per_question_feedback=[Feedback.model_validate(f) for f in record.per_question_feedback or []],
        summary=Summary.model_validate(record.summary) if record.summary else None,
    )


class SessionStore:
    def __init__(self, database: Database) -> None:
        self.database = database

    async def create(
        self,
        owner_id: str,
        role: str,
        level: str,
        interview_type: str,
        questions: Sequence[str],
        options: Optional[InterviewOptions] = None,
    ) -> InterviewSession:
        if not questions:
            raise ValidationError("Failed to generate questions")
        record = InterviewRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            role=role,
            level=level,
            interview_type=interview_type,
            options=dump(options or InterviewOptions()),
            questions=list(questions),
            status=SessionStatus.IN_PROGRESS.value,
        )
        try:
            async with self.database.session() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as exc:
            LOG.error("Failed to create interview (owner=%s): %s", owner_id, exc)
            raise PersistenceError("Create failed") from exc
        LOG.info("Created interview %s (owner=%s questions=%s)", record.id, owner_id, len(record.questions))
        return to_document(record)

    async def get(self, session_id: str) -> InterviewSession:
        async with self.database.session() as session:
            record = await session.get(InterviewRecord, session_id)
        if record is None:
            raise NotFoundError()
        return to_document(record)

    async def get_owned(self, session_id: str, owner_id: str) -> InterviewSession:
        document = await self.get(session_id)
        if document.owner_id != owner_id:
            raise ForbiddenError()
        return document

    async def complete(
        self,
        session_id: str,
        owner_id: str,
        turns: Sequence[Turn],
        feedback: Sequence[Feedback],
        summary: Summary,
    ) -> InterviewSession:
        """Transition an in_progress document to completed with the full report."""
        try:
            async with self.database.session() as session:
                record = await session.get(InterviewRecord, session_id)
                if record is None:
                    raise NotFoundError()
                if record.owner_id != owner_id:
                    raise ForbiddenError()
                if record.status != SessionStatus.IN_PROGRESS.value:
                    raise ValidationError("Interview already completed")
                if len(turns) > len(record.questions):
                    raise ValidationError("More turns than questions")
                record.status = SessionStatus.COMPLETED.value
                record.completed_at = utcnow()
                record.turns = [dump(t) for t in turns]
                record.per_question_feedback = [dump(f) for f in feedback]
                record.summary = dump(summary)
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except SQLAlchemyError as exc:
            LOG.error("Failed to complete interview %s: %s", session_id, exc)
            raise PersistenceError() from exc
        LOG.info("Interview %s completed (turns=%s)", session_id, len(turns))
        return to_document(record)

    async def delete(self, session_id: str, owner_id: str) -> None:
        try:
            async with self.database.session() as session:
                record = await session.get(InterviewRecord, session_id)
                if record is None:
                    raise NotFoundError()
                if record.owner_id != owner_id:
                    raise ForbiddenError()
                await session.delete(record)
                await session.commit()
        except SQLAlchemyError as exc:
            LOG.error("Failed to delete interview %s: %s", session_id, exc)
            raise PersistenceError("Delete failed") from exc

    async def discard(self, session_id: str) -> bool:
        """Delete the in_progress placeholder. Completed documents are left alone."""
        try:
            async with self.database.session() as session:
                record = await session.get(InterviewRecord, session_id)
                if record is None or record.status != SessionStatus.IN_PROGRESS.value:
                    return False
                await session.delete(record)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError("Delete failed") from exc
        return True

    async def list_completed(
        self,
        owner_id: str,
        search: Optional[str] = None,
        interview_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[InterviewSession]:
        """Newest first. Filters run in SQL so the limit applies to matching rows only."""
        statement = select(InterviewRecord).where(
            InterviewRecord.owner_id == owner_id,
            InterviewRecord.status == SessionStatus.COMPLETED.value,
        )
        if interview_type and interview_type != "All":
            statement = statement.where(InterviewRecord.interview_type == interview_type)
        needle = (search or "").strip().lower()
        if needle:
            statement = statement.where(
                or_(
                    func.lower(InterviewRecord.role).contains(needle, autoescape=True),
                    func.lower(InterviewRecord.level).contains(needle, autoescape=True),
                    func.lower(InterviewRecord.interview_type).contains(needle, autoescape=True),
                )
            )
        statement = statement.order_by(InterviewRecord.created_at.desc()).limit(max(1, min(int(limit), 100)))
        async with self.database.session() as session:
            records = (await session.exec(statement)).all()
        return [to_document(record) for record in records]
