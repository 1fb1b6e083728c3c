from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InterviewRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    owner_id: str = Field(index=True)
    role: str
    level: str
    interview_type: str
    options: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    questions: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: str = Field(default="in_progress", index=True)
    # Timestamps are UTC; SQLite hands them back naive, see store.as_utc.
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    turns: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    per_question_feedback: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    summary: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
