"""Schemas for brain dump ingestion."""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from ally.api.schemas.task import TaskResponse


class BrainDumpRequest(BaseModel):
    raw_text: str = Field(..., max_length=5000)
    source: Literal["text", "voice"] = "text"
    create_tasks: bool = False

    @field_validator("raw_text")
    @classmethod
    def require_words(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < 3:
            raise ValueError("Please enter at least a few words.")
        return cleaned


class ParsedTaskResponse(BaseModel):
    title: str
    due_date: Optional[str]
    priority: str
    confidence: float
    category: str
    original_fragment: str


class BrainDumpSignals(BaseModel):
    emotional_state: Optional[str] = None
    blockers: List[str] = Field(default_factory=list)
    actionable: bool = False


class BrainDumpRecord(BaseModel):
    id: UUID
    raw_text: str
    source: str
    task_count: int
    parser: Optional[str]
    created_at: datetime


class BrainDumpResponse(BaseModel):
    dump: BrainDumpRecord
    tasks: List[ParsedTaskResponse]
    created_tasks: List[TaskResponse]
    signals: BrainDumpSignals
    acknowledgement: str
    request_id: str
