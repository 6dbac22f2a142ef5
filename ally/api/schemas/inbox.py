"""Schemas for inbox capture and triage."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ally.api.schemas.task import TaskResponse

TriageAction = Literal["do_now", "schedule", "delegate", "park", "drop"]


class CaptureRequest(BaseModel):
    raw_text: str = Field(..., max_length=5000)
    source: Optional[str] = None


class ParsedTokensResponse(BaseModel):
    due: Optional[str] = None
    priority: Optional[str] = None
    project: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class InboxItemResponse(BaseModel):
    id: UUID
    raw_text: str
    source: str
    status: str
    triage_action: Optional[str]
    triage_metadata: Dict[str, Any]
    proposed_task_id: Optional[UUID]
    created_at: datetime
    triaged_at: Optional[datetime]
    converted_at: Optional[datetime]
    parsed_tokens: ParsedTokensResponse


class EnrichedInboxItem(InboxItemResponse):
    age_minutes: int
    age_display: str
    inferred_urgency: Literal["high", "medium", "low"]


class CaptureResponse(BaseModel):
    inbox_item: InboxItemResponse
    parsed_tokens: ParsedTokensResponse
    request_id: str


class InboxSummaryResponse(BaseModel):
    pending_count: int
    oldest_pending_age_minutes: int
    triaged_today_count: int
    streak_days: int


class InboxListResponse(BaseModel):
    items: List[EnrichedInboxItem]
    summary: InboxSummaryResponse
    request_id: str


class TriageRequest(BaseModel):
    item_id: UUID
    action: str
    metadata: Optional[Dict[str, Any]] = None
    outcome_id: Optional[UUID] = None
    commitment_id: Optional[UUID] = None


class TriageResponse(BaseModel):
    inbox_item: InboxItemResponse
    task: Optional[TaskResponse]
    request_id: str


class UndoRequest(BaseModel):
    item_id: UUID


class UndoResponse(BaseModel):
    inbox_item: InboxItemResponse
    request_id: str
