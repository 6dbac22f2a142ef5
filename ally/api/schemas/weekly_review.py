"""Schemas for weekly reviews."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WeeklyReviewResponse(BaseModel):
    id: UUID
    week_start: date
    week_end: date
    summary_markdown: str
    wins: List[str]
    gaps: List[str]
    patterns: List[str]
    suggested_focus: List[str]
    tasks_completed: int
    tasks_created: int
    tasks_parked: int
    completion_rate: float
    mood_average: Optional[float]
    check_in_days: int
    balance_score_avg: Optional[int]
    balance_score_trend: Optional[str]
    top_category: Optional[str]
    neglected_categories: List[str]
    source: str
    user_reflection: Optional[str]
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime


class WeeklyReviewCurrentResponse(BaseModel):
    review: Optional[WeeklyReviewResponse]
    week_start: date
    can_generate: bool
    can_generate_reason: str
    can_show_review_prompt: bool
    request_id: str


class WeeklyReviewGenerateResponse(BaseModel):
    review: WeeklyReviewResponse
    cached: bool
    is_first_review: bool
    request_id: str


class WeeklyReviewEnvelope(BaseModel):
    review: WeeklyReviewResponse
    request_id: str


class WeeklyReviewHistoryResponse(BaseModel):
    reviews: List[WeeklyReviewResponse]
    total: int
    limit: int
    offset: int
    has_more: bool
    request_id: str


class WeeklyReviewUpdateRequest(BaseModel):
    user_reflection: Optional[str] = Field(default=None, max_length=2000)
    is_read: Optional[bool] = None
