"""Schemas for daily check-ins."""
from __future__ import annotations

from datetime import date as Date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DailyCheckinRequest(BaseModel):
    overwhelm: int = Field(..., ge=1, le=5)
    anxiety: int = Field(..., ge=1, le=5)
    energy: int = Field(..., ge=1, le=5)
    clarity: int = Field(..., ge=1, le=5)
    note: Optional[str] = Field(default=None, max_length=500)
    date: Optional[Date] = None


class DailyCheckinResponse(BaseModel):
    id: UUID
    date: Date
    overwhelm: int
    anxiety: int
    energy: int
    clarity: int
    note: Optional[str]
    created_at: Optional[datetime]


class CheckinUpsertResponse(BaseModel):
    checkin: DailyCheckinResponse
    adaptive_state: Dict[str, Any]
    is_new: bool
    request_id: str


class CheckinStatusResponse(BaseModel):
    checkin: Optional[DailyCheckinResponse]
    adaptive_state: Dict[str, Any]
    is_today: bool
    needs_checkin_today: bool
    request_id: str


class TrendPoint(BaseModel):
    date: Date
    overwhelm: int
    anxiety: int
    energy: int
    clarity: int


class CheckinTrendResponse(BaseModel):
    range: str
    days_in_range: int
    days_with_data: int
    points: List[TrendPoint]
    summary: Optional[Dict[str, Dict[str, Any]]]
    correlations: Optional[Dict[str, Any]]
    insights: List[Dict[str, Any]]
    request_id: str
