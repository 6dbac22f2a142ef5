"""Schemas for priorities and balance scores."""
from __future__ import annotations

from datetime import date as Date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PriorityItem(BaseModel):
    domain: str = Field(..., min_length=1, max_length=100)
    rank: int = Field(..., ge=1, le=8)
    importance_score: int = Field(..., ge=1, le=10)


class PriorityResponse(PriorityItem):
    id: UUID


class PrioritiesUpdateRequest(BaseModel):
    priorities: List[PriorityItem] = Field(..., min_length=1, max_length=8)


class PrioritiesResponse(BaseModel):
    priorities: List[PriorityResponse]
    default_domains: List[str]
    request_id: str


class BalanceScoreResponse(BaseModel):
    id: UUID
    score: int
    breakdown: List[Dict[str, Any]]
    computed_for_date: Date
    created_at: Optional[datetime]


class BalanceComputeResponse(BaseModel):
    score: BalanceScoreResponse
    computed: bool
    request_id: str


class BalanceLatestResponse(BaseModel):
    score: Optional[BalanceScoreResponse]
    request_id: str


class BalanceTrendPoint(BaseModel):
    date: Date
    score: int


class BalanceTrendStats(BaseModel):
    average: int
    highest: int
    lowest: int


class BalanceTrendResponse(BaseModel):
    trend: List[BalanceTrendPoint]
    direction: str
    stats: BalanceTrendStats
    weekly_averages: List[Dict[str, int]]
    request_id: str
