"""Schemas for weekly planning."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WeeklyPlanCreateRequest(BaseModel):
    week_number: Optional[int] = Field(default=None, ge=1, le=53)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    available_capacity_minutes: Optional[int] = Field(default=None, ge=0, le=10080)


class WeeklyPlanUpdateRequest(BaseModel):
    previous_week_reflection: Optional[str] = None
    wins: Optional[List[str]] = None
    learnings: Optional[List[str]] = None
    available_capacity_minutes: Optional[int] = Field(default=None, le=10080)
    status: Optional[str] = None


class WeeklyPlanResponse(BaseModel):
    id: UUID
    week_number: int
    year: int
    version: int
    status: str
    available_capacity_minutes: int
    planned_capacity_minutes: int
    previous_week_reflection: Optional[str]
    wins: List[str]
    learnings: List[str]
    summary_markdown: Optional[str]
    committed_at: Optional[datetime]
    created_at: Optional[datetime]


class WeekInfoResponse(BaseModel):
    week_number: int
    year: int
    week_start: date
    week_end: date


class WeeklyPlanCreateResponse(BaseModel):
    plan: WeeklyPlanResponse
    created: bool
    request_id: str


class WeeklyPlanListResponse(BaseModel):
    plans: List[WeeklyPlanResponse]
    current_week: WeekInfoResponse
    request_id: str


class WeeklyPlanCurrentResponse(BaseModel):
    plan: Optional[WeeklyPlanResponse]
    current_week: WeekInfoResponse
    request_id: str


class PlanOutcomeRequest(BaseModel):
    outcome_id: UUID
    priority_rank: Optional[int] = Field(default=None, ge=1, le=3)
    notes: Optional[str] = Field(default=None, max_length=500)


class PlanOutcomeResponse(BaseModel):
    id: UUID
    outcome_id: UUID
    title: Optional[str]
    priority_rank: int
    notes: Optional[str]


class PlanTaskRequest(BaseModel):
    task_id: UUID
    # Range is checked by the planner so a bad day is a 400.
    scheduled_day: Optional[int] = None
    estimated_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    priority_rank: Optional[int] = Field(default=None, ge=0)


class PlanTaskResponse(BaseModel):
    id: UUID
    task_id: UUID
    title: Optional[str]
    scheduled_day: Optional[int]
    estimated_minutes: int
    priority_rank: int


class WeeklyPlanDetailResponse(BaseModel):
    plan: WeeklyPlanResponse
    outcomes: List[PlanOutcomeResponse]
    tasks: List[PlanTaskResponse]
    capacity: Dict[str, Any]
    request_id: str


class PlanOutcomeEnvelope(BaseModel):
    outcome: PlanOutcomeResponse
    request_id: str


class PlanTaskEnvelope(BaseModel):
    task: PlanTaskResponse
    planned_capacity_minutes: int
    request_id: str
