"""Schemas for tasks and task linking."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

EnergyLevel = Literal["low", "medium", "high"]


class TaskCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    due_date: Optional[str] = Field(default=None, max_length=20)
    estimated_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    energy_required: Optional[EnergyLevel] = None
    priority: Optional[Literal["low", "medium", "high"]] = None
    category: Optional[str] = Field(default=None, max_length=100)
    outcome_id: Optional[UUID] = None
    commitment_id: Optional[UUID] = None
    metadata: Optional[Dict[str, Any]] = None


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=500)
    due_date: Optional[str] = Field(default=None, max_length=20)
    estimated_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    energy_required: Optional[EnergyLevel] = None
    priority: Optional[Literal["low", "medium", "high"]] = None
    category: Optional[str] = Field(default=None, max_length=100)
    status: Optional[Literal["active", "parked", "needs_linking"]] = None


class TaskCompleteRequest(BaseModel):
    completed: bool = True


class TaskResponse(BaseModel):
    id: UUID
    title: str
    status: str
    due_date: Optional[str]
    estimated_minutes: Optional[int]
    energy_required: Optional[str]
    priority: Optional[str]
    category: Optional[str]
    outcome_id: Optional[UUID]
    commitment_id: Optional[UUID]
    now_slot: Optional[int]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class TaskEnvelope(BaseModel):
    task: TaskResponse
    request_id: str


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    request_id: str


class TaskLinkRequest(BaseModel):
    task_id: UUID
    commitment_id: Optional[UUID] = None
    outcome_id: Optional[UUID] = None


class TaskLinkResponse(BaseModel):
    task: TaskResponse
    linked_to: Literal["commitment", "outcome"]
    request_id: str


class BulkRelinkRequest(BaseModel):
    task_ids: List[UUID] = Field(..., min_length=1, max_length=100)
    commitment_id: Optional[UUID] = None
    outcome_id: Optional[UUID] = None


class BulkRelinkResponse(BaseModel):
    updated: int
    tasks: List[TaskResponse]
    request_id: str
