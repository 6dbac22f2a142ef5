"""Schemas for outcomes and commitments."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ally.api.schemas.task import TaskResponse

Horizon = Literal["weekly", "monthly", "quarterly"]


class OutcomeCreateRequest(BaseModel):
    title: str = Field(..., max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    horizon: str = "weekly"
    priority_rank: Optional[int] = Field(default=None, ge=0)


class OutcomeUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    horizon: Optional[str] = None
    status: Optional[str] = None
    priority_rank: Optional[int] = None


class CommitmentResponse(BaseModel):
    id: UUID
    outcome_id: UUID
    title: str
    description: Optional[str]
    status: str
    created_at: datetime


class OutcomeResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str]
    horizon: str
    status: str
    priority_rank: int
    created_at: datetime
    updated_at: datetime


class OutcomeEnvelope(BaseModel):
    outcome: OutcomeResponse
    request_id: str


class OutcomeDetailResponse(BaseModel):
    outcome: OutcomeResponse
    commitments: List[CommitmentResponse]
    task_counts: Dict[str, int]
    request_id: str


class OutcomeListResponse(BaseModel):
    outcomes: List[OutcomeResponse]
    request_id: str


class CommitmentCreateRequest(BaseModel):
    outcome_id: UUID
    title: str = Field(..., max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)


class CommitmentUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[str] = None
    outcome_id: Optional[UUID] = None


class CommitmentEnvelope(BaseModel):
    commitment: CommitmentResponse
    request_id: str


class CommitmentDetailResponse(BaseModel):
    commitment: CommitmentResponse
    tasks: List[TaskResponse]
    request_id: str


class CommitmentListResponse(BaseModel):
    commitments: List[CommitmentResponse]
    request_id: str
