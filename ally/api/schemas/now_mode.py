"""Schemas for Now Mode."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from ally.api.schemas.task import TaskResponse


class NowModeSlot(BaseModel):
    slot: int
    task: Optional[TaskResponse]


class NowModeStateResponse(BaseModel):
    enabled: bool
    strict_limit: bool
    slots: List[NowModeSlot]
    occupied_count: int
    all_completed: bool
    request_id: str


class NowModePreferencesRequest(BaseModel):
    enabled: Optional[bool] = None
    strict_limit: Optional[bool] = None


class PinRequest(BaseModel):
    task_id: UUID
    # Validated in the service so an out-of-range slot is a 400, not a 422.
    slot: Optional[int] = None
    override_time_warning: bool = False


class PinResponse(BaseModel):
    success: bool
    task: TaskResponse
    slot: int
    warning: Optional[str] = None
    request_id: str


class UnpinRequest(BaseModel):
    task_id: UUID


class UnpinResponse(BaseModel):
    success: bool
    task_id: UUID
    request_id: str


class SwapRequest(BaseModel):
    current_task_id: UUID
    new_task_id: UUID


class SwapResponse(BaseModel):
    success: bool
    unpinned_task_id: UUID
    pinned_task: TaskResponse
    slot: int
    request_id: str


class RecommendedTask(BaseModel):
    task: TaskResponse
    score: int


class RecommendedResponse(BaseModel):
    tasks: List[RecommendedTask]
    request_id: str
