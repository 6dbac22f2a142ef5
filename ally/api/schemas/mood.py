"""Schemas for mood entries, burnout logs and the user context view."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class MoodEntryCreateRequest(BaseModel):
    mood_score: int = Field(..., ge=0, le=10)
    note: Optional[str] = Field(default=None, max_length=1000)
    energy_level: Optional[int] = Field(default=None, ge=0, le=4)
    breathing_completed: bool = False

    @field_validator("note")
    @classmethod
    def strip_note(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class MoodEntryResponse(BaseModel):
    id: UUID
    mood_score: int
    note: Optional[str]
    advice: Optional[str]
    energy_level: Optional[int] = None
    energy_label: Optional[str] = None
    breathing_completed: bool = False
    xp_earned: int = 0
    achievements_earned: List[str] = Field(default_factory=list)
    created_at: datetime


class BadgeResponse(BaseModel):
    id: str
    icon: str
    title: str
    description: str
    type: str


class CheckInRewardResponse(BaseModel):
    xp_earned: int
    total_xp: int
    level: int
    level_up: bool
    streak: int
    new_badges: List[BadgeResponse]


class MoodEntryCreateResponse(MoodEntryResponse):
    reward: CheckInRewardResponse


class MoodEntryListResponse(BaseModel):
    entries: List[MoodEntryResponse]
    request_id: str


class BurnoutLogCreateRequest(BaseModel):
    sleep_quality: Optional[int] = Field(default=None, ge=1, le=10)
    energy_level: Optional[int] = Field(default=None, ge=1, le=10)
    physical_tension: Optional[int] = Field(default=None, ge=1, le=10)
    irritability: Optional[int] = Field(default=None, ge=1, le=10)
    overwhelm: Optional[int] = Field(default=None, ge=1, le=10)
    motivation: Optional[int] = Field(default=None, ge=1, le=10)
    focus_difficulty: Optional[int] = Field(default=None, ge=1, le=10)
    forgetfulness: Optional[int] = Field(default=None, ge=1, le=10)
    decision_fatigue: Optional[int] = Field(default=None, ge=1, le=10)
    battery_level: Optional[int] = Field(default=None, ge=0, le=100)
    source: Optional[str] = Field(default=None, max_length=40)


class BurnoutLogResponse(BaseModel):
    id: UUID
    values: Dict[str, Optional[int]]
    battery_level: Optional[int]
    source: Optional[str]
    created_at: datetime
    request_id: str


class UserContextResponse(BaseModel):
    context: Dict[str, Any]
    prompt: Dict[str, Any]
    request_id: str


class UserStatsResponse(BaseModel):
    total_xp: int
    level: int
    xp_for_next_level: int
    current_streak: int
    checked_in_today: bool
    progress: Dict[str, float]
    achievements: List[BadgeResponse]
    request_id: str
