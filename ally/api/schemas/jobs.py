"""Schemas for job endpoints."""
from __future__ import annotations

from pydantic import BaseModel


class JobRunResponse(BaseModel):
    job: str
    users_processed: int
    scores_written: int
    errors: int
    request_id: str
