"""Domain errors raised by services and translated to HTTP errors by routes."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ServiceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, status_code: Optional[int] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    def to_http(self) -> HTTPException:
        detail: Any = self.message
        if self.extra:
            detail = {"message": self.message, **self.extra}
        return HTTPException(status_code=self.status_code, detail=detail)


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class NowModeError(ServiceError):
    pass


class TriageError(ServiceError):
    pass


class GoalError(ServiceError):
    pass


class BalanceError(ServiceError):
    pass


class PlanningError(ServiceError):
    pass


class ReviewError(ServiceError):
    pass
