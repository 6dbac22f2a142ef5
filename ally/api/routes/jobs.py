"""On-demand triggers for scheduled jobs."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ally.api.schemas.jobs import JobRunResponse
from ally.core.rate_limit import balance_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.user import User
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services.job_runner import run_balance_for_all_users

router = APIRouter()


@router.post("/jobs/balance/run", response_model=JobRunResponse, tags=["jobs"])
def run_balance_job(
    http_request: Request,
    user: User = Depends(rate_limited(balance_limiter)),
    db: Session = Depends(get_db),
) -> JobRunResponse:
    """Run the nightly balance job for the calling user only."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace("jobs.balance.run", metadata={"route": "/jobs/balance/run"}, user_id=str(user.id), request_id=request_id):
        result = run_balance_for_all_users(db, user_ids=[user.id])

    log_metric("jobs.balance.scores_written", result.scores_written, metadata={"user_id": str(user.id)})

    return JobRunResponse(
        job="balance_score",
        users_processed=result.users_processed,
        scores_written=result.scores_written,
        errors=result.errors,
        request_id=request_id or "",
    )
