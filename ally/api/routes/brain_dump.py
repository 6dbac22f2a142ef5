"""Brain dump API routes."""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ally.api.routes.tasks import serialize_tasks
from ally.api.schemas.brain_dump import (
    BrainDumpRecord,
    BrainDumpRequest,
    BrainDumpResponse,
    BrainDumpSignals,
    ParsedTaskResponse,
)
from ally.core.rate_limit import dump_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services.brain_dump import process_dump
from ally.services.daily_checkin import local_today
from ally.services.errors import ServiceError

router = APIRouter()


@router.post("/dump", response_model=BrainDumpResponse, status_code=status.HTTP_201_CREATED, tags=["brain-dump"])
def ingest_brain_dump(
    payload: BrainDumpRequest,
    http_request: Request,
    user: User = Depends(rate_limited(dump_limiter)),
    db: Session = Depends(get_db),
) -> BrainDumpResponse:
    """Save the dump first, then split it into task suggestions (optionally creating them)."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)
    metadata = {
        "route": "/dump",
        "text_length": len(payload.raw_text),
        "source": payload.source,
        "create_tasks": payload.create_tasks,
    }

    try:
        with trace("brain_dump.processing", metadata=metadata, user_id=str(user.id), request_id=request_id) as span:
            result = process_dump(
                db,
                user,
                raw_text=payload.raw_text,
                source=payload.source,
                create_tasks=payload.create_tasks,
                today=local_today(user),
                request_id=request_id,
            )
            if span:
                span.update(metadata={**metadata, "parser": result.dump.parser, "task_count": result.dump.task_count})
            db.commit()
            db.refresh(result.dump)
            for task in result.created_tasks:
                db.refresh(task)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("brain_dump.text_length", len(payload.raw_text), metadata={"user_id": str(user.id)})
    log_metric("brain_dump.task_count", result.dump.task_count, metadata={"parser": result.dump.parser})
    log_metric("brain_dump.actionable", 1 if result.signals.actionable else 0, metadata={"user_id": str(user.id)})
    log_metric("brain_dump.latency_ms", latency_ms)

    dump = result.dump
    return BrainDumpResponse(
        dump=BrainDumpRecord(
            id=dump.id,
            raw_text=dump.raw_text,
            source=dump.source,
            task_count=dump.task_count,
            parser=dump.parser,
            created_at=ensure_utc(dump.created_at),
        ),
        tasks=[ParsedTaskResponse(**task.as_dict()) for task in result.tasks],
        created_tasks=serialize_tasks(result.created_tasks),
        signals=BrainDumpSignals(**asdict(result.signals)),
        acknowledgement=result.acknowledgement,
        request_id=request_id or "",
    )
