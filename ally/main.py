"""Main FastAPI application for the Ally wellness backend."""
from fastapi import FastAPI, Request

from ally.api.routes.auth import router as auth_router
from ally.api.routes.balance import router as balance_router
from ally.api.routes.brain_dump import router as brain_dump_router
from ally.api.routes.coach import router as coach_router
from ally.api.routes.commitments import router as commitments_router
from ally.api.routes.daily_checkin import router as daily_checkin_router
from ally.api.routes.inbox import router as inbox_router
from ally.api.routes.jobs import router as jobs_router
from ally.api.routes.mood import router as mood_router
from ally.api.routes.now_mode import router as now_mode_router
from ally.api.routes.outcomes import router as outcomes_router
from ally.api.routes.tasks import router as tasks_router
from ally.api.routes.weekly_plans import router as weekly_plans_router
from ally.api.routes.weekly_reviews import router as weekly_reviews_router
from ally.core.config import settings
from ally.core.logging import configure_logging
from ally.core.middleware import RequestIDMiddleware
from ally.observability.client import init_opik
from ally.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(auth_router)
app.include_router(mood_router)
app.include_router(coach_router)
app.include_router(tasks_router)
app.include_router(outcomes_router)
app.include_router(commitments_router)
app.include_router(now_mode_router)
app.include_router(inbox_router)
app.include_router(daily_checkin_router)
app.include_router(balance_router)
app.include_router(weekly_plans_router)
app.include_router(weekly_reviews_router)
app.include_router(brain_dump_router)
app.include_router(jobs_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness check")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can check the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
