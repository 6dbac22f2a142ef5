from __future__ import annotations

from datetime import datetime, timezone

from ally.db.models.balance import BalanceScore, UserPriority
from ally.services import job_runner
from ally.services.job_runner import run_balance_for_all_users
from ally.services.user_service import get_or_create_user
from ally.worker import scheduler_main

NOW = datetime(2026, 3, 10, 3, 0, tzinfo=timezone.utc)


def _user_with_priorities(db, *domains):
    user = get_or_create_user(db)
    for rank, domain in enumerate(domains, start=1):
        db.add(UserPriority(user_id=user.id, domain=domain, rank=rank, importance_score=5))
    db.commit()
    return user


def test_job_scores_every_user_with_priorities(db):
    first = _user_with_priorities(db, "Work")
    second = _user_with_priorities(db, "Health", "Home")
    get_or_create_user(db)
    db.commit()

    result = run_balance_for_all_users(db, now=NOW)

    assert result.users_processed == 2
    assert result.scores_written == 2
    assert result.errors == 0
    owners = {row.user_id for row in db.query(BalanceScore).all()}
    assert owners == {first.id, second.id}


def test_job_skips_users_without_priorities(db):
    scored = _user_with_priorities(db, "Work")
    bare = get_or_create_user(db)
    db.commit()

    result = run_balance_for_all_users(db, user_ids=[scored.id, bare.id, scored.id], now=NOW)

    assert result.users_processed == 2
    assert result.scores_written == 1
    assert result.errors == 0


def test_job_counts_unexpected_errors(db, monkeypatch):
    user = _user_with_priorities(db, "Work")

    def explode(session, user_id, *, now=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(job_runner, "run_balance_for_user", explode)
    result = run_balance_for_all_users(db, user_ids=[user.id], now=NOW)

    assert result.scores_written == 0
    assert result.errors == 1


def test_scheduler_registers_balance_job():
    class RecordingScheduler:
        def __init__(self):
            self.jobs = []

        def add_job(self, func, **kwargs):
            self.jobs.append((func, kwargs))

    scheduler = RecordingScheduler()
    scheduler_main.register_jobs(scheduler)

    func, kwargs = scheduler.jobs[0]
    assert func is scheduler_main.run_balance_job
    assert kwargs["trigger"] == "cron"
    assert kwargs["id"] == "balance_score_job"


def test_run_job_endpoint_scores_caller(client, auth):
    headers, _ = auth
    client.put(
        "/priorities",
        json={"priorities": [{"domain": "Work", "rank": 1, "importance_score": 7}]},
        headers=headers,
    )

    response = client.post("/jobs/balance/run", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["job"] == "balance_score"
    assert body["users_processed"] == 1
    assert body["scores_written"] == 1

    assert client.get("/balance", headers=headers).json()["score"]["score"] == 10


def test_run_job_endpoint_without_priorities(client, auth):
    headers, _ = auth
    body = client.post("/jobs/balance/run", headers=headers).json()
    assert body["users_processed"] == 1
    assert body["scores_written"] == 0
