from __future__ import annotations

import json
from datetime import date, datetime, timezone
from types import SimpleNamespace
from uuid import UUID
from zoneinfo import ZoneInfo

import pytest

from ally.api.routes import weekly_reviews as weekly_reviews_route
from ally.core.config import settings
from ally.db.models.balance import UserPriority
from ally.db.models.mood import MoodEntry
from ally.db.models.task import Task
from ally.services import weekly_review as review_service
from ally.services.weekly_review import (
    GENERATION_DAY_REASON,
    balance_trend,
    can_generate,
    compute_week_stats,
    fallback_review,
    last_week_range,
    request_review,
)

TUESDAY = date(2026, 3, 10)
THURSDAY = date(2026, 3, 12)
WEEK_START = date(2026, 3, 2)
WEEK_END = date(2026, 3, 8)


def _at(day, hour=10):
    return datetime(2026, 3, day, hour, tzinfo=timezone.utc)


def _task(category, created, status="active", completed=None, updated=None):
    return SimpleNamespace(
        category=category,
        status=status,
        created_at=created,
        completed_at=completed,
        updated_at=updated or created,
    )


SAMPLE_TASKS = [
    _task("Work", _at(3), status="completed", completed=_at(4)),
    _task("Work", _at(3)),
    _task("health", datetime(2026, 2, 25, tzinfo=timezone.utc), status="completed", completed=_at(5)),
    _task("Home", _at(4), status="parked", updated=_at(6)),
    _task(None, _at(9)),
]
SAMPLE_PRIORITIES = [
    SimpleNamespace(domain="Health", rank=1, importance_score=9),
    SimpleNamespace(domain="Work", rank=2, importance_score=7),
    SimpleNamespace(domain="Finance", rank=4, importance_score=5),
]
SAMPLE_MOODS = [
    SimpleNamespace(mood_score=6, created_at=_at(3)),
    SimpleNamespace(mood_score=8, created_at=_at(5)),
    SimpleNamespace(mood_score=2, created_at=_at(9)),
]


def _sample_stats():
    return compute_week_stats(
        SAMPLE_TASKS,
        WEEK_START,
        WEEK_END,
        priorities=SAMPLE_PRIORITIES,
        moods=SAMPLE_MOODS,
        check_in_dates=[date(2026, 3, 5), date(2026, 3, 7), date(2026, 3, 10)],
    )


def test_last_week_runs_monday_to_sunday():
    assert last_week_range(TUESDAY) == (WEEK_START, WEEK_END)
    assert last_week_range(date(2026, 3, 15)) == (WEEK_START, WEEK_END)
    assert last_week_range(date(2026, 3, 9)) == (WEEK_START, WEEK_END)


def test_generation_window_is_monday_to_wednesday():
    assert can_generate(date(2026, 3, 9)) == (True, "")
    assert can_generate(date(2026, 3, 11)) == (True, "")
    assert can_generate(THURSDAY) == (False, GENERATION_DAY_REASON)


def test_week_stats():
    stats = _sample_stats()

    assert stats.created == 3
    assert stats.completed == 2
    assert stats.parked == 1
    assert stats.completion_rate == 0.67
    assert stats.by_category["work"].created == 2
    assert stats.by_category["health"].completed == 1
    assert stats.top_category == "Work"
    assert stats.neglected_categories == ["Health", "Work"]
    assert stats.mood_average == 7.0
    assert stats.check_in_days == 3


def test_week_stats_use_local_days():
    late_sunday = [_task("Work", _at(5), status="completed", completed=datetime(2026, 3, 9, 3, tzinfo=timezone.utc))]

    utc = compute_week_stats(late_sunday, WEEK_START, WEEK_END)
    los_angeles = compute_week_stats(late_sunday, WEEK_START, WEEK_END, zone=ZoneInfo("America/Los_Angeles"))

    assert utc.completed == 0
    assert los_angeles.completed == 1


def test_balance_trend():
    assert balance_trend([]) == (None, None)
    assert balance_trend([60]) == (60, "stable")
    assert balance_trend([50, 52, 60, 62]) == (56, "improving")
    assert balance_trend([70, 60]) == (65, "declining")
    assert balance_trend([60, 62]) == (61, "stable")


def test_fallback_review_leads_with_wins():
    content = fallback_review(_sample_stats(), WEEK_START)

    assert content.source == "fallback"
    assert content.wins == [
        "You completed 2 tasks this week!",
        "You made 1 intentional decision to park tasks that weren't serving you.",
        "You checked in on 3 different days.",
    ]
    assert content.gaps == ["Health could use some attention. Is that intentional?"]
    assert content.patterns == ["You were most active in Work this week.", "Your average mood was 7.0/10."]
    assert content.suggested_focus == ["Complete 1-2 Health tasks", "Pick your top priority task for Monday"]
    assert content.summary_markdown.startswith("## Week of 2026-03-02")


def test_fallback_review_for_quiet_week():
    content = fallback_review(compute_week_stats([], WEEK_START, WEEK_END), WEEK_START)
    assert content.wins == ["You showed up this week. That counts."]
    assert content.gaps == []
    assert content.suggested_focus == ["Pick your top priority task for Monday"]


def _fake_client(content=None, error=None):
    class FakeClient:
        def __init__(self, api_key):
            self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

        def _create(self, **kwargs):
            if error:
                raise error
            return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    return FakeClient


def test_request_review_parses_model_json(monkeypatch):
    content = json.dumps(
        {
            "summary_markdown": "  Solid week.  ",
            "wins": ["Shipped the report", "", 3],
            "gaps": "not a list",
            "patterns": ["Mornings work best"],
            "suggested_focus": ["Complete 2 Health tasks"],
        }
    )
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(review_service.openai, "OpenAI", _fake_client(content=content))

    review = request_review("prompt")

    assert review.source == "llm"
    assert review.summary_markdown == "Solid week."
    assert review.wins == ["Shipped the report", "3"]
    assert review.gaps == []
    assert review.patterns == ["Mornings work best"]


def test_request_review_returns_none_when_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)
    assert request_review("prompt") is None

    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(review_service.openai, "OpenAI", _fake_client(error=RuntimeError("network down")))
    assert request_review("prompt") is None


@pytest.fixture()
def on_day(monkeypatch):
    def _set(day):
        monkeypatch.setattr(weekly_reviews_route, "local_today", lambda user: day)

    monkeypatch.setattr(settings, "openai_api_key", None)
    _set(TUESDAY)
    return _set


def _seed_week(session_factory, user_id: UUID) -> None:
    with session_factory() as session:
        session.add_all(
            [
                Task(user_id=user_id, title="Send report", category="Work", status="completed",
                     created_at=_at(3), updated_at=_at(4), completed_at=_at(4)),
                Task(user_id=user_id, title="Prep slides", category="Work", status="active",
                     created_at=_at(3), updated_at=_at(3)),
                Task(user_id=user_id, title="Fix shelf", category="Home", status="parked",
                     created_at=_at(4), updated_at=_at(6)),
                UserPriority(user_id=user_id, domain="Health", rank=1, importance_score=9),
                MoodEntry(user_id=user_id, mood_score=6, created_at=_at(3)),
                MoodEntry(user_id=user_id, mood_score=8, created_at=_at(5)),
            ]
        )
        session.commit()


def test_generate_review_and_cache(client, auth, session_factory, on_day):
    headers, user_id = auth
    _seed_week(session_factory, user_id)

    before = client.get("/weekly-reviews", headers=headers).json()
    assert before["review"] is None
    assert before["week_start"] == "2026-03-02"
    assert before["can_generate"] is True
    assert before["can_show_review_prompt"] is False

    response = client.post("/weekly-reviews/generate", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["cached"] is False
    assert body["is_first_review"] is True
    review = body["review"]
    assert review["week_start"] == "2026-03-02"
    assert review["week_end"] == "2026-03-08"
    assert review["source"] == "fallback"
    assert review["tasks_created"] == 3
    assert review["tasks_completed"] == 1
    assert review["tasks_parked"] == 1
    assert review["completion_rate"] == 0.33
    assert review["top_category"] == "Work"
    assert review["neglected_categories"] == ["Health"]
    assert review["mood_average"] == 7.0
    assert review["check_in_days"] == 2
    assert review["balance_score_avg"] is None
    assert review["is_read"] is False

    again = client.post("/weekly-reviews/generate", headers=headers).json()
    assert again["cached"] is True
    assert again["is_first_review"] is False
    assert again["review"]["id"] == review["id"]

    current = client.get("/weekly-reviews", headers=headers).json()
    assert current["review"]["id"] == review["id"]

    history = client.get("/weekly-reviews/history", headers=headers).json()
    assert history["total"] == 1
    assert history["has_more"] is False
    assert [item["id"] for item in history["reviews"]] == [review["id"]]


def test_generate_outside_window_is_rejected(client, auth, on_day):
    headers, _ = auth
    on_day(THURSDAY)

    response = client.post("/weekly-reviews/generate", headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == {
        "message": "Weekly reviews are generated on Monday-Wednesday only",
        "hint": "Come back on Monday for your weekly review!",
    }

    current = client.get("/weekly-reviews", headers=headers).json()
    assert current["can_generate"] is False
    assert current["can_generate_reason"] == GENERATION_DAY_REASON


def test_review_prompt_needs_an_established_account(client, auth, session_factory, on_day):
    headers, user_id = auth
    with session_factory() as session:
        for index in range(5):
            session.add(Task(user_id=user_id, title=f"Task {index}", created_at=_at(1), updated_at=_at(1)))
        session.commit()

    assert client.get("/weekly-reviews", headers=headers).json()["can_show_review_prompt"] is True

    on_day(THURSDAY)
    assert client.get("/weekly-reviews", headers=headers).json()["can_show_review_prompt"] is False


def test_week_param_snaps_to_monday(client, auth, on_day):
    headers, _ = auth
    body = client.get("/weekly-reviews", params={"week": "2026-03-04"}, headers=headers).json()
    assert body["week_start"] == "2026-03-02"


def test_review_detail_and_reflection(client, sign_in, on_day):
    headers, _ = sign_in()
    other_headers, _ = sign_in()
    review_id = client.post("/weekly-reviews/generate", headers=headers).json()["review"]["id"]

    assert client.get(f"/weekly-reviews/{review_id}", headers=headers).status_code == 200
    assert client.get(f"/weekly-reviews/{review_id}", headers=other_headers).status_code == 404

    updated = client.patch(
        f"/weekly-reviews/{review_id}",
        json={"user_reflection": "  Good week overall  ", "is_read": True},
        headers=headers,
    )
    assert updated.status_code == 200
    review = updated.json()["review"]
    assert review["user_reflection"] == "Good week overall"
    assert review["is_read"] is True
    assert review["read_at"] is not None

    assert client.patch(f"/weekly-reviews/{review_id}", json={}, headers=headers).status_code == 400
    assert client.patch(f"/weekly-reviews/{review_id}", json={"is_read": None}, headers=headers).status_code == 400
    assert client.patch(
        f"/weekly-reviews/{review_id}", json={"is_read": True}, headers=other_headers
    ).status_code == 404


def test_history_pagination_limits(client, auth, on_day):
    headers, _ = auth
    assert client.get("/weekly-reviews/history", params={"limit": 51}, headers=headers).status_code == 422
    body = client.get("/weekly-reviews/history", params={"limit": 5, "offset": 0}, headers=headers).json()
    assert body["reviews"] == []
    assert (body["total"], body["limit"], body["offset"], body["has_more"]) == (0, 5, 0, False)
    assert client.get("/weekly-reviews").status_code == 401
