from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from ally.db.models.task import Task
from ally.services import inbox as inbox_service
from ally.services.errors import TriageError
from ally.services.inbox import (
    ParsedTokens,
    age_display,
    infer_urgency,
    parse_tokens,
    strip_tokens,
    triage_streak_days,
)
from ally.services.user_service import get_or_create_user

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_parse_tokens():
    tokens = parse_tokens("Email landlord @today !high #home #admin")
    assert tokens.due == "today"
    assert tokens.priority == "high"
    assert tokens.project == "home"
    assert tokens.tags == ["home", "admin"]
    assert tokens.as_dict() == {"due": "today", "priority": "high", "project": "home", "tags": ["home", "admin"]}


def test_parse_tokens_this_week_and_plain_text():
    assert parse_tokens("plan trip @thisweek !low").due == "this_week"
    assert parse_tokens("plan trip @this_week").due == "this_week"
    assert parse_tokens("just a thought").as_dict() == {"tags": []}


def test_strip_tokens():
    assert strip_tokens("Email landlord  @today !high #home") == "Email landlord"


@pytest.mark.parametrize(
    "delta,expected",
    [
        (timedelta(seconds=20), "just now"),
        (timedelta(minutes=42), "42m ago"),
        (timedelta(hours=5), "5h ago"),
        (timedelta(hours=30), "yesterday"),
        (timedelta(days=4), "4d ago"),
        (timedelta(days=10), "2026-02-28"),
    ],
)
def test_age_display(delta, expected):
    assert age_display(NOW - delta, NOW) == expected


def test_infer_urgency():
    assert infer_urgency(5, ParsedTokens(priority="high")) == "high"
    assert infer_urgency(5, ParsedTokens(due="today")) == "high"
    assert infer_urgency(10_000, ParsedTokens(priority="low")) == "low"
    assert infer_urgency(60 * 24 * 4, ParsedTokens()) == "high"
    assert infer_urgency(60 * 24 * 2, ParsedTokens()) == "medium"
    assert infer_urgency(30, ParsedTokens(priority="medium")) == "medium"
    assert infer_urgency(30, ParsedTokens()) == "low"


def test_triage_streak_days():
    today = date(2026, 3, 10)

    def at(day_offset):
        return datetime(2026, 3, 10, 9, tzinfo=timezone.utc) - timedelta(days=day_offset)

    assert triage_streak_days([at(0), at(1), at(2), at(4)], today) == 3
    assert triage_streak_days([at(1), at(2)], today) == 2
    assert triage_streak_days([at(3)], today) == 0
    assert triage_streak_days([], today) == 0


def test_undo_window_expires(db):
    user = get_or_create_user(db)
    item = inbox_service.capture(db, user.id, "renew passport")
    inbox_service.triage(db, user.id, item.id, "park")
    db.commit()

    later = datetime.now(timezone.utc) + timedelta(seconds=30)
    with pytest.raises(TriageError) as excinfo:
        inbox_service.undo_triage(db, user.id, item.id, now=later)
    assert "expired" in excinfo.value.message



def test_summary_counts_triage_by_local_day(db):
    user = get_or_create_user(db, tz_name="America/Los_Angeles")
    item = inbox_service.capture(db, user.id, "call the landlord")
    inbox_service.triage(db, user.id, item.id, "park")
    # 16:00 in Los Angeles, already the next day in UTC by 22:00 local.
    item.triaged_at = datetime(2026, 3, 10, 23, tzinfo=timezone.utc)
    db.commit()

    evening = datetime(2026, 3, 11, 5, tzinfo=timezone.utc)
    local = inbox_service.build_summary(db, user.id, evening, tz_name=user.timezone)
    assert local.triaged_today_count == 1
    assert local.streak_days == 1

    utc = inbox_service.build_summary(db, user.id, evening)
    assert utc.triaged_today_count == 0


def test_triage_streak_uses_local_days():
    zone = ZoneInfo("Asia/Tokyo")
    triaged = [
        datetime(2026, 3, 10, 16, tzinfo=timezone.utc),  # 01:00 on the 11th in Tokyo
        datetime(2026, 3, 9, 14, tzinfo=timezone.utc),  # 23:00 on the 9th in Tokyo
    ]
    assert triage_streak_days(triaged, date(2026, 3, 11), zone) == 1
    assert triage_streak_days(triaged, date(2026, 3, 11)) == 2

# --- API ---------------------------------------------------------------------


def _capture(client, headers, text="Book dentist !high #health"):
    response = client.post("/inbox", json={"raw_text": text}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_capture_returns_parsed_tokens(client, auth):
    headers, _ = auth
    body = _capture(client, headers)
    assert body["inbox_item"]["status"] == "pending"
    assert body["inbox_item"]["source"] == "quick_capture"
    assert body["parsed_tokens"]["priority"] == "high"
    assert body["parsed_tokens"]["project"] == "health"


def test_capture_rejects_blank_and_long_text(client, auth):
    headers, _ = auth
    assert client.post("/inbox", json={"raw_text": "   "}, headers=headers).status_code == 400
    assert client.post("/inbox", json={"raw_text": "x" * 1001}, headers=headers).status_code == 400


def test_list_pending_with_summary(client, auth):
    headers, _ = auth
    _capture(client, headers, "first @today")
    _capture(client, headers, "second")

    body = client.get("/inbox", headers=headers).json()
    assert [item["raw_text"] for item in body["items"]] == ["first @today", "second"]
    assert body["items"][0]["inferred_urgency"] == "high"
    assert body["items"][1]["inferred_urgency"] == "low"
    assert body["items"][1]["age_display"] == "just now"
    assert body["summary"]["pending_count"] == 2
    assert body["summary"]["triaged_today_count"] == 0
    assert body["summary"]["streak_days"] == 0

    assert client.get("/inbox", params={"status": "bogus"}, headers=headers).status_code == 400


def test_triage_do_now_creates_task(client, auth):
    headers, _ = auth
    item = _capture(client, headers, "Pay council tax !high #admin")["inbox_item"]

    response = client.post("/inbox/triage", json={"item_id": item["id"], "action": "do_now"}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["inbox_item"]["status"] == "triaged"
    assert body["inbox_item"]["proposed_task_id"] == body["task"]["id"]
    task = body["task"]
    assert task["title"] == "Pay council tax"
    assert task["due_date"] == "today"
    assert task["priority"] == "high"
    assert task["category"] == "admin"
    assert task["status"] == "needs_linking"

    summary = client.get("/inbox", headers=headers).json()["summary"]
    assert summary["triaged_today_count"] == 1
    assert summary["streak_days"] == 1


def test_triage_schedule_with_outcome(client, auth):
    headers, _ = auth
    outcome = client.post("/outcomes", json={"title": "Health"}, headers=headers).json()["outcome"]
    item = _capture(client, headers, "Book physio")["inbox_item"]

    body = client.post(
        "/inbox/triage",
        json={
            "item_id": item["id"],
            "action": "schedule",
            "metadata": {"scheduled_date": "2026-03-20"},
            "outcome_id": outcome["id"],
        },
        headers=headers,
    ).json()
    assert body["task"]["due_date"] == "2026-03-20"
    assert body["task"]["status"] == "active"
    assert body["inbox_item"]["triage_metadata"] == {"scheduled_date": "2026-03-20"}


def test_park_and_drop_create_no_task(client, auth):
    headers, _ = auth
    parked = _capture(client, headers, "maybe learn piano")["inbox_item"]
    dropped = _capture(client, headers, "random thought")["inbox_item"]

    park = client.post("/inbox/triage", json={"item_id": parked["id"], "action": "park"}, headers=headers).json()
    assert park["task"] is None
    assert park["inbox_item"]["status"] == "triaged"

    drop = client.post("/inbox/triage", json={"item_id": dropped["id"], "action": "drop"}, headers=headers).json()
    assert drop["inbox_item"]["status"] == "discarded"

    again = client.post("/inbox/triage", json={"item_id": dropped["id"], "action": "park"}, headers=headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Item already triaged"


def test_triage_validation(client, auth):
    headers, _ = auth
    item = _capture(client, headers)["inbox_item"]
    bad_action = client.post("/inbox/triage", json={"item_id": item["id"], "action": "later"}, headers=headers)
    assert bad_action.status_code == 400
    missing = client.post("/inbox/triage", json={"item_id": str(uuid4()), "action": "park"}, headers=headers)
    assert missing.status_code == 404


def test_undo_restores_item_and_removes_task(client, auth, db):
    headers, user_id = auth
    item = _capture(client, headers, "Return parcel")["inbox_item"]
    triaged = client.post("/inbox/triage", json={"item_id": item["id"], "action": "do_now"}, headers=headers).json()
    task_id = triaged["task"]["id"]

    undone = client.post("/inbox/undo", json={"item_id": item["id"]}, headers=headers)
    assert undone.status_code == 200
    restored = undone.json()["inbox_item"]
    assert restored["status"] == "pending"
    assert restored["triage_action"] is None
    assert restored["proposed_task_id"] is None

    assert db.query(Task).filter(Task.user_id == user_id).count() == 0
    assert client.post(f"/tasks/{task_id}/complete", headers=headers).status_code == 404

    not_triaged = client.post("/inbox/undo", json={"item_id": item["id"]}, headers=headers)
    assert not_triaged.status_code == 400
