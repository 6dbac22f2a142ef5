from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from ally.db.models.task import Task
from ally.services.now_mode import rank_tasks, score_task, validate_pin

TODAY = date(2026, 3, 10)


def _task(**fields):
    base = {
        "id": uuid4(),
        "now_slot": None,
        "outcome_id": uuid4(),
        "commitment_id": None,
        "status": "active",
        "estimated_minutes": None,
        "due_date": None,
    }
    base.update(fields)
    return SimpleNamespace(**base)


def test_validate_pin_rules():
    assert validate_pin(_task(), 0, strict=True).can_pin
    assert validate_pin(_task(now_slot=1), 0, strict=True).error == "Task is already in Now Mode"
    assert "linked" in validate_pin(_task(outcome_id=None), 0, strict=True).error
    assert validate_pin(_task(status="completed"), 0, strict=True).error == "Cannot pin a completed task"


def test_validate_pin_when_slots_are_full():
    strict = validate_pin(_task(), 3, strict=True)
    assert not strict.can_pin
    assert "All 3 Now Mode slots" in strict.error

    relaxed = validate_pin(_task(), 3, strict=False)
    assert not relaxed.can_pin
    assert relaxed.error is None
    assert relaxed.warning


def test_validate_pin_warns_on_long_estimate():
    result = validate_pin(_task(estimated_minutes=120), 0, strict=True)
    assert result.can_pin
    assert "120 min" in result.warning


@pytest.mark.parametrize(
    "due_date,minutes,expected",
    [
        ("today", 10, 50 + 25 + 10),
        ("tomorrow", 30, 30 + 20 + 10),
        ("this_week", 60, 15 + 15 + 10),
        ("no_rush", 90, 0 + 10 + 10),
        (None, 200, 5 + 5 + 10),
        (None, None, 5 + 10 + 10),
        ("2026-03-09", None, 50 + 10 + 10),
        ("2026-03-11", None, 30 + 10 + 10),
        ("2026-03-15", None, 15 + 10 + 10),
        ("2026-04-30", None, 0 + 10 + 10),
        ("someday", None, 5 + 10 + 10),
    ],
)
def test_score_task(due_date, minutes, expected):
    assert score_task(_task(due_date=due_date, estimated_minutes=minutes), TODAY) == expected


def test_score_task_excludes_unpinnable():
    assert score_task(_task(now_slot=2), TODAY) == -1
    assert score_task(_task(outcome_id=None), TODAY) == -1
    assert score_task(_task(status="completed"), TODAY) == -1
    assert score_task(_task(status="needs_linking"), TODAY) == 5 + 10


def test_rank_tasks_orders_by_score_and_limits():
    urgent = _task(due_date="today", estimated_minutes=10)
    later = _task(due_date="no_rush")
    unlinked = _task(outcome_id=None)
    ranked = rank_tasks([later, unlinked, urgent], limit=1, today=TODAY)
    assert [item.task for item in ranked] == [urgent]


# --- API ---------------------------------------------------------------------


def _linked_task(client, headers, title="Task", **fields):
    outcome = client.post("/outcomes", json={"title": f"Outcome for {title}"}, headers=headers).json()["outcome"]
    body = {"title": title, "outcome_id": outcome["id"], **fields}
    return client.post("/tasks", json=body, headers=headers).json()["task"]


def test_initial_state_has_three_empty_slots(client, auth):
    headers, _ = auth
    body = client.get("/now-mode", headers=headers).json()
    assert body["enabled"] is True
    assert body["strict_limit"] is True
    assert [slot["slot"] for slot in body["slots"]] == [1, 2, 3]
    assert body["occupied_count"] == 0
    assert body["all_completed"] is False


def test_update_preferences(client, auth):
    headers, _ = auth
    body = client.patch("/now-mode", json={"strict_limit": False}, headers=headers).json()
    assert body["strict_limit"] is False
    assert client.patch("/now-mode", json={}, headers=headers).status_code == 400


def test_pin_fills_first_free_slot(client, auth):
    headers, _ = auth
    first = _linked_task(client, headers, "first")
    second = _linked_task(client, headers, "second")

    pinned = client.post("/now-mode/pin", json={"task_id": first["id"], "slot": 2}, headers=headers)
    assert pinned.status_code == 200
    assert pinned.json()["slot"] == 2

    auto = client.post("/now-mode/pin", json={"task_id": second["id"]}, headers=headers)
    assert auto.json()["slot"] == 1

    state = client.get("/now-mode", headers=headers).json()
    assert state["occupied_count"] == 2
    assert state["slots"][1]["task"]["id"] == first["id"]


def test_pin_rejections(client, auth):
    headers, _ = auth
    linked = _linked_task(client, headers, "linked")
    unlinked = client.post("/tasks", json={"title": "loose"}, headers=headers).json()["task"]

    assert client.post("/now-mode/pin", json={"task_id": unlinked["id"]}, headers=headers).status_code == 400
    assert client.post("/now-mode/pin", json={"task_id": linked["id"], "slot": 4}, headers=headers).status_code == 400
    assert client.post("/now-mode/pin", json={"task_id": str(uuid4())}, headers=headers).status_code == 404

    client.post("/now-mode/pin", json={"task_id": linked["id"], "slot": 1}, headers=headers)
    other = _linked_task(client, headers, "other")
    taken = client.post("/now-mode/pin", json={"task_id": other["id"], "slot": 1}, headers=headers)
    assert taken.status_code == 400
    assert taken.json()["detail"] == "Slot 1 is already occupied"


def test_strict_limit_blocks_fourth_pin(client, auth):
    headers, _ = auth
    for index in range(3):
        task = _linked_task(client, headers, f"t{index}")
        assert client.post("/now-mode/pin", json={"task_id": task["id"]}, headers=headers).status_code == 200

    fourth = _linked_task(client, headers, "t4")
    response = client.post("/now-mode/pin", json={"task_id": fourth["id"]}, headers=headers)
    assert response.status_code == 400
    assert "All 3 Now Mode slots" in response.json()["detail"]


def test_long_task_requires_override(client, auth):
    headers, _ = auth
    task = _linked_task(client, headers, "deep work", estimated_minutes=120)

    blocked = client.post("/now-mode/pin", json={"task_id": task["id"]}, headers=headers)
    assert blocked.status_code == 400
    detail = blocked.json()["detail"]
    assert detail["requires_override"] is True
    assert "120 min" in detail["warning"]

    allowed = client.post(
        "/now-mode/pin", json={"task_id": task["id"], "override_time_warning": True}, headers=headers
    )
    assert allowed.status_code == 200
    assert allowed.json()["warning"]


def test_unpin_and_swap(client, auth):
    headers, _ = auth
    current = _linked_task(client, headers, "current")
    replacement = _linked_task(client, headers, "replacement")
    client.post("/now-mode/pin", json={"task_id": current["id"], "slot": 3}, headers=headers)

    swapped = client.post(
        "/now-mode/swap",
        json={"current_task_id": current["id"], "new_task_id": replacement["id"]},
        headers=headers,
    )
    assert swapped.status_code == 200
    body = swapped.json()
    assert body["slot"] == 3
    assert body["unpinned_task_id"] == current["id"]
    assert body["pinned_task"]["now_slot"] == 3

    same = client.post(
        "/now-mode/swap",
        json={"current_task_id": replacement["id"], "new_task_id": replacement["id"]},
        headers=headers,
    )
    assert same.status_code == 400

    unpinned = client.post("/now-mode/unpin", json={"task_id": replacement["id"]}, headers=headers)
    assert unpinned.status_code == 200
    assert client.post("/now-mode/unpin", json={"task_id": replacement["id"]}, headers=headers).status_code == 400


def test_completing_pinned_task_frees_slot(client, auth):
    headers, _ = auth
    task = _linked_task(client, headers, "quick win")
    client.post("/now-mode/pin", json={"task_id": task["id"]}, headers=headers)
    client.post(f"/tasks/{task['id']}/complete", headers=headers)

    state = client.get("/now-mode", headers=headers).json()
    assert state["occupied_count"] == 0


def test_parking_pinned_task_frees_slot_for_next_pin(client, auth):
    headers, _ = auth
    parked = _linked_task(client, headers, "parked")
    waiting = _linked_task(client, headers, "waiting")
    client.post("/now-mode/pin", json={"task_id": parked["id"]}, headers=headers)

    updated = client.patch(f"/tasks/{parked['id']}", json={"status": "parked"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["task"]["now_slot"] is None

    pinned = client.post("/now-mode/pin", json={"task_id": waiting["id"]}, headers=headers)
    assert pinned.status_code == 200
    assert pinned.json()["slot"] == 1


def test_pin_skips_slot_held_by_unpinnable_row(client, auth, session_factory):
    headers, _ = auth
    stale = _linked_task(client, headers, "stale")
    fresh = _linked_task(client, headers, "fresh")
    with session_factory() as db:
        row = db.get(Task, UUID(stale["id"]))
        row.status = "parked"
        row.now_slot = 1
        db.commit()

    pinned = client.post("/now-mode/pin", json={"task_id": fresh["id"]}, headers=headers)
    assert pinned.status_code == 200
    assert pinned.json()["slot"] == 2

def test_recommended_skips_pinned_and_excluded(client, auth):
    headers, _ = auth
    today = _linked_task(client, headers, "today", due_date="today", estimated_minutes=10)
    later = _linked_task(client, headers, "later", due_date="no_rush")
    pinned = _linked_task(client, headers, "pinned")
    client.post("/now-mode/pin", json={"task_id": pinned["id"]}, headers=headers)

    body = client.get("/now-mode/recommended", headers=headers).json()
    assert [item["task"]["id"] for item in body["tasks"]] == [today["id"], later["id"]]
    assert body["tasks"][0]["score"] == 85

    excluded = client.get(
        "/now-mode/recommended",
        params={"exclude": f"{today['id']},not-a-uuid"},
        headers=headers,
    ).json()
    assert [item["task"]["id"] for item in excluded["tasks"]] == [later["id"]]

    assert client.get("/now-mode/recommended", params={"limit": 0}, headers=headers).status_code == 422
