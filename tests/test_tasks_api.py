from __future__ import annotations

from uuid import uuid4

from ally.db.models.activity_event import ActivityEvent


def _create_outcome(client, headers, title="Ship the portfolio"):
    response = client.post("/outcomes", json={"title": title}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["outcome"]


def _create_task(client, headers, **fields):
    body = {"title": "Write intro", **fields}
    response = client.post("/tasks", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["task"]


def test_unlinked_task_needs_linking(client, auth):
    headers, _ = auth
    task = _create_task(client, headers, title="  Call   the bank  ", due_date="today", estimated_minutes=15)
    assert task["title"] == "Call the bank"
    assert task["status"] == "needs_linking"
    assert task["due_date"] == "today"
    assert task["now_slot"] is None


def test_linked_task_is_active(client, auth):
    headers, _ = auth
    outcome = _create_outcome(client, headers)
    task = _create_task(client, headers, outcome_id=outcome["id"])
    assert task["status"] == "active"
    assert task["outcome_id"] == outcome["id"]


def test_create_task_rejects_blank_title_and_unknown_outcome(client, auth):
    headers, _ = auth
    blank = client.post("/tasks", json={"title": "   "}, headers=headers)
    assert blank.status_code == 400
    assert blank.json()["detail"] == "Title is required"

    missing = client.post("/tasks", json={"title": "x", "outcome_id": str(uuid4())}, headers=headers)
    assert missing.status_code == 404


def test_list_tasks_filters_by_status(client, auth):
    headers, _ = auth
    outcome = _create_outcome(client, headers)
    _create_task(client, headers, title="loose")
    _create_task(client, headers, title="linked", outcome_id=outcome["id"])

    active = client.get("/tasks", params={"status": "active"}, headers=headers).json()["tasks"]
    assert [task["title"] for task in active] == ["linked"]

    by_outcome = client.get("/tasks", params={"outcome_id": outcome["id"]}, headers=headers).json()["tasks"]
    assert len(by_outcome) == 1

    assert client.get("/tasks", params={"status": "bogus"}, headers=headers).status_code == 422


def test_update_task(client, auth):
    headers, _ = auth
    task = _create_task(client, headers)

    updated = client.patch(f"/tasks/{task['id']}", json={"priority": "high", "category": "Work"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["task"]["priority"] == "high"
    assert updated.json()["task"]["category"] == "Work"

    reactivated = client.patch(f"/tasks/{task['id']}", json={"status": "active"}, headers=headers)
    assert reactivated.json()["task"]["status"] == "needs_linking"

    empty = client.patch(f"/tasks/{task['id']}", json={}, headers=headers)
    assert empty.status_code == 400
    assert empty.json()["detail"] == "No valid fields to update"

    blank = client.patch(f"/tasks/{task['id']}", json={"title": "  "}, headers=headers)
    assert blank.status_code == 400


def test_update_task_rejects_null_required_fields(client, auth):
    headers, _ = auth
    task = _create_task(client, headers)

    cleared = client.patch(f"/tasks/{task['id']}", json={"status": None}, headers=headers)
    assert cleared.status_code == 400
    assert cleared.json()["detail"] == "Invalid status"

    null_title = client.patch(f"/tasks/{task['id']}", json={"title": None}, headers=headers)
    assert null_title.status_code == 400

    listed = client.get("/tasks", headers=headers).json()["tasks"]
    assert listed[0]["status"] == "needs_linking"


def test_complete_and_uncomplete_task(client, auth, db):
    headers, user_id = auth
    outcome = _create_outcome(client, headers)
    task = _create_task(client, headers, outcome_id=outcome["id"])

    done = client.post(f"/tasks/{task['id']}/complete", headers=headers)
    assert done.status_code == 200
    assert done.json()["task"]["status"] == "completed"
    assert done.json()["task"]["completed_at"] is not None

    undone = client.post(f"/tasks/{task['id']}/complete", json={"completed": False}, headers=headers)
    assert undone.json()["task"]["status"] == "active"
    assert undone.json()["task"]["completed_at"] is None

    events = [
        row.event_type
        for row in db.query(ActivityEvent).filter(ActivityEvent.user_id == user_id).all()
    ]
    assert "task_completed" in events
    assert "task_uncompleted" in events


def test_other_users_tasks_are_not_found(client, sign_in):
    owner_headers, _ = sign_in()
    other_headers, _ = sign_in()
    task = _create_task(client, owner_headers)

    response = client.patch(f"/tasks/{task['id']}", json={"priority": "low"}, headers=other_headers)
    assert response.status_code == 404
    assert client.post(f"/tasks/{task['id']}/complete", headers=other_headers).status_code == 404


def test_link_task_to_commitment_sets_outcome(client, auth):
    headers, _ = auth
    outcome = _create_outcome(client, headers)
    commitment = client.post(
        "/commitments", json={"outcome_id": outcome["id"], "title": "Draft case studies"}, headers=headers
    ).json()["commitment"]
    task = _create_task(client, headers)

    response = client.post(
        "/tasks/link", json={"task_id": task["id"], "commitment_id": commitment["id"]}, headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["linked_to"] == "commitment"
    assert body["task"]["status"] == "active"
    assert body["task"]["outcome_id"] == outcome["id"]
    assert body["task"]["commitment_id"] == commitment["id"]


def test_link_task_requires_target(client, auth):
    headers, _ = auth
    task = _create_task(client, headers)
    response = client.post("/tasks/link", json={"task_id": task["id"]}, headers=headers)
    assert response.status_code == 400


def test_bulk_relink(client, auth):
    headers, _ = auth
    outcome = _create_outcome(client, headers)
    first = _create_task(client, headers, title="one")
    second = _create_task(client, headers, title="two")

    response = client.post(
        "/tasks/bulk-relink",
        json={"task_ids": [first["id"], second["id"]], "outcome_id": outcome["id"]},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["updated"] == 2
    assert {task["status"] for task in body["tasks"]} == {"active"}

    missing = client.post(
        "/tasks/bulk-relink",
        json={"task_ids": [first["id"], str(uuid4())], "outcome_id": outcome["id"]},
        headers=headers,
    )
    assert missing.status_code == 404
