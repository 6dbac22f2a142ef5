from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from uuid import uuid4

from ally.api.routes import weekly_plans as weekly_plans_route
from ally.services.weekly_planning import capacity_analysis, format_week_range, iso_week_info, week_info_for


def _link(minutes, day=None):
    return SimpleNamespace(estimated_minutes=minutes, scheduled_day=day, task_id=uuid4())


def test_iso_week_info_spans_year_boundary():
    info = iso_week_info(date(2026, 1, 1))
    assert (info.year, info.week_number) == (2026, 1)
    assert info.week_start == date(2025, 12, 29)
    assert info.week_end == date(2026, 1, 4)
    assert format_week_range(info) == "Dec 29 - Jan 4"

    last = iso_week_info(date(2027, 1, 1))
    assert (last.year, last.week_number) == (2026, 53)


def test_week_info_for_matches_iso_calendar():
    info = week_info_for(2026, 11)
    assert info.week_start == date(2026, 3, 9)
    assert info.week_start.weekday() == 0


def test_capacity_within_limits_has_no_warnings():
    analysis = capacity_analysis([_link(300, 0), _link(60, 1), _link(60)], 480)
    assert analysis.total_planned_minutes == 420
    assert analysis.utilization_percent == 88
    assert not analysis.is_overcommitted
    assert analysis.warnings == []
    assert analysis.day_breakdown[0].total_minutes == 300
    assert analysis.day_breakdown[0].day_name == "Monday"


def test_capacity_significantly_overcommitted():
    analysis = capacity_analysis([_link(300, 0), _link(300, 1)], 480)
    assert analysis.is_overcommitted
    warning = analysis.warnings[0]
    assert (warning.type, warning.severity) == ("overcommitted", "error")
    assert warning.details == "Planned 10h but only 8h available"


def test_capacity_slightly_over():
    analysis = capacity_analysis([_link(270, 0), _link(270, 1)], 480)
    warning = analysis.warnings[0]
    assert warning.severity == "warning"
    assert warning.details == "Consider reducing by 1h"


def test_capacity_flags_unbalanced_day():
    analysis = capacity_analysis([_link(240, 0), _link(30, 1), _link(30, 2)], 480)
    assert [warning.type for warning in analysis.warnings] == ["unbalanced"]
    assert analysis.warnings[0].message == "Monday is heavily loaded"


def test_capacity_flags_missing_buffer():
    analysis = capacity_analysis([_link(115, day) for day in range(4)], 480)
    assert analysis.utilization_percent == 96
    assert [warning.type for warning in analysis.warnings] == ["no_buffer"]


def test_capacity_with_zero_available_minutes():
    analysis = capacity_analysis([], 0)
    assert analysis.utilization_percent == 0
    assert analysis.warnings == []


# --- API ---------------------------------------------------------------------


def _outcome(client, headers, title):
    return client.post("/outcomes", json={"title": title}, headers=headers).json()["outcome"]


def _task(client, headers, title, **fields):
    return client.post("/tasks", json={"title": title, **fields}, headers=headers).json()["task"]


def _create_plan(client, headers, **body):
    response = client.post("/weekly-plans", json=body or None, headers=headers)
    assert response.status_code in (200, 201), response.text
    return response


def test_create_returns_existing_draft(client, auth):
    headers, _ = auth
    first = _create_plan(client, headers)
    assert first.status_code == 201
    plan = first.json()["plan"]
    assert plan["status"] == "draft"
    assert plan["version"] == 1
    assert plan["available_capacity_minutes"] == 480

    second = _create_plan(client, headers)
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["plan"]["id"] == plan["id"]


def test_create_keeps_explicit_zero_capacity(client, auth):
    headers, _ = auth
    plan = _create_plan(client, headers, available_capacity_minutes=0).json()["plan"]
    assert plan["available_capacity_minutes"] == 0


def test_create_defaults_to_local_week(client, auth, monkeypatch):
    headers, _ = auth
    monkeypatch.setattr(weekly_plans_route, "local_today", lambda user: date(2026, 1, 4))

    plan = _create_plan(client, headers).json()["plan"]
    assert (plan["year"], plan["week_number"]) == (2026, 1)

    current = client.get("/weekly-plans/current", headers=headers).json()
    assert current["plan"]["id"] == plan["id"]
    assert current["current_week"]["week_number"] == 1


def test_create_rejects_invalid_week(client, auth):
    headers, _ = auth
    response = client.post("/weekly-plans", json={"year": 2025, "week_number": 53}, headers=headers)
    assert response.status_code == 400


def test_outcome_limit_and_duplicates(client, auth):
    headers, _ = auth
    plan_id = _create_plan(client, headers).json()["plan"]["id"]
    outcomes = [_outcome(client, headers, f"Outcome {index}") for index in range(4)]

    for outcome in outcomes[:3]:
        added = client.post(f"/weekly-plans/{plan_id}/outcomes", json={"outcome_id": outcome["id"]}, headers=headers)
        assert added.status_code == 201

    fourth = client.post(f"/weekly-plans/{plan_id}/outcomes", json={"outcome_id": outcomes[3]["id"]}, headers=headers)
    assert fourth.status_code == 400
    assert fourth.json()["detail"] == "Maximum 3 outcomes allowed per plan"


def test_add_task_defaults_and_validation(client, auth):
    headers, _ = auth
    plan_id = _create_plan(client, headers).json()["plan"]["id"]
    loose = _task(client, headers, "Laundry")
    sized = _task(client, headers, "Tax return", estimated_minutes=90)

    added = client.post(f"/weekly-plans/{plan_id}/tasks", json={"task_id": loose["id"], "scheduled_day": 2}, headers=headers)
    assert added.status_code == 201
    assert added.json()["task"]["estimated_minutes"] == 30
    assert added.json()["task"]["title"] == "Laundry"
    assert added.json()["planned_capacity_minutes"] == 30

    sized_added = client.post(f"/weekly-plans/{plan_id}/tasks", json={"task_id": sized["id"]}, headers=headers)
    assert sized_added.json()["planned_capacity_minutes"] == 120

    duplicate = client.post(f"/weekly-plans/{plan_id}/tasks", json={"task_id": loose["id"]}, headers=headers)
    assert duplicate.status_code == 400

    bad_day = _task(client, headers, "Bad day")
    response = client.post(
        f"/weekly-plans/{plan_id}/tasks", json={"task_id": bad_day["id"], "scheduled_day": 7}, headers=headers
    )
    assert response.status_code == 400


def test_commit_requires_outcomes_and_tasks(client, auth):
    headers, _ = auth
    plan_id = _create_plan(client, headers).json()["plan"]["id"]
    response = client.post(f"/weekly-plans/{plan_id}/commit", headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Select at least one outcome before committing"


def test_full_planning_flow(client, auth):
    headers, _ = auth
    plan_id = _create_plan(client, headers, available_capacity_minutes=120).json()["plan"]["id"]
    outcome = _outcome(client, headers, "Launch newsletter")
    client.post(
        f"/weekly-plans/{plan_id}/outcomes",
        json={"outcome_id": outcome["id"], "notes": "first issue"},
        headers=headers,
    )
    monday = _task(client, headers, "Write draft", estimated_minutes=100)
    flexible = _task(client, headers, "Pick template", estimated_minutes=50)
    client.post(f"/weekly-plans/{plan_id}/tasks", json={"task_id": monday["id"], "scheduled_day": 0}, headers=headers)
    client.post(f"/weekly-plans/{plan_id}/tasks", json={"task_id": flexible["id"]}, headers=headers)

    patched = client.patch(
        f"/weekly-plans/{plan_id}",
        json={"previous_week_reflection": "Too many meetings", "wins": ["shipped"]},
        headers=headers,
    )
    assert patched.status_code == 200
    assert patched.json()["plan"]["wins"] == ["shipped"]

    committed = client.post(f"/weekly-plans/{plan_id}/commit", headers=headers)
    assert committed.status_code == 200
    body = committed.json()
    plan = body["plan"]
    assert plan["status"] == "committed"
    assert plan["committed_at"] is not None
    assert plan["planned_capacity_minutes"] == 150
    assert body["capacity"]["utilization_percent"] == 125
    assert body["capacity"]["day_breakdown"][0]["task_ids"] == [monday["id"]]

    summary = plan["summary_markdown"]
    assert summary.startswith(f"# Week {plan['week_number']} Plan\n")
    assert "1. **Launch newsletter** - first issue" in summary
    assert "### Monday\n- Write draft (100min)" in summary
    assert "### Flexible (Unscheduled)\n- Pick template (50min)" in summary
    assert "- [!] You are significantly overcommitted" in summary

    locked = client.post(f"/weekly-plans/{plan_id}/outcomes", json={"outcome_id": outcome["id"]}, headers=headers)
    assert locked.status_code == 400
    assert locked.json()["detail"] == "Cannot modify committed plan"
    assert client.delete(f"/weekly-plans/{plan_id}", headers=headers).status_code == 400

    replan = _create_plan(client, headers)
    assert replan.status_code == 201
    assert replan.json()["plan"]["version"] == 2

    current = client.get("/weekly-plans/current", headers=headers).json()
    assert current["plan"]["id"] == replan.json()["plan"]["id"]

    listed = client.get("/weekly-plans", params={"status": "committed"}, headers=headers).json()
    assert [item["id"] for item in listed["plans"]] == [plan_id]
    assert listed["current_week"]["week_number"] == plan["week_number"]


def test_get_and_delete_draft(client, auth):
    headers, _ = auth
    plan_id = _create_plan(client, headers).json()["plan"]["id"]

    detail = client.get(f"/weekly-plans/{plan_id}", headers=headers).json()
    assert detail["outcomes"] == []
    assert detail["capacity"]["total_planned_minutes"] == 0

    assert client.delete(f"/weekly-plans/{plan_id}", headers=headers).status_code == 204
    assert client.get(f"/weekly-plans/{plan_id}", headers=headers).status_code == 404
    assert client.get("/weekly-plans/current", headers=headers).json()["plan"] is None


def test_plans_are_private(client, sign_in):
    owner_headers, _ = sign_in()
    other_headers, _ = sign_in()
    plan_id = _create_plan(client, owner_headers).json()["plan"]["id"]
    assert client.get(f"/weekly-plans/{plan_id}", headers=other_headers).status_code == 404
