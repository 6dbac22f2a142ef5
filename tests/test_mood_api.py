from __future__ import annotations


def test_create_and_list_mood_entries(client, auth):
    headers, _ = auth
    created = client.post("/mood-entries", json={"mood_score": 7, "note": "  good walk  "}, headers=headers)
    assert created.status_code == 201
    body = created.json()
    assert body["mood_score"] == 7
    assert body["note"] == "good walk"
    assert body["advice"] is None

    client.post("/mood-entries", json={"mood_score": 4}, headers=headers)

    listed = client.get("/mood-entries", headers=headers)
    assert listed.status_code == 200
    entries = listed.json()["entries"]
    assert sorted(entry["mood_score"] for entry in entries) == [4, 7]

    limited = client.get("/mood-entries", params={"limit": 1}, headers=headers)
    assert len(limited.json()["entries"]) == 1


def test_mood_entry_validation(client, auth):
    headers, _ = auth
    assert client.post("/mood-entries", json={"mood_score": 11}, headers=headers).status_code == 422
    assert client.post("/mood-entries", json={"mood_score": 5, "note": "x" * 1001}, headers=headers).status_code == 422
    assert client.get("/mood-entries", params={"limit": 101}, headers=headers).status_code == 422


def test_mood_entries_are_scoped_to_user(client, sign_in):
    first_headers, _ = sign_in()
    second_headers, _ = sign_in()
    client.post("/mood-entries", json={"mood_score": 3}, headers=first_headers)

    assert client.get("/mood-entries", headers=second_headers).json()["entries"] == []


def test_mood_routes_require_auth(client):
    assert client.get("/mood-entries").status_code == 401
    assert client.post("/mood-entries", json={"mood_score": 5}).status_code == 401


def test_context_for_new_user_is_onboarding(client, auth):
    headers, _ = auth
    response = client.get("/mood-entries/context", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["context"]["total_check_ins"] == 0
    assert body["context"]["last_check_in"] is None
    assert body["prompt"]["approach"] == "onboarding"


def test_context_reflects_low_streak(client, auth):
    headers, _ = auth
    for score in (2, 3, 2):
        client.post("/mood-entries", json={"mood_score": score, "note": "work deadline stress"}, headers=headers)

    body = client.get("/mood-entries/context", params={"mood_score": 2}, headers=headers).json()
    context = body["context"]
    assert context["total_check_ins"] == 3
    assert context["current_streak"] == {"type": "low_mood", "days": 3}
    assert context["current_pattern"]["type"] == "streak_low"
    assert "work stress" in [theme["theme"] for theme in context["recurring_themes"]]
    assert body["prompt"]["approach"] == "gentle_support"


def test_burnout_log_feeds_context(client, auth):
    headers, _ = auth
    response = client.post(
        "/burnout-logs",
        json={"sleep_quality": 3, "overwhelm": 8, "battery_level": 25, "source": "quick"},
        headers=headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["values"]["sleep_quality"] == 3
    assert body["values"]["motivation"] is None
    assert body["battery_level"] == 25

    burnout = client.get("/mood-entries/context", headers=headers).json()["context"]["burnout"]
    assert burnout["values"]["overwhelm"] == 8
    assert burnout["battery_level"] == 25
    assert burnout["completeness"] == 22


def test_burnout_log_validation(client, auth):
    headers, _ = auth
    assert client.post("/burnout-logs", json={"sleep_quality": 0}, headers=headers).status_code == 422
    assert client.post("/burnout-logs", json={"battery_level": 101}, headers=headers).status_code == 422


def test_check_in_awards_xp_and_stats(client, auth):
    headers, _ = auth
    first = client.post(
        "/mood-entries",
        json={"mood_score": 6, "energy_level": 3, "breathing_completed": True},
        headers=headers,
    )
    assert first.status_code == 201
    body = first.json()
    assert body["energy_level"] == 3
    assert body["energy_label"] == "High"
    assert body["xp_earned"] == 13
    assert body["reward"] == {
        "xp_earned": 13,
        "total_xp": 13,
        "level": 1,
        "level_up": False,
        "streak": 1,
        "new_badges": [],
    }

    second = client.post("/mood-entries", json={"mood_score": 7}, headers=headers).json()
    assert second["reward"]["xp_earned"] == 20
    assert second["reward"]["total_xp"] == 33

    stats = client.get("/user-stats", headers=headers)
    assert stats.status_code == 200
    data = stats.json()
    assert data["total_xp"] == 33
    assert data["level"] == 1
    assert data["xp_for_next_level"] == 200
    assert data["checked_in_today"] is True
    assert data["progress"]["daily"] == 100.0
    assert data["achievements"] == []


def test_user_stats_for_new_user(client, auth):
    headers, _ = auth
    data = client.get("/user-stats", headers=headers).json()
    assert data["total_xp"] == 0
    assert data["level"] == 1
    assert data["current_streak"] == 0
    assert data["checked_in_today"] is False


def test_energy_level_is_bounded(client, auth):
    headers, _ = auth
    assert client.post("/mood-entries", json={"mood_score": 5, "energy_level": 5}, headers=headers).status_code == 422
    assert client.get("/user-stats").status_code == 401
