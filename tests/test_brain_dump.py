from __future__ import annotations

import json
from datetime import date
from types import SimpleNamespace

import pytest

from ally.core.config import settings
from ally.services import brain_dump as dump_service
from ally.services.brain_dump import (
    ACK_ACTIONABLE,
    ACK_NEUTRAL,
    DumpParseError,
    extract_signals,
    heuristic_parse,
    parse_dump,
    request_task_extraction,
    sanitize_llm_tasks,
)

TODAY = date(2026, 3, 10)

DUMP = "- Call vet about Luna tomorrow\n- pay rent asap\nI feel so overwhelmed.\nmaybe read that book eventually"


def _fake_client(content=None, error=None, captured=None):
    class FakeClient:
        def __init__(self, api_key):
            if captured is not None:
                captured["api_key"] = api_key
            self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

        def _create(self, **kwargs):
            if captured is not None:
                captured["kwargs"] = kwargs
            if error:
                raise error
            return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    return FakeClient


@pytest.fixture()
def no_api_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)


def test_heuristic_splits_lines_and_reads_cues():
    tasks = heuristic_parse(DUMP)

    assert [task.title for task in tasks] == [
        "Call vet about Luna tomorrow",
        "pay rent asap",
        "I feel so overwhelmed",
        "maybe read that book eventually",
    ]
    vet, rent, feeling, book = tasks
    assert vet.due_date == "tomorrow"
    assert vet.priority == "medium"
    assert vet.category == "Admin"
    assert rent.priority == "high"
    assert rent.category == "Finance"
    assert feeling.confidence == 0.4
    assert book.priority == "low"
    assert book.category == "Personal Growth"
    assert vet.confidence == 0.7


def test_heuristic_honours_capture_tokens():
    (task,) = heuristic_parse("email boss !high #work @today")
    assert task.title == "email boss"
    assert task.priority == "high"
    assert task.due_date == "today"
    assert task.category == "Work"


def test_heuristic_skips_tiny_fragments():
    assert heuristic_parse("ok.\n-\n  ") == []


def test_signals_pick_up_mood_and_blockers():
    signals = extract_signals("Totally swamped. Stuck waiting on the landlord")
    assert signals.emotional_state == "overwhelmed"
    assert signals.blockers == ["Stuck waiting on the landlord"]
    assert extract_signals("already sorted the garage").emotional_state is None


def test_sanitize_model_tasks():
    tasks = sanitize_llm_tasks(
        [
            {
                "title": " Buy milk ",
                "priority": "urgent",
                "confidence": 3,
                "category": "Groceries",
                "due_date": "2026-03-12",
            },
            {"title": "Ring Sam", "due_date": "next friday", "category": "Social", "confidence": 0.6},
            {"title": ""},
            "junk",
        ]
    )
    assert len(tasks) == 2
    milk, ring = tasks
    assert milk.title == "Buy milk"
    assert milk.priority == "medium"
    assert milk.confidence == 1.0
    assert milk.category == "Admin"
    assert milk.due_date == "2026-03-12"
    assert ring.due_date is None
    assert ring.category == "Social"
    assert ring.confidence == 0.6


def test_model_extraction_uses_json_mode(monkeypatch):
    captured = {}
    content = json.dumps({"tasks": [{"title": "Call vet", "priority": "high", "confidence": 0.9}]})
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(dump_service.openai, "OpenAI", _fake_client(content=content, captured=captured))

    tasks = request_task_extraction("call the vet!!", TODAY)

    assert [task.title for task in tasks] == ["Call vet"]
    assert captured["api_key"] == "sk-test"
    assert captured["kwargs"]["response_format"] == {"type": "json_object"}
    assert "Tuesday, 2026-03-10" in captured["kwargs"]["messages"][0]["content"]


def test_model_extraction_rejects_bad_payloads(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(dump_service.openai, "OpenAI", _fake_client(content="not json"))
    with pytest.raises(DumpParseError):
        request_task_extraction("call the vet", TODAY)

    monkeypatch.setattr(dump_service.openai, "OpenAI", _fake_client(content=json.dumps({"items": []})))
    with pytest.raises(DumpParseError):
        request_task_extraction("call the vet", TODAY)


def test_parse_falls_back_to_heuristics_when_model_fails(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(dump_service.openai, "OpenAI", _fake_client(error=RuntimeError("network down")))

    tasks, parser = parse_dump("pay rent asap", TODAY)

    assert parser == "heuristic"
    assert [task.title for task in tasks] == ["pay rent asap"]


def test_dump_returns_suggestions_without_creating_tasks(client, auth, no_api_key):
    headers, _ = auth
    response = client.post("/dump", json={"raw_text": DUMP}, headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["dump"]["parser"] == "heuristic"
    assert body["dump"]["task_count"] == 4
    assert body["dump"]["source"] == "text"
    assert len(body["tasks"]) == 4
    assert body["created_tasks"] == []
    assert body["signals"]["emotional_state"] == "overwhelmed"
    assert body["signals"]["actionable"] is True
    assert body["acknowledgement"] == ACK_ACTIONABLE
    assert client.get("/tasks", headers=headers).json()["tasks"] == []


def test_dump_can_create_confident_tasks(client, auth, no_api_key):
    headers, _ = auth
    response = client.post("/dump", json={"raw_text": DUMP, "create_tasks": True, "source": "voice"}, headers=headers)

    assert response.status_code == 201
    created = response.json()["created_tasks"]
    assert [task["title"] for task in created] == [
        "Call vet about Luna tomorrow",
        "pay rent asap",
        "maybe read that book eventually",
    ]
    assert {task["status"] for task in created} == {"needs_linking"}
    assert created[1]["priority"] == "high"
    assert created[1]["category"] == "Finance"

    listed = client.get("/tasks", headers=headers).json()["tasks"]
    assert len(listed) == 3


def test_dump_of_only_feelings_is_not_actionable(client, auth, no_api_key):
    headers, _ = auth
    body = client.post("/dump", json={"raw_text": "ugh, so tired today"}, headers=headers).json()
    assert body["signals"]["actionable"] is False
    assert body["acknowledgement"] == ACK_NEUTRAL


def test_dump_uses_model_when_configured(client, auth, monkeypatch):
    headers, _ = auth
    content = json.dumps({"tasks": [{"title": "Buy milk", "category": "Home"}, {"title": "Buy eggs"}]})
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(dump_service.openai, "OpenAI", _fake_client(content=content))

    body = client.post("/dump", json={"raw_text": "buy milk and eggs"}, headers=headers).json()

    assert body["dump"]["parser"] == "llm"
    assert [task["title"] for task in body["tasks"]] == ["Buy milk", "Buy eggs"]
    assert body["tasks"][0]["category"] == "Home"


def test_dump_validation(client, auth):
    headers, _ = auth
    assert client.post("/dump", json={"raw_text": "  a "}, headers=headers).status_code == 422
    assert client.post("/dump", json={"raw_text": "x" * 5001}, headers=headers).status_code == 422
    assert client.post("/dump", json={"raw_text": "call mom", "source": "fax"}, headers=headers).status_code == 422
    assert client.post("/dump", json={"raw_text": "call mom"}).status_code == 401
