"""Model tier selection and intent classification."""

import pytest

import agent.router as router
from agent.router import (
    ModelOverride, TaskType, chat_model, classify_fallback, classify_intent, first_json_object, pick_model,
)
from config import model_config
from conftest import ScriptedService


@pytest.mark.parametrize("task,expected", [
    ("classify", "light_model_id"),
    ("chat", "mid_model_id"),
    ("plan", "mid_model_id"),
    ("critic", "mid_model_id"),
    ("agent", "top_model_id"),
])
def test_auto_picks_by_task(task, expected):
    assert pick_model(task) == getattr(model_config, expected)
    assert pick_model(task, "auto") == getattr(model_config, expected)
    assert pick_model(TaskType(task), ModelOverride.AUTO) == getattr(model_config, expected)


@pytest.mark.parametrize("override,expected", [
    ("haiku", "light_model_id"),
    ("sonnet", "mid_model_id"),
    ("opus", "top_model_id"),
])
def test_override_wins_over_task(override, expected):
    assert pick_model("classify", override) == getattr(model_config, expected)
    assert pick_model("agent", ModelOverride(override)) == getattr(model_config, expected)


def test_override_accepts_known_model_id():
    assert pick_model("chat", model_config.top_model_id) == model_config.top_model_id


def test_unknown_override_raises():
    with pytest.raises(ValueError):
        pick_model("chat", "gpt-4")


def test_unknown_task_raises():
    with pytest.raises(ValueError):
        pick_model("summarize")


def test_chat_model_never_uses_top_tier():
    assert chat_model() == model_config.mid_model_id
    assert chat_model("auto") == model_config.mid_model_id
    assert chat_model("opus") == model_config.mid_model_id
    assert chat_model("haiku") == model_config.light_model_id
    assert chat_model("sonnet") == model_config.mid_model_id


def test_tier_ids_follow_config(monkeypatch):
    monkeypatch.setattr(model_config, "top_model_id", "custom-top")
    assert pick_model("agent") == "custom-top"
    assert chat_model("opus") == model_config.mid_model_id


def test_classify_fallback_keywords():
    assert classify_fallback("Create a login page") == "agent"
    assert classify_fallback("покажи файл") == "agent"
    assert classify_fallback("What is a monad?") == "complex"


def test_classify_without_service_uses_keywords():
    result = classify_intent("please fix the header layout")
    assert result == {"intent": "agent", "model": model_config.light_model_id}


def test_classify_with_model_reply():
    service = ScriptedService(replies=['```json\n{"intent": "simple"}\n```'])
    result = classify_intent("hi there, good morning to you", service=service)
    assert result["intent"] == "simple"
    assert service.calls[0]["model_id"] == model_config.light_model_id


def test_classify_falls_back_when_model_fails():
    service = ScriptedService(replies=[RuntimeError("throttled")])
    assert classify_intent("install the lodash package", service=service)["intent"] == "agent"


def test_classify_empty_message():
    assert classify_intent("   ")["intent"] == "simple"


def test_first_json_object_tolerates_chatter():
    assert first_json_object('Sure! {"a": {"b": 1}} trailing') == {"a": {"b": 1}}
    with pytest.raises(ValueError):
        first_json_object("no json here")


def test_classify_retries_model_after_fallback(monkeypatch):
    monkeypatch.setattr(router, "_classify_cache", {})
    service = ScriptedService(replies=[RuntimeError("throttled"), '{"intent": "complex"}'])
    assert classify_intent("install the lodash package", service=service)["intent"] == "agent"
    assert classify_intent("install the lodash package", service=service)["intent"] == "complex"
    assert len(service.calls) == 2
    # answered by the model, so served from cache now
    assert classify_intent("install the lodash package", service=service)["intent"] == "complex"
    assert len(service.calls) == 2


def test_classify_cache_is_bounded(monkeypatch):
    monkeypatch.setattr(router, "_classify_cache", {})
    monkeypatch.setattr(router, "_CLASSIFY_CACHE_SIZE", 3)
    service = ScriptedService(replies=['{"intent": "simple"}'] * 5)
    for i in range(5):
        classify_intent(f"question number {i}", service=service)
    assert list(router._classify_cache) == ["question number 2", "question number 3", "question number 4"]
