"""Planner and critic helpers."""

from agent.planning import critic_review, plan_task
from config import model_config
from conftest import ScriptedService


def test_plan_returns_at_most_five_steps():
    steps = [f"step {i}" for i in range(7)]
    service = ScriptedService(replies=['{"steps": %s}' % str(steps).replace("'", '"')])
    result = plan_task(service, "build a todo app", file_tree=["src/app.tsx"])
    assert result == {"steps": steps[:5], "model": model_config.mid_model_id}
    prompt = service.calls[0]["messages"][0]["content"]
    assert "build a todo app" in prompt
    assert "src/app.tsx" in prompt


def test_plan_empty_on_model_failure():
    service = ScriptedService(replies=[RuntimeError("throttled")])
    assert plan_task(service, "anything") == {"steps": [], "model": model_config.mid_model_id}


def test_plan_empty_when_reply_has_no_json():
    service = ScriptedService(replies=["I would start by reading the code."])
    assert plan_task(service, "anything")["steps"] == []


def test_review_parses_verdict():
    service = ScriptedService(replies=['Here you go: {"approved": false, "feedback": "Missing null check"}'])
    assert critic_review(service, "- a\n+ b", "refactor") == {"approved": False, "feedback": "Missing null check"}
    assert service.calls[0]["model_id"] == model_config.mid_model_id


def test_review_approves_when_model_fails():
    service = ScriptedService(replies=[RuntimeError("down")])
    assert critic_review(service, "diff", "ctx") == {"approved": True, "feedback": "Review skipped due to error"}


def test_review_approves_without_json():
    service = ScriptedService(replies=["Looks fine to me."])
    assert critic_review(service, "diff", "ctx") == {"approved": True, "feedback": "Review completed"}
