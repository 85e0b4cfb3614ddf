"""
Model routing: which model tier serves which task, plus intent classification
of incoming chat messages.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional, Union

from config import model_config, get_model_by_id

logger = logging.getLogger(__name__)


class TaskType(str, Enum):
    CLASSIFY = "classify"
    CHAT = "chat"
    AGENT = "agent"
    PLAN = "plan"
    CRITIC = "critic"


class ModelOverride(str, Enum):
    AUTO = "auto"
    HAIKU = "haiku"
    SONNET = "sonnet"
    OPUS = "opus"


def tier_models() -> Dict[str, str]:
    """Tier name -> model id, read from the current model config."""
    return {
        ModelOverride.HAIKU.value: model_config.light_model_id,
        ModelOverride.SONNET.value: model_config.mid_model_id,
        ModelOverride.OPUS.value: model_config.top_model_id,
    }


def pick_model(task: Union[TaskType, str], override: Optional[Union[ModelOverride, str]] = None) -> str:
    """Resolve the model id for a task.

    An explicit override (tier name or a known model id) wins. `auto` or None
    selects by task: classify uses the light tier, the agent loop the top tier,
    everything else the mid tier. Raises ValueError for an unknown task or override.
    """
    task = TaskType(task)
    if override is not None:
        key = override.value if isinstance(override, ModelOverride) else str(override)
        if key != ModelOverride.AUTO.value:
            tiers = tier_models()
            if key in tiers:
                return tiers[key]
            if key in tiers.values() or get_model_by_id(key):
                return key
            raise ValueError(f"Unknown model override: {key}")

    if task == TaskType.CLASSIFY:
        return model_config.light_model_id
    if task == TaskType.AGENT:
        return model_config.top_model_id
    return model_config.mid_model_id


def chat_model(override: Optional[Union[ModelOverride, str]] = None) -> str:
    """Model for chat-initiated agent runs: the agent choice, with the top tier downgraded to mid."""
    model = pick_model(TaskType.AGENT, override)
    if model == model_config.top_model_id:
        logger.debug(f"Chat run downgraded from {model} to {model_config.mid_model_id}")
        return model_config.mid_model_id
    return model


# ---------------------------------------------------------------------------
# Intent classification
# ---------------------------------------------------------------------------

INTENTS = ("simple", "complex", "agent")

CLASSIFY_SYSTEM = """You are a message classifier for a coding agent inside an IDE. Return ONLY valid JSON:
{"intent": "simple"|"complex"|"agent"}

- **agent**: the user wants something done in the project: create, edit, delete, fix, run, install, list or read files or code.
- **complex**: a question or discussion that needs careful reasoning but no changes to the project.
- **simple**: greetings, thanks, short factual questions.

When uncertain, answer "agent".
Return ONLY the JSON object, no explanation."""

AGENT_KEYWORDS = (
    "create", "make", "build", "write", "add", "implement", "generate",
    "fix", "update", "change", "modify", "refactor", "delete", "remove",
    "run", "execute", "install", "setup", "configure", "list", "show", "read",
    "создай", "сделай", "напиши", "добавь", "исправь", "измени", "удали",
    "покажи", "прочитай", "файл", "file", "code", "код",
)

_CLASSIFY_CACHE_SIZE = 256
_classify_cache: Dict[str, str] = {}


def first_json_object(text: str) -> Dict[str, Any]:
    """Parse the first balanced {...} object in a model reply, tolerating code fences and chatter.

    Raises ValueError when there is none.
    """
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1].rsplit("```", 1)[0].strip()
    start = text.find("{")
    if start < 0:
        raise ValueError("no JSON object in response")
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                parsed = json.loads(text[start:i + 1])
                if not isinstance(parsed, dict):
                    raise ValueError("response JSON is not an object")
                return parsed
    raise ValueError("unbalanced JSON object in response")


def classify_fallback(message: str) -> str:
    """Keyword heuristic used when no model is available."""
    lowered = message.lower()
    if any(kw in lowered for kw in AGENT_KEYWORDS):
        return "agent"
    return "complex"


def classify_intent(message: str, service=None) -> Dict[str, str]:
    """Classify a chat message as simple, complex or agent work using the light tier.

    Returns {"intent": ..., "model": ...}. Falls back to keywords when the
    service is missing or the call fails.
    """
    model = pick_model(TaskType.CLASSIFY)
    stripped = (message or "").strip()
    if not stripped:
        return {"intent": "simple", "model": model}

    cache_key = stripped[:200].lower()
    if cache_key in _classify_cache:
        return {"intent": _classify_cache[cache_key], "model": model}

    answered = False
    if service is None:
        intent = classify_fallback(stripped)
    else:
        try:
            from bedrock_service import GenerationConfig
            resp = service.generate_response(
                messages=[{"role": "user", "content": stripped}],
                system_prompt=CLASSIFY_SYSTEM,
                model_id=model,
                config=GenerationConfig(max_tokens=40, throughput_mode=model_config.throughput_mode),
            )
            intent = str(first_json_object(resp.content).get("intent", "")).lower()
            if intent not in INTENTS:
                logger.info(f"Classifier returned unknown intent {intent!r}, using fallback")
                intent = classify_fallback(stripped)
            else:
                answered = True
            logger.info(f"Intent classification: {intent} for: {stripped[:80]}...")
        except Exception as e:
            logger.warning(f"Intent classification failed ({e}), using fallback")
            intent = classify_fallback(stripped)

    # Only model answers are cached; a fallback is retried next time
    if answered:
        if len(_classify_cache) >= _CLASSIFY_CACHE_SIZE:
            del _classify_cache[next(iter(_classify_cache))]
        _classify_cache[cache_key] = intent
    return {"intent": intent, "model": model}
