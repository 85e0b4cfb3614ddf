"""
One-shot helper calls around the agent loop: a short task plan before a run
and a critic review of a proposed diff. Both degrade gracefully when the
model call fails.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from bedrock_service import GenerationConfig
from config import model_config

from .router import TaskType, pick_model, first_json_object

logger = logging.getLogger(__name__)

MAX_PLAN_STEPS = 5
PLAN_TREE_FILES = 30

PLAN_PROMPT = """Analyze this request and create a compressed task plan.

User request: "{request}"
{files}
Respond with ONLY a JSON object:
{{
  "steps": ["step1", "step2", "step3"]
}}

Keep steps brief (3-5 words each). Max {max_steps} steps."""

REVIEW_PROMPT = """Review this code change for issues.

Context: {context}

Diff:
{diff}

Check for:
1. Syntax errors
2. Missing error handling
3. Security issues
4. Breaking changes

Respond with JSON:
{{
  "approved": true/false,
  "feedback": "brief explanation"
}}"""


def plan_task(service, request: str, file_tree: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Ask the mid tier for at most five short steps. Returns {"steps", "model"}; steps is empty on failure."""
    model = pick_model(TaskType.PLAN)
    files = ""
    if file_tree:
        files = "\nProject files:\n" + "\n".join(list(file_tree)[:PLAN_TREE_FILES]) + "\n"
    prompt = PLAN_PROMPT.format(request=request, files=files, max_steps=MAX_PLAN_STEPS)

    try:
        resp = service.generate_response(
            messages=[{"role": "user", "content": prompt}],
            model_id=model,
            config=GenerationConfig(max_tokens=200, throughput_mode=model_config.throughput_mode),
        )
        raw_steps = first_json_object(resp.content).get("steps") or []
    except Exception as e:
        logger.warning(f"Planning failed: {e}")
        return {"steps": [], "model": model}

    if not isinstance(raw_steps, list):
        return {"steps": [], "model": model}
    steps: List[str] = [str(s).strip() for s in raw_steps if str(s).strip()]
    return {"steps": steps[:MAX_PLAN_STEPS], "model": model}


def critic_review(service, diff: str, context: str) -> Dict[str, Any]:
    """Mid-tier review of a diff. Returns {"approved", "feedback"}; approves when the review itself fails."""
    model = pick_model(TaskType.CRITIC)
    prompt = REVIEW_PROMPT.format(context=context, diff=diff)

    try:
        resp = service.generate_response(
            messages=[{"role": "user", "content": prompt}],
            model_id=model,
            config=GenerationConfig(max_tokens=300, throughput_mode=model_config.throughput_mode),
        )
    except Exception as e:
        logger.warning(f"Critic review failed: {e}")
        return {"approved": True, "feedback": "Review skipped due to error"}

    try:
        parsed = first_json_object(resp.content)
    except ValueError:
        return {"approved": True, "feedback": "Review completed"}

    approved = parsed.get("approved")
    return {
        "approved": True if approved is None else bool(approved),
        "feedback": parsed.get("feedback") or "No issues found",
    }
