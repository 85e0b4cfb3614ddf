"""
Agent endpoints: streaming chat and agent runs over SSE, the WebSocket
channel, and the one-shot plan / review / classify calls.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from agent import (
    AgentLoop, LoopConfig, ModelOverride, PromptContext, TaskType,
    build_system_prompt, chat_model, classify_intent, critic_review, pick_model, plan_task,
)
from agent.router import tier_models
from backend import LocalBackend
from config import app_config
from tools import ProjectContext, guard_for, walk_project

import web.state as _state
from web.state import _WSRef
from web.stream import RunFn, encode_json, encode_sse, stream_agent_events

logger = logging.getLogger(__name__)

router = APIRouter()

# Upper bound on entries scanned when the client sends no file tree
_TREE_SCAN_LIMIT = 2000

_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


# ============================================================
# Request bodies
# ============================================================

class HistoryMessage(BaseModel):
    role: str
    content: Union[str, List[Dict[str, Any]]]


class CurrentFileBody(BaseModel):
    name: str
    language: str = ""
    content: str = ""


class ProjectContextBody(BaseModel):
    file_tree: Optional[List[str]] = None
    current_file: Optional[CurrentFileBody] = None


class ChatRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    history: List[HistoryMessage] = Field(default_factory=list)
    model_override: ModelOverride = ModelOverride.AUTO
    project_context: Optional[ProjectContextBody] = None


class AgentRunRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    project_context: Optional[ProjectContextBody] = None
    max_steps: Optional[int] = Field(None, ge=1)


class PlanRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    file_tree: Optional[List[str]] = None


class ReviewRequest(BaseModel):
    diff: str
    context: str = ""


class ClassifyRequest(BaseModel):
    message: str


# ============================================================
# Helpers
# ============================================================

def collect_file_tree(root: str, limit: int = _TREE_SCAN_LIMIT) -> List[str]:
    """Files (not directories) under the project root, as the tools would list them."""
    entries = walk_project(guard_for(root), LocalBackend(root), ".", max_entries=limit)
    return [e for e in entries if not e.endswith("/")]


async def _prompt_context(body: Optional[ProjectContextBody]) -> PromptContext:
    root = _state.project_root()
    data: Dict[str, Any] = body.model_dump() if body else {}
    if not data.get("file_tree"):
        loop = asyncio.get_running_loop()
        data["file_tree"] = await loop.run_in_executor(None, collect_file_tree, root)
    return PromptContext.from_dict(data, root_path=root)


def _agent_run(prompt: str, history: List[Dict[str, Any]], model: str, max_steps: int,
               prompt_context: PromptContext) -> RunFn:
    """Bind one loop invocation; the service is resolved when the run starts."""

    async def run(on_event, cancel: threading.Event):
        loop = AgentLoop(
            _state.get_service(),
            LoopConfig(model=model, system_prompt=build_system_prompt(prompt_context), max_steps=max_steps),
            ProjectContext(_state.project_root()),
        )
        return await loop.run(history, prompt, on_event=on_event, cancel=cancel)

    return run


def _service_or_none():
    try:
        return _state.get_service()
    except Exception as e:
        logger.error(f"Model service unavailable: {e}")
        return None


# ============================================================
# HTTP routes
# ============================================================

@router.get("/api/health")
async def health():
    return {"status": "ok", "project_root": _state.project_root(), "models": tier_models()}


@router.post("/api/chat")
async def chat(body: ChatRequest):
    model = chat_model(body.model_override)
    logger.info(f"Chat request: model={model} history={len(body.history)}")
    run = _agent_run(
        body.prompt,
        [m.model_dump() for m in body.history],
        model,
        app_config.max_agent_steps,
        await _prompt_context(body.project_context),
    )
    return StreamingResponse(stream_agent_events(run, encode_sse), media_type="text/event-stream",
                             headers=_SSE_HEADERS)


@router.post("/api/agent/run")
async def agent_run(body: AgentRunRequest):
    model = pick_model(TaskType.AGENT)
    max_steps = body.max_steps or app_config.agent_run_max_steps
    logger.info(f"Agent run: model={model} max_steps={max_steps}")
    run = _agent_run(body.prompt, [], model, max_steps, await _prompt_context(body.project_context))
    return StreamingResponse(stream_agent_events(run, encode_sse), media_type="text/event-stream",
                             headers=_SSE_HEADERS)


@router.post("/api/agent/plan")
async def agent_plan(body: PlanRequest):
    service = _service_or_none()
    if service is None:
        return {"steps": [], "model": pick_model(TaskType.PLAN)}
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, plan_task, service, body.prompt, body.file_tree)


@router.post("/api/agent/review")
async def agent_review(body: ReviewRequest):
    service = _service_or_none()
    if service is None:
        return {"approved": True, "feedback": "Review skipped due to error"}
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, critic_review, service, body.diff, body.context)


@router.post("/api/agent/classify")
async def agent_classify(body: ClassifyRequest):
    service = _service_or_none()
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, classify_intent, body.message, service)


# ============================================================
# WebSocket
# ============================================================

async def _run_over_ws(wsr: _WSRef, msg: Dict[str, Any], cancel: threading.Event) -> None:
    try:
        body = ChatRequest(
            prompt=msg.get("prompt") or "",
            history=msg.get("history") or [],
            model_override=msg.get("model_override") or ModelOverride.AUTO,
            project_context=msg.get("project_context"),
        )
    except ValueError as e:
        await wsr.send_json({"type": "error", "message": f"Invalid message: {e}", "step": 0})
        return

    run = _agent_run(
        body.prompt,
        [m.model_dump() for m in body.history],
        chat_model(body.model_override),
        app_config.max_agent_steps,
        await _prompt_context(body.project_context),
    )
    async for frame in stream_agent_events(run, encode_json, cancel=cancel):
        await wsr.send_json(frame)


def _log_run_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"WebSocket run failed: {task.exception()!r}")


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    wsr = _WSRef(ws)
    cancel: Optional[threading.Event] = None
    current: Optional[asyncio.Task] = None

    try:
        while True:
            try:
                msg = await ws.receive_json()
            except ValueError:
                await wsr.send_json({"type": "error", "message": "Invalid JSON", "step": 0})
                continue

            kind = msg.get("type") if isinstance(msg, dict) else None
            if kind == "cancel":
                if cancel is not None:
                    cancel.set()
                continue
            if kind != "message":
                await wsr.send_json({"type": "error", "message": f"Unknown message type: {kind}", "step": 0})
                continue
            if current is not None and not current.done():
                await wsr.send_json({"type": "error", "message": "A run is already in progress", "step": 0})
                continue

            cancel = threading.Event()
            current = asyncio.create_task(_run_over_ws(wsr, msg, cancel))
            current.add_done_callback(_log_run_failure)
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        wsr.ws = None
        if cancel is not None:
            cancel.set()
        if current is not None and not current.done():
            await asyncio.wait([current])
