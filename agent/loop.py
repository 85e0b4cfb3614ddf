"""
The agent loop: stream the model, run the tools it asks for, feed the results
back, until it stops calling tools or a terminal condition is hit.

    INIT -> REQUESTING -> (TOOL_DISPATCH <-> REQUESTING)
         -> COMPLETED | STEP_LIMIT_REACHED | FAILED | CANCELLED
"""

import asyncio
import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from bedrock_service import GenerationConfig
from config import app_config, model_config
from tools import TOOL_DEFINITIONS, ProjectContext, ToolCall, ToolResult, execute_tool

from . import events as ev
from .conversation import ConversationState, ToolExchange
from .events import AgentEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[AgentEvent], Awaitable[None]]
ToolExecutor = Callable[[ToolCall, ProjectContext, Optional[threading.Event]], ToolResult]

CANCELLED_MESSAGE = "Cancelled"

_POLL_INTERVAL = 0.1
_STREAM_DONE = object()
_NO_CHUNK = object()


class LoopState(str, Enum):
    INIT = "init"
    REQUESTING = "requesting"
    TOOL_DISPATCH = "tool_dispatch"
    COMPLETED = "completed"
    STEP_LIMIT_REACHED = "step_limit_reached"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({
    LoopState.COMPLETED, LoopState.STEP_LIMIT_REACHED, LoopState.FAILED, LoopState.CANCELLED,
})


@dataclass(frozen=True)
class LoopConfig:
    model: str
    system_prompt: str
    max_steps: int = app_config.max_agent_steps
    max_tokens: int = model_config.max_tokens

    def __post_init__(self):
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {self.max_steps}")


@dataclass
class LoopOutcome:
    """What a run hands back to its caller once it reaches a terminal state."""
    state: LoopState
    text: str
    events: List[AgentEvent] = field(default_factory=list)
    steps: int = 0
    model: str = ""


class _Cancelled(Exception):
    pass


@dataclass
class _ModelTurn:
    """One fully streamed model response."""
    content_blocks: List[Dict[str, Any]] = field(default_factory=list)
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: Optional[str] = None


class AgentLoop:
    """Bounded tool-use loop for one request.

    Model calls and tool calls are strictly sequential. Blocking work (the
    model stream, tool execution) runs in worker threads so the event loop
    stays free to deliver events while they happen.
    """

    def __init__(
        self,
        service,
        config: LoopConfig,
        context: ProjectContext,
        tools: Optional[List[Dict[str, Any]]] = None,
        executor: ToolExecutor = execute_tool,
    ):
        self.service = service
        self.config = config
        self.context = context
        self.tools = tools if tools is not None else TOOL_DEFINITIONS
        self._executor = executor
        self.state = LoopState.INIT

    async def run(
        self,
        history: Optional[Iterable[Mapping[str, Any]]],
        prompt: str,
        on_event: Optional[EventCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> LoopOutcome:
        cancel = cancel or threading.Event()
        emitted: List[AgentEvent] = []
        text_parts: List[str] = []

        async def emit(event: AgentEvent) -> None:
            emitted.append(event)
            if on_event is not None:
                await on_event(event)

        async def finish(state: LoopState, step: int, message: Optional[str] = None) -> LoopOutcome:
            self.state = state
            full_text = "".join(text_parts)
            if state in (LoopState.COMPLETED, LoopState.STEP_LIMIT_REACHED):
                await emit(ev.done(full_text, self.config.model, step, state == LoopState.STEP_LIMIT_REACHED))
            else:
                await emit(ev.error(message or state.value, step))
            logger.info(f"Agent loop finished: state={state.value} steps={step} model={self.config.model}")
            return LoopOutcome(state=state, text=full_text, events=emitted, steps=step, model=self.config.model)

        self.state = LoopState.INIT
        conversation = ConversationState.seed(history, prompt)
        step = 0

        while True:
            if cancel.is_set():
                return await finish(LoopState.CANCELLED, step, CANCELLED_MESSAGE)

            self.state = LoopState.REQUESTING
            step += 1
            logger.info(f"Step {step}/{self.config.max_steps}: requesting {self.config.model} "
                        f"({len(conversation)} turns)")
            try:
                turn = await self._stream_model(conversation, emit, text_parts, cancel)
            except _Cancelled:
                return await finish(LoopState.CANCELLED, step, CANCELLED_MESSAGE)
            except Exception as e:
                logger.error(f"Model call failed at step {step}: {e}")
                return await finish(LoopState.FAILED, step, str(e) or type(e).__name__)

            if not turn.tool_calls:
                if turn.content_blocks:
                    conversation.add_assistant(turn.content_blocks)
                return await finish(LoopState.COMPLETED, step)

            self.state = LoopState.TOOL_DISPATCH
            exchanges: List[ToolExchange] = []
            loop = asyncio.get_running_loop()
            for call in turn.tool_calls:
                if cancel.is_set():
                    return await finish(LoopState.CANCELLED, step, CANCELLED_MESSAGE)
                await emit(ev.tool_use(call.name, call.input, call.id))
                result = await loop.run_in_executor(None, self._executor, call, self.context, cancel)
                if not result.success:
                    logger.info(f"Tool {call.name} failed: {(result.error or '')[:200]}")
                await emit(ev.tool_result(
                    call.name, result.success, result.output, result.error,
                    tool_use_id=call.id, preview_chars=app_config.result_preview_chars,
                ))
                exchanges.append(ToolExchange(call.id, result.model_text(), not result.success))

            conversation.add_assistant(turn.content_blocks)
            conversation.add_tool_results(exchanges)

            if cancel.is_set():
                return await finish(LoopState.CANCELLED, step, CANCELLED_MESSAGE)
            if step >= self.config.max_steps:
                logger.warning(f"Step limit reached ({self.config.max_steps}) with tool calls pending")
                return await finish(LoopState.STEP_LIMIT_REACHED, step)

    async def _stream_model(
        self,
        conversation: ConversationState,
        emit: EventCallback,
        text_parts: List[str],
        cancel: threading.Event,
    ) -> _ModelTurn:
        """Stream one model response, emitting text deltas as they arrive.

        Tool calls are collected and returned, not emitted: their events are
        produced at dispatch time so every result directly follows its call.
        """
        chunk_queue: queue.Queue = queue.Queue()
        messages = conversation.to_messages()
        gen_config = GenerationConfig(
            max_tokens=self.config.max_tokens,
            throughput_mode=model_config.throughput_mode,
        )

        def _stream_producer():
            """Run the sync generator in a background thread, forwarding chunks to the queue."""
            try:
                for c in self.service.generate_response_stream(
                    messages=messages,
                    system_prompt=self.config.system_prompt,
                    model_id=self.config.model,
                    config=gen_config,
                    tools=self.tools,
                ):
                    if cancel.is_set():
                        break
                    chunk_queue.put(c)
                chunk_queue.put(_STREAM_DONE)
            except Exception as exc:
                chunk_queue.put(exc)

        def _next_chunk():
            try:
                return chunk_queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                return _NO_CHUNK

        producer_thread = threading.Thread(target=_stream_producer, daemon=True)
        producer_thread.start()

        loop = asyncio.get_running_loop()
        turn = _ModelTurn()
        current_text: Optional[str] = None
        current_tool: Optional[Dict[str, Any]] = None
        tool_json_parts: List[str] = []

        while True:
            if cancel.is_set():
                raise _Cancelled()
            chunk = await loop.run_in_executor(None, _next_chunk)
            if chunk is _NO_CHUNK:
                continue
            if chunk is _STREAM_DONE:
                break
            if isinstance(chunk, Exception):
                raise chunk

            chunk_type = chunk.get("type", "")
            content = chunk.get("content", "")

            if chunk_type == "text_start":
                current_text = ""
            elif chunk_type == "text":
                if not content:
                    continue
                current_text = (current_text or "") + content
                text_parts.append(content)
                await emit(ev.text_delta(content))
            elif chunk_type == "text_end":
                if current_text:
                    turn.content_blocks.append({"type": "text", "text": current_text})
                current_text = None
            elif chunk_type == "tool_use_start":
                current_tool = chunk.get("data", {})
                tool_json_parts = []
            elif chunk_type == "tool_use_delta":
                tool_json_parts.append(content)
            elif chunk_type == "tool_use_end":
                if current_tool:
                    tool_input = _parse_tool_input("".join(tool_json_parts), current_tool.get("name", ""))
                    block = {
                        "type": "tool_use",
                        "id": current_tool.get("id", ""),
                        "name": current_tool.get("name", ""),
                        "input": tool_input,
                    }
                    turn.content_blocks.append(block)
                    turn.tool_calls.append(ToolCall(name=block["name"], input=tool_input, id=block["id"]))
                current_tool = None
            elif chunk_type == "message_end":
                turn.stop_reason = chunk.get("stop_reason")
                usage = chunk.get("usage") or {}
                logger.debug(f"Model turn ended: stop_reason={turn.stop_reason} usage={usage}")

        # A stream cut short may leave a text block open
        if current_text:
            turn.content_blocks.append({"type": "text", "text": current_text})
        return turn


def _parse_tool_input(raw: str, name: str) -> Dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Unparseable input JSON for tool {name}: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}
