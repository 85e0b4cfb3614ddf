"""
Wire encoding of agent events and the bridge from a running loop to a
streaming response.
"""

import asyncio
import json
import logging
import threading
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

from agent import events as ev
from agent.events import AgentEvent
from agent.loop import EventCallback, LoopOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

RunFn = Callable[[EventCallback, threading.Event], Awaitable[LoopOutcome]]

_END = object()


def encode_sse(event: AgentEvent) -> str:
    """One server-sent event: `data: <json>` and a blank line."""
    return f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


def encode_json(event: AgentEvent) -> Dict[str, Any]:
    """One WebSocket frame."""
    return event.to_dict()


async def stream_agent_events(
    run: RunFn,
    encode: Callable[[AgentEvent], T],
    cancel: Optional[threading.Event] = None,
) -> AsyncIterator[T]:
    """Run `run(on_event, cancel)` as a task and yield each event, encoded, as soon as it is produced.

    Closing the iterator early (client went away) sets `cancel`, which stops
    the loop and kills any command it is running. If `run` itself raises
    (e.g. the model service could not be created), a terminal error event is
    yielded instead.
    """
    cancel = cancel or threading.Event()
    events: asyncio.Queue = asyncio.Queue()

    async def on_event(event: AgentEvent) -> None:
        await events.put(event)

    task = asyncio.create_task(run(on_event, cancel))
    task.add_done_callback(lambda _t: events.put_nowait(_END))
    finished = False
    try:
        while True:
            item = await events.get()
            if item is _END:
                break
            yield encode(item)
        finished = True
        exc = task.exception()
        if exc is not None:
            logger.error(f"Agent run failed before completing: {exc!r}")
            yield encode(ev.error(str(exc) or type(exc).__name__, 0))
    finally:
        if not finished:
            logger.info("Event stream closed early; cancelling agent run")
            cancel.set()
