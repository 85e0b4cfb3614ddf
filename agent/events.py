"""
Agent event data types.

Every run produces an ordered stream of these events: any number of
text_delta / tool_use / tool_result events followed by exactly one terminal
done or error event.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class EventType(str, Enum):
    TEXT_DELTA = "text_delta"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    DONE = "done"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.DONE, EventType.ERROR})


@dataclass(frozen=True)
class AgentEvent:
    """Event emitted during agent execution"""
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape: a flat object tagged by `type`."""
        return {"type": self.type.value, **self.data}


def preview(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    return text[:limit]


def text_delta(text: str) -> AgentEvent:
    return AgentEvent(EventType.TEXT_DELTA, {"text": text})


def tool_use(name: str, tool_input: Mapping[str, Any], tool_use_id: str = "") -> AgentEvent:
    return AgentEvent(EventType.TOOL_USE, {"id": tool_use_id, "name": name, "input": dict(tool_input)})


def tool_result(name: str, success: bool, output: Optional[str] = None, error: Optional[str] = None,
                tool_use_id: str = "", preview_chars: int = 500) -> AgentEvent:
    """Result event; output and error are cut to a preview, the model still sees the full text."""
    data: Dict[str, Any] = {"id": tool_use_id, "name": name, "success": success}
    if output is not None:
        data["output"] = preview(output, preview_chars)
    if error is not None:
        data["error"] = preview(error, preview_chars)
    return AgentEvent(EventType.TOOL_RESULT, data)


def done(full_text: str, model: str, steps: int, step_limit_reached: bool = False) -> AgentEvent:
    return AgentEvent(EventType.DONE, {
        "full_text": full_text,
        "model": model,
        "steps": steps,
        "step_limit_reached": step_limit_reached,
    })


def error(message: str, step: int) -> AgentEvent:
    return AgentEvent(EventType.ERROR, {"message": message, "step": step})
