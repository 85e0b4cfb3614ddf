"""
Conversation state for one agent run.
Turns are appended in order and never rewritten; to_messages() renders them
in Messages API format for each model call.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")


@dataclass(frozen=True)
class MessageTurn:
    """A user or assistant message. Assistant content may be raw model content blocks."""
    role: str
    content: Union[str, Sequence[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolExchange:
    tool_use_id: str
    result_text: str
    is_error: bool = False


@dataclass(frozen=True)
class ToolExchangeTurn:
    """All tool results of one step, sent back to the model as a single user turn."""
    results: Tuple[ToolExchange, ...]


Turn = Union[MessageTurn, ToolExchangeTurn]


class ConversationState:
    """Ordered turns owned by a single loop invocation."""

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    @classmethod
    def seed(cls, history: Optional[Iterable[Mapping[str, Any]]], prompt: str) -> "ConversationState":
        """Prior {role, content} messages followed by the new user prompt.

        Entries with an unknown role or empty content are dropped.
        """
        state = cls()
        for msg in history or ():
            role = msg.get("role")
            content = msg.get("content")
            if role not in ROLES or not content:
                logger.debug(f"Dropping history entry with role={role!r}")
                continue
            state._turns.append(MessageTurn(role=role, content=content))
        state.add_user(prompt)
        return state

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def add_user(self, text: str) -> None:
        self._turns.append(MessageTurn(role="user", content=text))

    def add_assistant(self, content: Union[str, Sequence[Dict[str, Any]]]) -> None:
        self._turns.append(MessageTurn(role="assistant", content=content))

    def add_tool_results(self, results: Iterable[ToolExchange]) -> None:
        self._turns.append(ToolExchangeTurn(results=tuple(results)))

    def to_messages(self) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        for turn in self._turns:
            if isinstance(turn, ToolExchangeTurn):
                messages.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": r.tool_use_id,
                            "content": r.result_text,
                            "is_error": r.is_error,
                        }
                        for r in turn.results
                    ],
                })
            else:
                content = turn.content if isinstance(turn.content, str) else [dict(b) for b in turn.content]
                messages.append({"role": turn.role, "content": content})
        return messages
