"""Shared pytest fixtures: a scripted stand-in for BedrockService."""

import copy
import json
from typing import Any, Dict, List

import pytest

from bedrock_service import GenerationResult


def text_chunks(*texts: str) -> List[Dict[str, Any]]:
    """Stream chunks for a plain text reply."""
    chunks: List[Dict[str, Any]] = [{"type": "text_start", "content": ""}]
    chunks += [{"type": "text", "content": t} for t in texts]
    chunks.append({"type": "text_end", "content": ""})
    chunks.append({"type": "message_end", "content": "", "usage": {}, "stop_reason": "end_turn"})
    return chunks


def tool_chunks(*calls, text: str = "") -> List[Dict[str, Any]]:
    """Stream chunks for a reply with tool calls; each call is (id, name, input) or (id, name, raw_json_str)."""
    chunks: List[Dict[str, Any]] = []
    if text:
        chunks += [
            {"type": "text_start", "content": ""},
            {"type": "text", "content": text},
            {"type": "text_end", "content": ""},
        ]
    for tool_id, name, tool_input in calls:
        raw = tool_input if isinstance(tool_input, str) else json.dumps(tool_input)
        chunks += [
            {"type": "tool_use_start", "content": "", "data": {"id": tool_id, "name": name}},
            {"type": "tool_use_delta", "content": raw},
            {"type": "tool_use_end", "content": ""},
        ]
    chunks.append({"type": "message_end", "content": "", "usage": {}, "stop_reason": "tool_use"})
    return chunks


class ScriptedService:
    """Replays canned responses in order. An Exception entry is raised instead."""

    def __init__(self, turns=None, replies=None):
        self.turns = list(turns or [])
        self.replies = list(replies or [])
        self.stream_calls: List[Dict[str, Any]] = []
        self.calls: List[Dict[str, Any]] = []

    def generate_response_stream(self, messages, system_prompt=None, model_id=None, config=None, tools=None):
        self.stream_calls.append({
            "messages": copy.deepcopy(messages),
            "system_prompt": system_prompt,
            "model_id": model_id,
            "tools": tools,
        })
        turn = self.turns.pop(0) if self.turns else text_chunks("")
        if isinstance(turn, Exception):
            raise turn
        for chunk in turn:
            yield chunk

    def generate_response(self, messages, system_prompt=None, model_id=None, config=None, tools=None):
        self.calls.append({"messages": messages, "system_prompt": system_prompt, "model_id": model_id})
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return GenerationResult(content=reply)


@pytest.fixture
def project(tmp_path):
    """A small project: a.ts at the root and lib/b.ts below it."""
    (tmp_path / "a.ts").write_text("export const a = 1;\n")
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "b.ts").write_text("export const b = 2;\n")
    return tmp_path
