"""
Agent package - the bounded tool-use loop and the model-facing helpers around it.

- events: AgentEvent variants emitted during a run
- conversation: per-run conversation state and its Messages API rendering
- router: model tier selection and intent classification
- prompts: system prompt modules and project context injection
- loop: AgentLoop state machine
- planning: task planner and critic review
"""

from .events import AgentEvent, EventType
from .conversation import ConversationState, MessageTurn, ToolExchange, ToolExchangeTurn
from .router import TaskType, ModelOverride, pick_model, chat_model, classify_intent
from .prompts import PromptContext, CurrentFile, build_system_prompt, truncate_content, compress_file_tree
from .loop import AgentLoop, LoopConfig, LoopOutcome, LoopState
from .planning import plan_task, critic_review

__all__ = [
    # Data types
    "AgentEvent",
    "EventType",
    "ConversationState",
    "MessageTurn",
    "ToolExchange",
    "ToolExchangeTurn",

    # Model routing
    "TaskType",
    "ModelOverride",
    "pick_model",
    "chat_model",
    "classify_intent",

    # Prompt system
    "PromptContext",
    "CurrentFile",
    "build_system_prompt",
    "truncate_content",
    "compress_file_tree",

    # Loop
    "AgentLoop",
    "LoopConfig",
    "LoopOutcome",
    "LoopState",

    # Planner / critic
    "plan_task",
    "critic_review",
]
