"""
Configuration module for the IDE agent.
Handles environment variables, model tiers, sandbox limits and application settings.
"""

import os
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> List[str]:
    return [p.strip() for p in os.getenv(name, default).split(",") if p.strip()]


@dataclass
class AWSConfig:
    """AWS-specific configuration"""
    region: str = os.getenv("AWS_REGION", "us-east-1")
    access_key_id: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    secret_access_key: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    session_token: str = os.getenv("AWS_SESSION_TOKEN", "")
    profile_name: str = os.getenv("AWS_PROFILE", "")

    def has_explicit_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def has_session_token(self) -> bool:
        return bool(self.session_token)

    def has_profile(self) -> bool:
        return bool(self.profile_name)


@dataclass
class ModelConfig:
    """Model tiers: light for classification, mid for chat/planning/review, top for the agent loop"""
    light_model_id: str = os.getenv("LIGHT_MODEL_ID", "us.anthropic.claude-haiku-4-5-20251001-v1:0")
    mid_model_id: str = os.getenv("MID_MODEL_ID", "us.anthropic.claude-sonnet-4-5-20250929-v1:0")
    top_model_id: str = os.getenv("TOP_MODEL_ID", "us.anthropic.claude-opus-4-5-20251101-v1:0")
    max_tokens: int = int(os.getenv("MAX_TOKENS", "8192"))
    throughput_mode: str = os.getenv("THROUGHPUT_MODE", "cross-region")


@dataclass
class AppConfig:
    """Application-specific configuration"""
    title: str = "IDE Agent"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    project_root: str = os.getenv("PROJECT_ROOT", ".")
    # Step budgets: interactive chat loop vs. one-shot /api/agent/run
    max_agent_steps: int = int(os.getenv("MAX_AGENT_STEPS", "200"))
    agent_run_max_steps: int = int(os.getenv("AGENT_RUN_MAX_STEPS", "15"))
    # run_command limits
    command_timeout: int = int(os.getenv("COMMAND_TIMEOUT", "30"))
    command_max_output_bytes: int = int(os.getenv("COMMAND_MAX_OUTPUT_BYTES", str(1024 * 1024)))
    # search_code / list_files limits
    search_timeout: int = int(os.getenv("SEARCH_TIMEOUT", "10"))
    search_max_results: int = int(os.getenv("SEARCH_MAX_RESULTS", "50"))
    search_extensions: List[str] = field(
        default_factory=lambda: _env_list("SEARCH_EXTENSIONS", ".ts,.tsx,.js,.jsx,.py")
    )
    list_files_max_entries: int = int(os.getenv("LIST_FILES_MAX_ENTRIES", "200"))
    # edit_file guards
    max_delete_lines: int = int(os.getenv("MAX_DELETE_LINES", "50"))
    edit_require_unique_match: bool = _env_bool("EDIT_REQUIRE_UNIQUE_MATCH", "true")
    # Tool result preview length inside streamed events
    result_preview_chars: int = int(os.getenv("RESULT_PREVIEW_CHARS", "500"))
    # System prompt context bounds
    prompt_max_tree_files: int = int(os.getenv("PROMPT_MAX_TREE_FILES", "100"))
    prompt_max_file_chars: int = int(os.getenv("PROMPT_MAX_FILE_CHARS", "50000"))
    # Extensions write_file may create (files without an extension are always allowed)
    write_extensions: List[str] = field(
        default_factory=lambda: _env_list(
            "WRITE_EXTENSIONS",
            ".ts,.tsx,.js,.jsx,.json,.css,.html,.md,.txt,.sql,.py,.toml,.yaml,.yml",
        )
    )


# ============================================================
# Model Specifications -- Anthropic Claude on Bedrock
# All models support tool_use which is required for the agent loop.
# ============================================================
AVAILABLE_MODELS: List[Dict[str, Any]] = [
    {
        "id": "us.anthropic.claude-opus-4-5-20251101-v1:0",
        "base_id": "anthropic.claude-opus-4-5-20251101-v1:0",
        "name": "Claude Opus 4.5",
        "tier": "opus",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
        "supports_caching": True,
    },
    {
        "id": "us.anthropic.claude-sonnet-4-5-20250929-v1:0",
        "base_id": "anthropic.claude-sonnet-4-5-20250929-v1:0",
        "name": "Claude Sonnet 4.5",
        "tier": "sonnet",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
        "supports_caching": True,
    },
    {
        "id": "us.anthropic.claude-haiku-4-5-20251001-v1:0",
        "base_id": "anthropic.claude-haiku-4-5-20251001-v1:0",
        "name": "Claude Haiku 4.5",
        "tier": "haiku",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
        "supports_caching": True,
    },
    {
        "id": "anthropic.claude-3-5-haiku-20241022-v1:0",
        "base_id": "anthropic.claude-3-5-haiku-20241022-v1:0",
        "name": "Claude 3.5 Haiku",
        "tier": "haiku",
        "context_window": 200000,
        "max_output_tokens": 8192,
        "requires_profile": False,
        "supports_caching": True,
    },
]


# Create global config instances
aws_config = AWSConfig()
model_config = ModelConfig()
app_config = AppConfig()


def get_model_by_id(model_id: str) -> Optional[Dict[str, Any]]:
    """Get model configuration by ID"""
    for model in AVAILABLE_MODELS:
        if model["id"] == model_id or model.get("base_id") == model_id:
            return model
    return None


def get_model_config(model_id: str) -> Dict[str, Any]:
    """Get the full configuration for a model. Unknown IDs get a conservative fallback."""
    model = get_model_by_id(model_id)
    if model:
        return model
    return {
        "id": model_id,
        "base_id": model_id,
        "name": model_id,
        "tier": "",
        "context_window": 200000,
        "max_output_tokens": 8192,
        "requires_profile": model_id.startswith(("us.", "eu.", "ap.")),
        "supports_caching": False,
    }


def get_max_output_tokens(model_id: str) -> int:
    return get_model_config(model_id).get("max_output_tokens", 4096)


def requires_inference_profile(model_id: str) -> bool:
    return get_model_config(model_id).get("requires_profile", False)


def supports_caching(model_id: str) -> bool:
    """Check if model supports prompt caching"""
    return get_model_config(model_id).get("supports_caching", False)


def get_credentials_info() -> str:
    if aws_config.has_profile():
        return f"Using AWS profile: {aws_config.profile_name}"
    elif aws_config.has_explicit_credentials():
        if aws_config.has_session_token():
            return "Using temporary credentials (with session token)"
        return "Using explicit credentials"
    return "Using default credential chain"
