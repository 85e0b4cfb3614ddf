"""
Amazon Bedrock service module.
Handles all interactions with the Bedrock runtime API for Anthropic Claude models.
"""

import boto3
import json
import logging
from typing import Generator, List, Dict, Optional, Any
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from dataclasses import dataclass, field
from config import (
    aws_config,
    model_config,
    get_credentials_info,
    get_model_config,
    get_max_output_tokens,
    requires_inference_profile,
    supports_caching,
)


logger = logging.getLogger(__name__)


class BedrockError(Exception):
    """Custom exception for Bedrock service errors"""
    pass


@dataclass
class GenerationConfig:
    """Configuration for a single generation request"""
    max_tokens: int = 8192
    temperature: Optional[float] = None
    stop_sequences: Optional[List[str]] = None
    throughput_mode: str = "cross-region"


@dataclass
class ToolUseBlock:
    """Represents a tool_use block from the response"""
    id: str = ""
    name: str = ""
    input: Dict = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Result from a generation request"""
    content: str = ""
    tool_uses: List[ToolUseBlock] = field(default_factory=list)
    content_blocks: List[Dict] = field(default_factory=list)
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


class BedrockService:
    """
    Service class for Amazon Bedrock interactions.
    The model id is chosen per request; the service only owns the client.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        region: Optional[str] = None
    ):
        self.model_id = model_id or model_config.mid_model_id
        self.region = region or aws_config.region

        self.client = self._create_client()
        logger.info(f"BedrockService initialized ({get_credentials_info()}, region={self.region})")

    def _create_client(self) -> Any:
        """Create and configure the Bedrock runtime client"""
        try:
            session_kwargs = {"region_name": self.region}

            if aws_config.has_profile():
                session_kwargs["profile_name"] = aws_config.profile_name
            elif aws_config.has_explicit_credentials():
                session_kwargs["aws_access_key_id"] = aws_config.access_key_id
                session_kwargs["aws_secret_access_key"] = aws_config.secret_access_key
                if aws_config.has_session_token():
                    session_kwargs["aws_session_token"] = aws_config.session_token

            session = boto3.Session(**session_kwargs)
            return session.client("bedrock-runtime")

        except NoCredentialsError:
            raise BedrockError("AWS credentials not configured.")
        except Exception as e:
            raise BedrockError(f"Failed to initialize Bedrock client: {e}")

    def _get_model_identifier(self, model_id: str, config: GenerationConfig) -> str:
        """Get the appropriate model identifier based on throughput mode"""
        if config.throughput_mode == "cross-region":
            if model_id.startswith(("us.", "eu.", "ap.")):
                return model_id
            elif requires_inference_profile(model_id):
                region_prefix = "eu" if self.region.startswith("eu-") else "us"
                return f"{region_prefix}.{model_id}"

        return get_model_config(model_id).get("base_id", model_id)

    def _format_request_body(
        self,
        messages: List[Dict],
        system_prompt: Optional[str],
        model_id: str,
        config: GenerationConfig,
        tools: Optional[List[Dict]] = None
    ) -> Dict[str, Any]:
        """Format the Anthropic Messages request body, with prompt caching on system prompt and tools"""
        use_cache = supports_caching(model_id)

        formatted_messages = []
        for msg in messages:
            if msg["role"] == "system":
                continue
            content = msg.get("content")
            # API rejects empty content for everything but a trailing assistant turn
            if isinstance(content, str) and not content.strip():
                content = "(no content)"
            elif isinstance(content, list) and not content:
                content = [{"type": "text", "text": "(no content)"}]
            formatted_messages.append({"role": msg["role"], "content": content})

        body: Dict[str, Any] = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": min(config.max_tokens, get_max_output_tokens(model_id)),
            "messages": formatted_messages,
        }

        if config.temperature is not None:
            body["temperature"] = config.temperature
        if config.stop_sequences:
            body["stop_sequences"] = config.stop_sequences

        if system_prompt:
            if use_cache:
                body["system"] = [
                    {
                        "type": "text",
                        "text": system_prompt,
                        "cache_control": {"type": "ephemeral"},
                    }
                ]
            else:
                body["system"] = system_prompt

        if tools:
            if use_cache:
                cached_tools = [dict(t) for t in tools]
                cached_tools[-1] = {**cached_tools[-1], "cache_control": {"type": "ephemeral"}}
                body["tools"] = cached_tools
            else:
                body["tools"] = tools
            body["tool_choice"] = {"type": "auto"}

        logger.debug(f"Request body keys: {list(body.keys())}, caching: {use_cache}")
        return body

    def _parse_response(self, response_body: Dict) -> GenerationResult:
        """Parse the Anthropic response body into text and tool_use blocks"""
        result = GenerationResult()

        try:
            for block in response_body.get("content", []):
                block_type = block.get("type", "")
                if block_type == "text":
                    result.content += block.get("text", "")
                    result.content_blocks.append(block)
                elif block_type == "tool_use":
                    result.tool_uses.append(ToolUseBlock(
                        id=block.get("id", ""),
                        name=block.get("name", ""),
                        input=block.get("input", {}),
                    ))
                    result.content_blocks.append(block)

            usage = response_body.get("usage", {})
            result.input_tokens = usage.get("input_tokens", 0)
            result.output_tokens = usage.get("output_tokens", 0)
            result.stop_reason = response_body.get("stop_reason")
        except (KeyError, IndexError, AttributeError) as e:
            logger.error(f"Error parsing response: {e}")
            raise BedrockError(f"Failed to parse model response: {e}")

        return result

    def generate_response(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        model_id: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        tools: Optional[List[Dict]] = None
    ) -> GenerationResult:
        """
        Generate a complete (non-streaming) response.
        Used for short single-shot calls: planning, review, classification.
        """
        current_model = model_id or self.model_id
        gen_config = config or GenerationConfig()

        try:
            model_identifier = self._get_model_identifier(current_model, gen_config)
            request_body = self._format_request_body(
                messages, system_prompt, current_model, gen_config, tools=tools
            )

            logger.info(f"Invoking model: {model_identifier}")

            response = self.client.invoke_model(
                modelId=model_identifier,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json"
            )

            response_body = json.loads(response["body"].read())
            return self._parse_response(response_body)

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            error_message = e.response.get('Error', {}).get('Message', str(e))
            logger.error(f"Bedrock API error: {error_code} - {error_message}")

            if error_code in ['ExpiredTokenException', 'InvalidSignatureException']:
                raise BedrockError("AWS credentials expired. Please refresh.")
            raise BedrockError(f"Bedrock API error: {error_message}")
        except BotoCoreError as e:
            logger.error(f"Bedrock transport error: {e}")
            raise BedrockError(f"Bedrock transport error: {e}")

    def generate_response_stream(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        model_id: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        tools: Optional[List[Dict]] = None
    ) -> Generator[Dict[str, Any], None, None]:
        """
        Generate a streaming response using Amazon Bedrock.
        Yields dictionaries with 'type' and 'content'.
        Types: text_start, text, text_end, tool_use_start, tool_use_delta,
               tool_use_end, message_end
        """
        current_model = model_id or self.model_id
        gen_config = config or GenerationConfig()

        try:
            model_identifier = self._get_model_identifier(current_model, gen_config)
            request_body = self._format_request_body(
                messages, system_prompt, current_model, gen_config, tools=tools
            )

            logger.info(f"Streaming from model: {model_identifier}")

            response = self.client.invoke_model_with_response_stream(
                modelId=model_identifier,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json"
            )

            current_block_type = "text"

            for event in response["body"]:
                if "chunk" not in event:
                    # Modeled stream exceptions arrive as their own event keys
                    key = next(iter(event), "unknown")
                    message = event.get(key, {}).get("message", key)
                    raise BedrockError(f"Streaming error: {message}")

                chunk = json.loads(event["chunk"]["bytes"])
                event_type = chunk.get("type", "")

                if event_type == "content_block_start":
                    block = chunk.get("content_block", {})
                    current_block_type = block.get("type", "text")

                    if current_block_type == "text":
                        yield {"type": "text_start", "content": ""}
                        initial = block.get("text", "")
                        if initial:
                            yield {"type": "text", "content": initial}
                    elif current_block_type == "tool_use":
                        yield {
                            "type": "tool_use_start",
                            "content": "",
                            "data": {
                                "id": block.get("id", ""),
                                "name": block.get("name", ""),
                            }
                        }

                elif event_type == "content_block_delta":
                    delta = chunk.get("delta", {})
                    delta_type = delta.get("type", "")

                    if delta_type == "text_delta":
                        text = delta.get("text", "")
                        if text:
                            yield {"type": "text", "content": text}
                    elif delta_type == "input_json_delta":
                        partial = delta.get("partial_json", "")
                        if partial:
                            yield {"type": "tool_use_delta", "content": partial}

                elif event_type == "content_block_stop":
                    if current_block_type == "text":
                        yield {"type": "text_end", "content": ""}
                    elif current_block_type == "tool_use":
                        yield {"type": "tool_use_end", "content": ""}

                elif event_type == "message_delta":
                    yield {
                        "type": "message_end",
                        "content": "",
                        "usage": chunk.get("usage", {}),
                        "stop_reason": chunk.get("delta", {}).get("stop_reason")
                    }

        except ClientError as e:
            error_message = e.response.get('Error', {}).get('Message', str(e))
            logger.error(f"Bedrock streaming error: {error_message}")
            raise BedrockError(f"Streaming error: {error_message}")
        except BotoCoreError as e:
            logger.error(f"Bedrock streaming transport error: {e}")
            raise BedrockError(f"Streaming error: {e}")
