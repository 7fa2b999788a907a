"""
LLM Client - Chat backends that can call tools.
Supports OpenAI, Mistral, OpenRouter, and Ollama through the OpenAI-compatible API.

The conversation keeps a vendor-neutral transcript, a list of dicts shaped as:
    {"role": "user", "content": str}
    {"role": "assistant", "content": str, "tool_calls": list[ToolInvocationRequest]}
    {"role": "tool_results", "results": list[ToolInvocationResult]}
Each backend converts it to its own wire format.
"""
from openai import AsyncOpenAI
from pydantic import ValidationError
import openai
import httpx
from typing import Optional
import json
import logging
import re

from ..config import get_llm_config, settings
from ..errors import InitializationError, TransportError
from ..models.tools import AssistantTurn, ToolInvocationRequest

logger = logging.getLogger(__name__)


class ChatBackend:
    """Interface every chat backend implements."""

    async def start(self, system_prompt: str, tool_schemas: list[dict]):
        """
        Prepare a conversation handle.

        Raises:
            InitializationError: the backend is unconfigured or unreachable
        """
        raise NotImplementedError

    async def complete(self, transcript: list[dict]) -> AssistantTurn:
        """
        Send the transcript and return the assistant's next response.

        Raises:
            TransportError: the round-trip failed
        """
        raise NotImplementedError


def parse_arguments(text: str) -> dict:
    """Parse tool-call arguments, tolerating markdown fences and stray prose."""
    if not text:
        return {}
    text = text.strip()

    # Try direct parse first
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else {}
    except json.JSONDecodeError:
        pass

    # Try extracting from markdown code block
    json_match = re.search(r'```(?:json)?\s*([\s\S]*?)```', text)
    if json_match:
        try:
            parsed = json.loads(json_match.group(1).strip())
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            pass

    # Try finding JSON object in text
    brace_start = text.find('{')
    brace_end = text.rfind('}')
    if brace_start != -1 and brace_end > brace_start:
        try:
            parsed = json.loads(text[brace_start:brace_end + 1])
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            pass

    logger.warning(f"Could not parse tool arguments: {text[:200]!r}")
    return {}


class OpenAIChatBackend(ChatBackend):
    """Async chat backend over any OpenAI-compatible chat completions endpoint."""

    def __init__(self, config: Optional[dict] = None):
        self.config = config or get_llm_config()
        self.model = self.config["model"]
        self.temperature = self.config["temperature"]
        self.max_tokens = self.config["max_tokens"]
        self.client: Optional[AsyncOpenAI] = None
        self.system_prompt = ""
        self.tools: list[dict] = []

    async def start(self, system_prompt: str, tool_schemas: list[dict]):
        if not self.config.get("api_key"):
            raise InitializationError(
                f"No API key configured for provider {self.config.get('provider')!r}"
            )

        logger.info(f"Initializing chat backend provider={self.config.get('provider')}, model={self.model}")
        try:
            self.client = AsyncOpenAI(
                api_key=self.config["api_key"],
                base_url=self.config["base_url"],
                timeout=self.config.get("timeout", 120.0),
            )
        except openai.OpenAIError as e:
            raise InitializationError(f"Could not create LLM client: {e}") from e

        if settings.llm_verify_on_start:
            try:
                await self.client.models.list()
            except (openai.APIError, httpx.HTTPError) as e:
                raise InitializationError(f"LLM backend unreachable at {self.config['base_url']}: {e}") from e

        self.system_prompt = system_prompt
        self.tools = [{"type": "function", "function": schema} for schema in tool_schemas]

    async def complete(self, transcript: list[dict]) -> AssistantTurn:
        if self.client is None:
            raise TransportError("Chat backend used before start()")

        kwargs = {
            "model": self.model,
            "messages": self._to_wire(transcript),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.tools:
            kwargs["tools"] = self.tools

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except (openai.APIError, httpx.HTTPError) as e:
            logger.error(f"LLM Chat Error: {e}")
            raise TransportError(str(e)) from e

        if not response.choices:
            raise TransportError("LLM returned no choices")

        message = response.choices[0].message
        try:
            tool_calls = [
                ToolInvocationRequest(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=parse_arguments(tc.function.arguments),
                )
                for tc in (message.tool_calls or [])
            ]
        except ValidationError as e:
            raise TransportError(f"LLM returned a malformed tool call: {e}") from e
        return AssistantTurn(text=message.content or "", tool_calls=tool_calls)

    def _to_wire(self, transcript: list[dict]) -> list[dict]:
        """Convert the neutral transcript to chat-completions messages."""
        messages = [{"role": "system", "content": self.system_prompt}]
        for entry in transcript:
            role = entry["role"]
            if role == "user":
                messages.append({"role": "user", "content": entry["content"]})
            elif role == "assistant":
                wire = {"role": "assistant", "content": entry.get("content") or None}
                calls = entry.get("tool_calls") or []
                if calls:
                    wire["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                        }
                        for call in calls
                    ]
                messages.append(wire)
            elif role == "tool_results":
                for result in entry["results"]:
                    messages.append({
                        "role": "tool",
                        "tool_call_id": result.id,
                        "content": json.dumps(result.response),
                    })
        return messages


def get_chat_backend() -> ChatBackend:
    """Create a fresh backend for the configured provider. Each session owns its own."""
    if settings.llm_provider == "mock":
        from .mock_llm import MockChatBackend
        return MockChatBackend()
    return OpenAIChatBackend()
