"""Chat-capable AI backends behind one streaming interface.

Every provider yields :class:`ChatChunk` objects regardless of the wire shape
its backend uses, so the relay never branches on the provider type.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union

import httpx
from loguru import logger

from commitscope.config import AIConfig, DEFAULT_HOSTED_BASE_URL
from commitscope.errors import ProviderError
from commitscope.types.chat import ChatChunk, ChatTurn

DEFAULT_LOCAL_URL = "http://localhost:11434"
DEFAULT_HOSTED_MODELS = ["gpt-3.5-turbo", "gpt-4", "claude-3-opus-20240229"]

# Streaming reads wait on the model; only connecting is bounded.
STREAM_TIMEOUT = httpx.Timeout(30.0, read=None)

Message = Union[ChatTurn, Dict[str, Any]]


def as_wire_messages(messages: Iterable[Message]) -> List[Dict[str, str]]:
    """Reduce turns to the ``{role, content}`` pairs chat endpoints accept."""
    wire = []
    for message in messages:
        if isinstance(message, ChatTurn):
            wire.append({"role": message.role, "content": message.content})
        else:
            wire.append({"role": str(message.get("role", "user")), "content": str(message.get("content", ""))})
    return wire


async def _error_detail(response: httpx.Response) -> str:
    body = await response.aread()
    return body.decode("utf-8", errors="replace").strip()


class AIProvider(ABC):
    """Capability contract shared by all chat backends."""

    name: str = "provider"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=STREAM_TIMEOUT, **kwargs)

    @abstractmethod
    def chat(self, model: str, messages: Iterable[Message], stream: bool = True) -> AsyncIterator[ChatChunk]:
        """Send a conversation and yield the reply as incremental chunks.

        Non-streaming replies arrive as a single chunk. Chunks may carry empty
        content; consumers treat those as no-ops.
        """

    @abstractmethod
    async def list_models(self) -> List[str]:
        """Names of the models this backend can serve."""


class LocalRunnerProvider(AIProvider):
    """Ollama-compatible model runner reachable over HTTP."""

    name = "local"

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(transport)
        self.base_url = (base_url or DEFAULT_LOCAL_URL).rstrip("/")

    @staticmethod
    def normalize(data: Dict[str, Any]) -> ChatChunk:
        """Map ``{"message": {...}}`` chat frames and ``{"response": ...}`` generate frames onto a chunk."""
        if data.get("error"):
            raise ProviderError(f"Local model runner error: {data['error']}")
        message = data.get("message")
        if isinstance(message, dict) and message.get("content"):
            return ChatChunk.of(str(message["content"]))
        return ChatChunk.of(str(data.get("response") or ""))

    async def chat(self, model: str, messages: Iterable[Message], stream: bool = True) -> AsyncIterator[ChatChunk]:
        body = {"model": model, "messages": as_wire_messages(messages), "stream": stream, "think": False}

        async with self._client(base_url=self.base_url) as client:
            async with client.stream("POST", "/api/chat", json=body) as response:
                if response.is_error:
                    detail = await _error_detail(response)
                    raise ProviderError(f"Local model runner error: {response.status_code} {detail}".strip())

                if not stream:
                    yield self.normalize(json.loads(await response.aread()))
                    return

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except ValueError as e:
                        logger.error(f"Skipping malformed stream line from {self.base_url}: {e}")
                        continue
                    if isinstance(data, dict):
                        yield self.normalize(data)

    async def list_models(self) -> List[str]:
        try:
            async with self._client(base_url=self.base_url) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                models = response.json().get("models", [])
        except httpx.ConnectError:
            logger.error(
                f"Failed to connect to the local model runner at {self.base_url}. "
                "If running in Docker, point AI_BASE_URL at the host."
            )
            return []
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.error(f"Failed to list local models: {e}")
            return []

        if not isinstance(models, list):
            return []
        return [m["name"] for m in models if isinstance(m, dict) and m.get("name")]


class HostedAPIProvider(AIProvider):
    """OpenAI-compatible chat completions API authenticated with a bearer key."""

    name = "hosted"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        available_models: Optional[List[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport)
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_HOSTED_BASE_URL).rstrip("/")
        self.available_models = available_models or []

    @staticmethod
    def normalize(data: Dict[str, Any]) -> ChatChunk:
        """Map a streamed ``delta`` or a complete ``message`` choice onto a chunk."""
        choices = data.get("choices") or []
        first = choices[0] if choices and isinstance(choices[0], dict) else {}
        part = first.get("delta") or first.get("message") or {}
        content = part.get("content") if isinstance(part, dict) else None
        return ChatChunk.of(str(content or ""))

    async def chat(self, model: str, messages: Iterable[Message], stream: bool = True) -> AsyncIterator[ChatChunk]:
        body = {"model": model, "messages": as_wire_messages(messages), "stream": stream}
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with self._client() as client:
            async with client.stream("POST", f"{self.base_url}/chat/completions", json=body, headers=headers) as response:
                if response.is_error:
                    detail = await _error_detail(response)
                    raise ProviderError(
                        f"External AI API error: {response.status_code} {response.reason_phrase} {detail}".strip()
                    )

                if not stream:
                    yield self.normalize(json.loads(await response.aread()))
                    return

                async for line in response.aiter_lines():
                    frame = line.strip()
                    if not frame.startswith("data:"):
                        continue
                    payload = frame[len("data:"):].strip()
                    if payload == "[DONE]":
                        break
                    try:
                        data = json.loads(payload)
                    except ValueError as e:
                        logger.error(f"Error parsing stream chunk: {e}")
                        continue
                    if not isinstance(data, dict):
                        logger.error(f"Ignoring unexpected stream frame: {payload[:80]}")
                        continue
                    yield self.normalize(data)

    async def list_models(self) -> List[str]:
        return list(self.available_models or DEFAULT_HOSTED_MODELS)


def get_ai_provider(config: AIConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> AIProvider:
    """Pick the backend for one request: the hosted API when a key is configured, else the local runner."""
    if config.api_key:
        logger.debug("Using external AI provider")
        return HostedAPIProvider(
            api_key=config.api_key,
            base_url=config.base_url or DEFAULT_HOSTED_BASE_URL,
            available_models=config.model_list(),
            transport=transport,
        )

    logger.debug("Using local model runner" + (f" at {config.base_url}" if config.base_url else ""))
    return LocalRunnerProvider(base_url=config.base_url or None, transport=transport)
