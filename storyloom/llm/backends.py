"""Completion backends: a local Ollama server, the chat proxy, and Anthropic.

Each backend turns a ``CompletionRequest`` into reply text or raises
``BackendError``.  Backends hold no per-conversation state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import anthropic
import httpx

from storyloom.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionRequest:
    """An assembled prompt plus the raw user message it answers."""

    prompt: str
    user_message: str
    temperature: float = 0.7
    max_tokens: int = 500


class BackendError(Exception):
    """A backend returned a non-success response or could not be reached."""


@runtime_checkable
class CompletionBackend(Protocol):
    """Protocol that all completion backends must satisfy."""

    @property
    def name(self) -> str:
        """Unique backend identifier (e.g. 'ollama', 'proxy')."""
        ...

    async def complete(self, request: CompletionRequest) -> str:
        """Return the reply text. Raises BackendError on failure."""
        ...


def _read_response_field(resp: httpx.Response, backend: str) -> str:
    if resp.status_code < 200 or resp.status_code >= 300:
        msg = f"{backend} returned {resp.status_code}: {resp.text[:200]}"
        raise BackendError(msg)
    try:
        data = resp.json()
    except ValueError as exc:
        msg = f"{backend} returned a non-JSON body"
        raise BackendError(msg) from exc

    text = data.get("response") if isinstance(data, dict) else None
    if not isinstance(text, str) or not text.strip():
        msg = f"{backend} response has no 'response' text"
        raise BackendError(msg)
    return text.strip()


class OllamaBackend:
    """Local-first backend: ``POST /api/generate`` on an Ollama server."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self._model = model or settings.ollama_model
        self._timeout = timeout or settings.completion_timeout

    @property
    def name(self) -> str:
        return "ollama"

    async def complete(self, request: CompletionRequest) -> str:
        body: dict[str, Any] = {
            "model": self._model,
            "prompt": request.prompt,
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(f"{self._base_url}/api/generate", json=body)
        except httpx.HTTPError as exc:
            msg = f"ollama request failed: {exc}"
            raise BackendError(msg) from exc
        return _read_response_field(resp, self.name)


class ProxyBackend:
    """Hosted chat proxy: ``POST /chat`` with a system prompt and user message."""

    def __init__(self, api_url: str | None = None, timeout: float | None = None) -> None:
        self._api_url = (api_url or settings.proxy_api_url).rstrip("/")
        self._timeout = timeout or settings.completion_timeout

    @property
    def name(self) -> str:
        return "proxy"

    async def complete(self, request: CompletionRequest) -> str:
        body = {
            "systemPrompt": request.prompt,
            "userMessage": request.user_message,
            "temperature": request.temperature,
            "maxTokens": request.max_tokens,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(f"{self._api_url}/chat", json=body)
        except httpx.HTTPError as exc:
            msg = f"proxy request failed: {exc}"
            raise BackendError(msg) from exc
        return _read_response_field(resp, self.name)


class AnthropicBackend:
    """Hosted backend calling the Anthropic Messages API directly."""

    _client: anthropic.AsyncAnthropic | None = None

    def __init__(self, model: str | None = None) -> None:
        self._model = model or settings.claude_model

    @property
    def name(self) -> str:
        return "anthropic"

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if AnthropicBackend._client is None:
            AnthropicBackend._client = anthropic.AsyncAnthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.completion_timeout,
            )
        return AnthropicBackend._client

    async def complete(self, request: CompletionRequest) -> str:
        if not settings.anthropic_api_key:
            msg = "ANTHROPIC_API_KEY is not configured"
            raise BackendError(msg)
        try:
            response = await self._get_client().messages.create(
                model=self._model,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                system=request.prompt,
                messages=[{"role": "user", "content": request.user_message}],
            )
        except anthropic.APIError as exc:
            msg = f"anthropic request failed: {exc}"
            raise BackendError(msg) from exc

        text = next(
            (block.text for block in response.content if getattr(block, "type", "") == "text"),
            "",
        )
        if not text.strip():
            msg = "anthropic returned no text"
            raise BackendError(msg)
        return text.strip()


_BACKENDS: dict[str, type] = {
    "ollama": OllamaBackend,
    "proxy": ProxyBackend,
    "anthropic": AnthropicBackend,
}


def build_backend(name: str) -> CompletionBackend:
    """Instantiate the backend registered under *name*. Raises ValueError if unknown."""
    try:
        return _BACKENDS[name]()
    except KeyError:
        msg = f"Unknown completion backend '{name}'"
        raise ValueError(msg) from None
