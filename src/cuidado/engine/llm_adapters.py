"""Chat model adapters, HTTP plumbing and the provider factory.

Every call runs the blocking ``urllib`` request in a worker thread and is
bounded by ``asyncio.wait_for``. Transport failures, non-2xx statuses and
unrecognised response shapes all surface as ``LLMError``; expired deadlines
surface as its subclass ``LLMTimeoutError``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
import time
from collections.abc import Callable
from collections.abc import Sequence
from typing import Any
from typing import Protocol
from typing import runtime_checkable
from typing import TypeVar
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from cuidado.config import ModelConfig

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]

_T = TypeVar("_T")

_RETRY_DELAY_SECONDS = 0.25


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LLMError(Exception):
    """Raised by model adapters when a call fails."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class LLMTimeoutError(LLMError):
    """Raised when a model call exceeds its deadline."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ChatModel(Protocol):
    """Protocol for chat-completion providers (primary or helper model)."""

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        top_p: float = 0.9,
        timeout_seconds: float = 60.0,
    ) -> str: ...


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    timeout_seconds: float,
    headers: dict[str, str] | None = None,
) -> Any:
    """POST *payload* as JSON and decode the JSON reply (blocking)."""
    request = Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **(headers or {})},
        method="POST",
    )
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            raw = response.read()
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise LLMError(
            f"provider HTTP {exc.code}: {detail[:200]}", status=exc.code
        ) from exc
    except URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise LLMTimeoutError(f"provider timed out: {exc.reason}") from exc
        raise LLMError(f"provider network error: {exc.reason}") from exc
    except TimeoutError as exc:
        raise LLMTimeoutError(f"provider timed out: {exc}") from exc
    except OSError as exc:
        raise LLMError(f"provider IO error: {exc}") from exc

    try:
        return json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        # UnicodeDecodeError is a ValueError too.
        raise LLMError(f"provider returned invalid JSON: {exc}") from exc


async def run_with_deadline(
    func: Callable[..., _T],
    *args: Any,
    deadline_seconds: float,
    **kwargs: Any,
) -> _T:
    """Run blocking *func* in a thread, raising ``LLMTimeoutError`` on expiry.

    *args* and *kwargs* are passed to *func* unchanged.
    """
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, **kwargs),
            timeout=deadline_seconds,
        )
    except TimeoutError as exc:
        raise LLMTimeoutError(
            f"call exceeded deadline of {deadline_seconds:.1f}s"
        ) from exc


def extract_chat_content(data: object) -> str | None:
    """Pull the assistant text out of an Ollama or OpenAI-style reply.

    Returns ``None`` when no known shape matches; never raises.
    """
    if not isinstance(data, dict):
        return None

    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]

    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice_message = choices[0].get("message")
        if isinstance(choice_message, dict) and isinstance(
            choice_message.get("content"), str
        ):
            return choice_message["content"]

    response = data.get("response")
    if isinstance(response, str):
        return response
    return None


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class NoopChatAdapter(ChatModel):
    """Deterministic adapter that never leaves the process."""

    def __init__(self, reply: str = "No language model is configured.") -> None:
        self._reply = reply

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        top_p: float = 0.9,
        timeout_seconds: float = 60.0,
    ) -> str:
        del messages, temperature, top_p, timeout_seconds
        return self._reply


class OllamaChatAdapter(ChatModel):
    """Ollama ``/api/chat`` adapter (non-streaming, one retry on 5xx)."""

    def __init__(
        self,
        *,
        model: str,
        base_url: str = "http://127.0.0.1:11434",
    ) -> None:
        self._model = model
        self._base_url = base_url.rstrip("/")

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        top_p: float = 0.9,
        timeout_seconds: float = 60.0,
    ) -> str:
        return await run_with_deadline(
            self._chat_sync,
            list(messages),
            temperature=temperature,
            top_p=top_p,
            timeout_seconds=timeout_seconds,
            deadline_seconds=timeout_seconds,
        )

    def _chat_sync(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        top_p: float,
        timeout_seconds: float,
    ) -> str:
        payload = {
            "model": self._model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature, "top_p": top_p},
        }
        url = f"{self._base_url}/api/chat"
        try:
            data = post_json(url, payload, timeout_seconds=timeout_seconds)
        except LLMError as exc:
            if exc.status is None or exc.status < 500:
                raise
            logger.warning("ollama chat status=%s, retrying once", exc.status)
            time.sleep(_RETRY_DELAY_SECONDS)
            data = post_json(url, payload, timeout_seconds=timeout_seconds)

        content = extract_chat_content(data)
        if content is None:
            raise LLMError("ollama response missing message content")
        return content


class OpenAICompatibleChatAdapter(ChatModel):
    """OpenAI-compatible chat-completions adapter."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        top_p: float = 0.9,
        timeout_seconds: float = 60.0,
    ) -> str:
        return await run_with_deadline(
            self._chat_sync,
            list(messages),
            temperature=temperature,
            top_p=top_p,
            timeout_seconds=timeout_seconds,
            deadline_seconds=timeout_seconds,
        )

    def _chat_sync(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        top_p: float,
        timeout_seconds: float,
    ) -> str:
        payload = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "top_p": top_p,
        }
        data = post_json(
            f"{self._base_url}/chat/completions",
            payload,
            timeout_seconds=timeout_seconds,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        content = extract_chat_content(data)
        if content is None:
            raise LLMError("provider response missing choices[0].message.content")
        return content


def build_chat_adapter(config: ModelConfig) -> ChatModel:
    """Create a concrete adapter from ``ModelConfig``."""

    provider = config.provider.strip().lower()
    if provider == "ollama":
        return OllamaChatAdapter(model=config.model, base_url=config.base_url)
    if provider == "openai":
        if not config.api_key:
            raise ValueError("model api_key is required when provider='openai'")
        return OpenAICompatibleChatAdapter(
            model=config.model,
            api_key=config.api_key,
            base_url=config.base_url,
        )
    if provider == "noop":
        return NoopChatAdapter()
    raise ValueError(
        f"Unsupported model provider '{config.provider}'. "
        "Supported providers: ollama, openai, noop."
    )
